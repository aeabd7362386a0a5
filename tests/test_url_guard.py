"""Tests for the URL safety guard."""

from __future__ import annotations

import ipaddress

import pytest

from beacongate.capture.url_guard import check_url, is_blocked_ip

from conftest import fake_resolver

BLOCKED_RANGES = [
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "127.0.0.0/8",
    "169.254.0.0/16",
    "100.64.0.0/10",
    "0.0.0.0/8",
    "fc00::/7",
    "fe80::/10",
]


def _sample(network: str) -> list[str]:
    net = ipaddress.ip_network(network)
    step = max(1, net.num_addresses // 7)
    return [str(net[min(i * step, net.num_addresses - 1)]) for i in range(8)]


@pytest.mark.parametrize("network", BLOCKED_RANGES)
def test_private_resolution_is_rejected(network: str) -> None:
    """Any hostname resolving into an internal range should be refused."""

    for address in _sample(network):
        result = check_url("https://ads.example.com/landing", resolver=lambda _h, a=address: [a])
        assert result.ok is False, address
        assert "SSRF" in (result.error or "")


@pytest.mark.parametrize(
    "url",
    [
        "http://127.0.0.1",
        "http://localhost:8080/x",
        "http://[::1]/",
        "http://169.254.169.254/latest/meta-data",
        "http://10.1.2.3/",
        "http://[::ffff:192.168.0.1]/",
        "http://app.localhost/",
    ],
)
def test_literal_and_named_internal_hosts_are_rejected(url: str) -> None:
    """Loopback, metadata and private literals should be refused without DNS."""

    def boom(_host: str) -> list[str]:
        raise AssertionError("resolver must not be called")

    result = check_url(url, resolver=boom)
    assert result.ok is False
    assert result.error and result.error.startswith("SSRF protection")


def test_public_host_is_allowed() -> None:
    """A host resolving only to public addresses should pass."""

    assert check_url("https://ads.example.com/promo?x=1", resolver=fake_resolver).ok is True


def test_mixed_resolution_is_rejected() -> None:
    """One internal address among public ones is enough to refuse."""

    result = check_url("https://ads.example.com", resolver=lambda _h: ["93.184.216.34", "10.0.0.1"])
    assert result.ok is False


def test_scheme_length_and_dns_errors() -> None:
    """Non-http schemes, overlong URLs and DNS failures should be refused with a message."""

    assert check_url("ftp://example.com/file", resolver=fake_resolver).error == "Only http and https URLs are allowed"
    long_url = "https://example.com/" + "a" * 2100
    assert check_url(long_url, resolver=fake_resolver).error == "URL exceeds maximum length of 2048 characters"
    assert check_url("https://nowhere.invalid/", resolver=fake_resolver).error == "SSRF protection: DNS resolution failed"
    assert check_url("https://host.internal/", resolver=fake_resolver).ok is False


def test_is_blocked_ip_public() -> None:
    """Public unicast addresses should not be blocked."""

    assert is_blocked_ip(ipaddress.ip_address("8.8.8.8")) is False
    assert is_blocked_ip(ipaddress.ip_address("2606:4700:4700::1111")) is False
