"""Tests for content hashing."""

from __future__ import annotations

from datetime import datetime, timezone

from beacongate.capture.hashing import canonical_json, compute_bundle_hash, sha256_json
from beacongate.models.capture import ArtifactHash
from beacongate.models.case import ArtifactType
from beacongate.rag.chunker import stable_chunk_id

CAPTURED_AT = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _artifacts() -> list[ArtifactHash]:
    return [
        ArtifactHash(type=ArtifactType.SCREENSHOT, sha256="a" * 64, byte_size=10, basename="screenshot.png"),
        ArtifactHash(type=ArtifactType.HTML_SNAPSHOT, sha256="b" * 64, byte_size=20, basename="page.html"),
    ]


def _bundle(**overrides: object) -> str:
    fields: dict = {
        "landing_url": "https://ads.example.com",
        "final_url": "https://shop.example.com",
        "artifacts": _artifacts(),
        "captured_at": CAPTURED_AT,
        "viewport": {"width": 1280, "height": 720},
        "user_agent": "agent",
    }
    fields.update(overrides)
    return compute_bundle_hash(**fields)


def test_canonical_json_ignores_key_order() -> None:
    """Key order should not change the canonical form or its hash."""

    a = {"b": 1, "a": {"y": 2, "x": [1, 2]}}
    b = {"a": {"x": [1, 2], "y": 2}, "b": 1}
    assert canonical_json(a) == canonical_json(b)
    assert sha256_json(a) == sha256_json(b)


def test_bundle_hash_is_deterministic_and_order_independent() -> None:
    """Same inputs give the same hash regardless of artifact or viewport key order."""

    assert _bundle() == _bundle()
    assert _bundle(artifacts=list(reversed(_artifacts()))) == _bundle()
    assert _bundle(viewport={"height": 720, "width": 1280}) == _bundle()


def test_bundle_hash_changes_with_any_field() -> None:
    """Changing any single input should change the hash."""

    base = _bundle()
    changed = [
        _bundle(landing_url="https://other.example.com"),
        _bundle(final_url="https://ads.example.com"),
        _bundle(captured_at=datetime(2024, 1, 2, 3, 4, 6, tzinfo=timezone.utc)),
        _bundle(viewport={"width": 1024, "height": 720}),
        _bundle(user_agent="other"),
        _bundle(artifacts=_artifacts()[:1]),
    ]
    assert all(h != base for h in changed)
    assert len(set(changed)) == len(changed)


def test_stable_chunk_id_depends_on_every_part() -> None:
    """Stable ids should be reproducible and sensitive to source, index and hash."""

    cid = stable_chunk_id("Policy: a", 0, "f" * 64)
    assert cid == stable_chunk_id("Policy: a", 0, "f" * 64)
    assert cid.startswith("chk_") and len(cid) == 16
    assert cid != stable_chunk_id("Policy: b", 0, "f" * 64)
    assert cid != stable_chunk_id("Policy: a", 1, "f" * 64)
    assert cid != stable_chunk_id("Policy: a", 0, "e" * 64)
