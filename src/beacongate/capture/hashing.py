"""Content hashing for captured evidence."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from beacongate.models.capture import ArtifactHash

_READ_CHUNK = 1024 * 1024


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_string(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def sha256_file(path: Path) -> tuple[str, int]:
    """Hash a file in streaming fashion.

    Returns:
        Tuple of (hex digest, byte size).
    """

    digest = hashlib.sha256()
    size = 0
    with path.open("rb") as fh:
        for block in iter(lambda: fh.read(_READ_CHUNK), b""):
            digest.update(block)
            size += len(block)
    return digest.hexdigest(), size


def canonical_json(value: Any) -> str:
    """Serialize to JSON with sorted keys so logically equal structures hash equally."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_json(value: Any) -> str:
    return sha256_string(canonical_json(value))


def bundle_payload(
    *,
    landing_url: str,
    final_url: str,
    artifacts: Iterable[ArtifactHash],
    captured_at: datetime,
    viewport: dict[str, int],
    user_agent: str,
) -> dict[str, Any]:
    """Build the structure the bundle hash is computed over.

    Artifacts are ordered by basename so the hash does not depend on capture order.
    """

    artifacts = sorted(artifacts, key=lambda a: (a.basename, a.type.value))
    return {
        "landingUrl": landing_url,
        "finalUrl": final_url,
        "artifacts": [
            {
                "type": a.type.value,
                "sha256": a.sha256,
                "byteSize": a.byte_size,
                "pathBasename": a.basename,
            }
            for a in artifacts
        ],
        "capturedAt": captured_at.isoformat(),
        "viewport": dict(viewport),
        "userAgent": user_agent,
    }


def compute_bundle_hash(**kwargs: Any) -> str:
    """sha256 over the canonical JSON of :func:`bundle_payload`."""

    return sha256_json(bundle_payload(**kwargs))
