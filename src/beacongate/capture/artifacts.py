"""Filesystem layout for captured artifacts.

Artifacts live under ``{storage_root}/{evidence_id}/{capture_run_id}/{basename}``. Paths stored in
the database are relative to the storage root; reading them back must never leave that root.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from beacongate.capture.hashing import sha256_file
from beacongate.logging import get_logger
from beacongate.models.capture import ArtifactHash, NetworkSummary, RedirectHop
from beacongate.models.case import ArtifactType

logger = get_logger(__name__)

SCREENSHOT_NAME = "screenshot.png"
HTML_NAME = "page.html"
REDIRECTS_NAME = "redirects.json"
NETWORK_SUMMARY_NAME = "network_summary.json"

ARTIFACT_FILES: dict[ArtifactType, str] = {
    ArtifactType.SCREENSHOT: SCREENSHOT_NAME,
    ArtifactType.HTML_SNAPSHOT: HTML_NAME,
    ArtifactType.REDIRECT_CHAIN: REDIRECTS_NAME,
    ArtifactType.NETWORK_SUMMARY: NETWORK_SUMMARY_NAME,
}

MIME_TYPES: dict[str, str] = {
    ".png": "image/png",
    ".html": "text/html",
    ".json": "application/json",
}


class ArtifactPathError(ValueError):
    """Raised when an artifact path resolves outside the storage root."""


def mime_type_for(basename: str) -> str:
    return MIME_TYPES.get(Path(basename).suffix.lower(), "application/octet-stream")


@dataclass(frozen=True)
class ArtifactStorage:
    """Evidence blob storage rooted at a single directory."""

    root: Path

    def run_dir(self, evidence_id: str, capture_run_id: str) -> Path:
        """Create (if needed) and return the directory for one capture run."""

        path = self.root / evidence_id / capture_run_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def relative_path(self, path: Path) -> str:
        """Storage-root-relative POSIX path for persisting in the database."""

        return self._contain(path).relative_to(self.root.resolve()).as_posix()

    def resolve(self, stored_path: str) -> Path:
        """Resolve a stored path, rejecting anything that escapes the root.

        Raises:
            ArtifactPathError: If the path is absolute or traverses outside the root.
        """

        if not stored_path or Path(stored_path).is_absolute():
            raise ArtifactPathError(f"Invalid artifact path: {stored_path!r}")
        return self._contain(self.root / stored_path)

    def read_bytes(self, stored_path: str) -> bytes:
        return self.resolve(stored_path).read_bytes()

    def read_text(self, stored_path: str) -> str | None:
        """Read a text artifact, returning None when it is missing."""

        path = self.resolve(stored_path)
        if not path.is_file():
            logger.warning("Artifact missing on disk: %s", stored_path)
            return None
        return path.read_text(encoding="utf-8", errors="replace")

    def read_redirects(self, stored_path: str) -> list[RedirectHop] | None:
        raw = self.read_text(stored_path)
        if raw is None:
            return None
        return [RedirectHop.model_validate(hop) for hop in json.loads(raw)]

    def _contain(self, path: Path) -> Path:
        root = self.root.resolve()
        resolved = path.resolve()
        if resolved != root and root not in resolved.parents:
            raise ArtifactPathError(f"Artifact path escapes storage root: {path}")
        return resolved


def write_json(path: Path, value: Any) -> None:
    path.write_text(json.dumps(value, indent=2, ensure_ascii=False), encoding="utf-8")


def write_redirects(run_dir: Path, hops: list[RedirectHop]) -> Path:
    path = run_dir / REDIRECTS_NAME
    write_json(path, [hop.model_dump(mode="json") for hop in hops])
    return path


def write_network_summary(run_dir: Path, summary: NetworkSummary) -> Path:
    path = run_dir / NETWORK_SUMMARY_NAME
    write_json(path, summary.model_dump(mode="json", by_alias=True))
    return path


def describe_artifacts(run_dir: Path) -> list[ArtifactHash]:
    """Hash every known artifact present in ``run_dir``.

    Missing files are skipped, so a partial capture yields only what was written.
    """

    described: list[ArtifactHash] = []
    for artifact_type, name in ARTIFACT_FILES.items():
        path = run_dir / name
        if not path.is_file():
            continue
        digest, size = sha256_file(path)
        described.append(ArtifactHash(type=artifact_type, sha256=digest, byte_size=size, basename=name))
    return described
