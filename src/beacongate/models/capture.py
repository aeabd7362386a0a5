"""Evidence capture models.

A capture attempt ends in exactly one of three outcomes: a clean success, a partial success
(navigation timed out but whatever rendered was still recorded), or a failure with no artifacts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Union

from pydantic import BaseModel, Field

from beacongate.models.case import ArtifactType


class RedirectHop(BaseModel):
    """One hop of the landing page's redirect trace."""

    url: str
    status: int | None = None


class NetworkSummary(BaseModel):
    """Aggregate view of requests issued while rendering the landing page."""

    total_requests: int = Field(default=0, serialization_alias="totalRequests")
    by_type: dict[str, int] = Field(default_factory=dict, serialization_alias="byType")
    top_domains: list[str] = Field(default_factory=list, serialization_alias="topDomains")


class ArtifactHash(BaseModel):
    """Integrity record for one artifact file inside a run directory."""

    type: ArtifactType
    sha256: str
    byte_size: int = Field(ge=0)
    basename: str


@dataclass(frozen=True)
class CaptureBundle:
    """Everything a capture produced, plus its reproducible bundle hash."""

    landing_url: str
    final_url: str
    run_dir: Path
    artifacts: list[ArtifactHash]
    bundle_hash: str
    captured_at: datetime
    viewport: dict[str, int]
    user_agent: str


@dataclass(frozen=True)
class CaptureSuccess:
    bundle: CaptureBundle


@dataclass(frozen=True)
class CapturePartial:
    """Navigation did not settle in time; artifacts reflect what had rendered."""

    bundle: CaptureBundle
    error: str


@dataclass(frozen=True)
class CaptureFailure:
    error: str
    security: bool = False


CaptureOutcome = Union[CaptureSuccess, CapturePartial, CaptureFailure]
