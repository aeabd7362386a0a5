"""Capture job payload."""

from __future__ import annotations

from pydantic import Field

from beacongate.models.base import CamelModel
from beacongate.models.case import Category


class CaptureJob(CamelModel):
    """One evidence capture request, keyed by evidence id."""

    case_id: str
    evidence_id: str
    landing_url: str
    ad_text: str
    category: Category
    attempt: int = Field(default=1, ge=1)

    @property
    def key(self) -> str:
        return self.evidence_id
