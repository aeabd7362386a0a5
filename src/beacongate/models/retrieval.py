"""Retrieval result models."""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from beacongate.models.base import CamelModel
from beacongate.models.case import DocType


class RetrievalScope(str, Enum):
    POLICY_ONLY = "POLICY_ONLY"
    PRECEDENT_ONLY = "PRECEDENT_ONLY"
    BOTH = "BOTH"

    def doc_types(self) -> list[DocType]:
        if self is RetrievalScope.POLICY_ONLY:
            return [DocType.POLICY]
        if self is RetrievalScope.PRECEDENT_ONLY:
            return [DocType.PRECEDENT]
        return [DocType.POLICY, DocType.PRECEDENT]


class RetrievalItem(CamelModel):
    """One ranked chunk."""

    chunk_id: str
    document_id: str
    document_title: str
    doc_type: DocType
    score: float
    snippet: str
    content: str | None = None


class RetrievalResults(CamelModel):
    """Ranked matches per document type. Both lists are always present."""

    policy: list[RetrievalItem] = Field(default_factory=list)
    precedent: list[RetrievalItem] = Field(default_factory=list)
