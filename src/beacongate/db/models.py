"""SQLAlchemy models for all database tables."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from beacongate.models.case import (
    ArtifactType,
    CaptureRunStatus,
    CaseStatus,
    Category,
    DocType,
    EvidenceRef,
    QueueStatus,
    RiskTier,
    Severity,
)
from beacongate.utils.ids import new_id


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(cls: type) -> Enum:
    return Enum(cls, native_enum=False, length=32, validate_strings=True)


class Base(DeclarativeBase):
    """Declarative base for BeaconGate tables."""


class Evidence(Base):
    """Captured record of a case's landing destination."""

    __tablename__ = "evidence"

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: new_id("ev"))
    landing_url: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    last_captured_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    current_capture_run_id: Mapped[str | None] = mapped_column(String(40), nullable=True)
    screenshot_artifact_id: Mapped[str | None] = mapped_column(String(40), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    case: Mapped["Case"] = relationship("Case", back_populates="evidence", uselist=False)
    capture_runs: Mapped[list["CaptureRun"]] = relationship(
        "CaptureRun", back_populates="evidence", order_by="CaptureRun.attempt"
    )
    artifacts: Mapped[list["Artifact"]] = relationship("Artifact", back_populates="evidence")


class Case(Base):
    """One submitted advertisement under review."""

    __tablename__ = "cases"

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: new_id("case"))
    ad_text: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[Category] = mapped_column(_enum(Category), nullable=False)
    landing_url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[CaseStatus] = mapped_column(_enum(CaseStatus), default=CaseStatus.NEW, nullable=False)
    evidence_id: Mapped[str] = mapped_column(ForeignKey("evidence.id"), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    evidence: Mapped[Evidence] = relationship("Evidence", back_populates="case")
    queue_item: Mapped["QueueItem | None"] = relationship("QueueItem", back_populates="case", uselist=False)
    rule_runs: Mapped[list["RuleRun"]] = relationship("RuleRun", back_populates="case")


class CaptureRun(Base):
    """One capture attempt (or one delivery of it). Rows are never deleted."""

    __tablename__ = "capture_runs"
    __table_args__ = (
        UniqueConstraint("evidence_id", "attempt", "delivery", name="uq_capture_run_delivery"),
    )

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: new_id("run"))
    evidence_id: Mapped[str] = mapped_column(ForeignKey("evidence.id"), nullable=False, index=True)
    status: Mapped[CaptureRunStatus] = mapped_column(_enum(CaptureRunStatus), nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    # A redelivered job that was interrupted mid-capture gets a fresh run with the next delivery.
    delivery: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    evidence: Mapped[Evidence] = relationship("Evidence", back_populates="capture_runs")
    artifacts: Mapped[list["Artifact"]] = relationship("Artifact", back_populates="capture_run")


class Artifact(Base):
    """Immutable record of one captured file."""

    __tablename__ = "artifacts"

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: new_id("art"))
    evidence_id: Mapped[str] = mapped_column(ForeignKey("evidence.id"), nullable=False, index=True)
    capture_run_id: Mapped[str] = mapped_column(ForeignKey("capture_runs.id"), nullable=False, index=True)
    type: Mapped[ArtifactType] = mapped_column(_enum(ArtifactType), nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)  # relative to the storage root
    sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    byte_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    evidence: Mapped[Evidence] = relationship("Evidence", back_populates="artifacts")
    capture_run: Mapped[CaptureRun] = relationship("CaptureRun", back_populates="artifacts")


class RuleRun(Base):
    """One rule verdict. Rows sharing an ``evaluation_id`` come from one engine invocation."""

    __tablename__ = "rule_runs"

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: new_id("rr"))
    case_id: Mapped[str] = mapped_column(ForeignKey("cases.id"), nullable=False, index=True)
    evaluation_id: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    capture_run_id: Mapped[str | None] = mapped_column(ForeignKey("capture_runs.id"), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rule_id: Mapped[str] = mapped_column(String(64), nullable=False)
    severity: Mapped[Severity] = mapped_column(_enum(Severity), nullable=False)
    config_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    triggered: Mapped[bool] = mapped_column(Boolean, nullable=False)
    matched_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    explanation: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_ref: Mapped[EvidenceRef] = mapped_column(_enum(EvidenceRef), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    case: Mapped[Case] = relationship("Case", back_populates="rule_runs")


class QueueItem(Base):
    """Reviewer-queue risk projection for a case."""

    __tablename__ = "queue_items"

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: new_id("qi"))
    case_id: Mapped[str] = mapped_column(ForeignKey("cases.id"), unique=True, nullable=False)
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    risk_tier: Mapped[RiskTier] = mapped_column(_enum(RiskTier), nullable=False, default=RiskTier.LOW)
    status: Mapped[QueueStatus] = mapped_column(_enum(QueueStatus), nullable=False, default=QueueStatus.OPEN)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    case: Mapped[Case] = relationship("Case", back_populates="queue_item")


class KnowledgeDocument(Base):
    """A policy or precedent document."""

    __tablename__ = "knowledge_documents"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    type: Mapped[DocType] = mapped_column(_enum(DocType), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    source: Mapped[str] = mapped_column(String(500), unique=True, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    chunks: Mapped[list["KnowledgeChunk"]] = relationship(
        "KnowledgeChunk",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="KnowledgeChunk.chunk_index",
    )


class KnowledgeChunk(Base):
    """Content-addressed slice of a knowledge document. ``id`` is the stable chunk id."""

    __tablename__ = "knowledge_chunks"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    document_id: Mapped[str] = mapped_column(ForeignKey("knowledge_documents.id"), nullable=False, index=True)
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    document: Mapped[KnowledgeDocument] = relationship("KnowledgeDocument", back_populates="chunks")
    embedding: Mapped["KnowledgeEmbedding | None"] = relationship(
        "KnowledgeEmbedding", back_populates="chunk", uselist=False, cascade="all, delete-orphan"
    )


class KnowledgeEmbedding(Base):
    """One fixed-dimension vector per chunk."""

    __tablename__ = "knowledge_embeddings"

    chunk_id: Mapped[str] = mapped_column(ForeignKey("knowledge_chunks.id"), primary_key=True)
    model: Mapped[str] = mapped_column(String(200), nullable=False)
    dimension: Mapped[int] = mapped_column(Integer, nullable=False)
    vector: Mapped[list[float]] = mapped_column(JSON, nullable=False)

    chunk: Mapped[KnowledgeChunk] = relationship("KnowledgeChunk", back_populates="embedding")


class RetrievalRun(Base):
    """One nearest-neighbour search and its ranked results."""

    __tablename__ = "retrieval_runs"

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: new_id("ret"))
    case_id: Mapped[str] = mapped_column(ForeignKey("cases.id"), nullable=False, index=True)
    retrieval_type: Mapped[str] = mapped_column(String(32), nullable=False)
    query_text: Mapped[str] = mapped_column(Text, nullable=False)
    embed_model: Mapped[str] = mapped_column(String(200), nullable=False)
    top_k: Mapped[int] = mapped_column(Integer, nullable=False)
    results: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class LLMRun(Base):
    """One advisory generation attempt."""

    __tablename__ = "llm_runs"

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: new_id("llm"))
    case_id: Mapped[str] = mapped_column(ForeignKey("cases.id"), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    model: Mapped[str] = mapped_column(String(200), nullable=False)
    temperature: Mapped[float] = mapped_column(Float, nullable=False)
    prompt_version: Mapped[str] = mapped_column(String(32), nullable=False)
    input_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    advisory_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    advisory_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    citations_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    latency_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
