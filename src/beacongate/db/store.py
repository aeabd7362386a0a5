"""Repository over the relational store.

Every public method runs in its own transaction. Returned ORM objects are detached with their
column attributes loaded; relationships are not, so callers ask the store for related rows
explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from beacongate.db.models import (
    Artifact,
    CaptureRun,
    Case,
    Evidence,
    KnowledgeChunk,
    KnowledgeDocument,
    KnowledgeEmbedding,
    LLMRun,
    QueueItem,
    RetrievalRun,
    RuleRun,
    utcnow,
)
from beacongate.logging import get_logger
from beacongate.models.capture import ArtifactHash
from beacongate.models.case import (
    ArtifactType,
    CaptureRunStatus,
    CaseStatus,
    Category,
    DocType,
    QueueStatus,
    RiskTier,
)
from beacongate.utils.ids import new_id

logger = get_logger(__name__)

INTERRUPTED_MESSAGE = "Capture interrupted before completion (job redelivered)"


class CaseNotFoundError(LookupError):
    """Raised when a case id does not exist."""


@dataclass(frozen=True)
class ChunkCandidate:
    """A chunk with its vector, as the retriever needs it."""

    chunk_id: str
    document_id: str
    document_title: str
    doc_type: DocType
    content: str
    vector: list[float]


@dataclass(frozen=True)
class StoredArtifact:
    """Artifact metadata to persist for one captured file."""

    hash: ArtifactHash
    path: str
    mime_type: str


class Store:
    """Transactional create/update/find over the BeaconGate tables."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._sessions = session_factory

    # Cases

    def create_case(
        self, *, ad_text: str, category: Category, landing_url: str, evidence_hash: str
    ) -> tuple[Case, Evidence]:
        """Create evidence, case (``CAPTURING``) and its queue item (score 10, LOW, OPEN)."""

        with self._sessions.begin() as session:
            evidence = Evidence(id=new_id("ev"), landing_url=landing_url, evidence_hash=evidence_hash)
            case = Case(
                id=new_id("case"),
                ad_text=ad_text,
                category=category,
                landing_url=landing_url,
                status=CaseStatus.CAPTURING,
                evidence_id=evidence.id,
            )
            session.add_all([evidence, case])
            session.add(QueueItem(case_id=case.id, risk_score=10, risk_tier=RiskTier.LOW, status=QueueStatus.OPEN))
        return case, evidence

    def get_case(self, case_id: str) -> Case:
        with self._sessions() as session:
            case = session.get(Case, case_id)
            if case is None:
                raise CaseNotFoundError(case_id)
            return case

    def get_evidence(self, evidence_id: str) -> Evidence | None:
        with self._sessions() as session:
            return session.get(Evidence, evidence_id)

    def get_case_by_evidence(self, evidence_id: str) -> Case | None:
        with self._sessions() as session:
            return session.scalars(select(Case).where(Case.evidence_id == evidence_id)).first()

    def set_case_status(self, case_id: str, status: CaseStatus) -> None:
        with self._sessions.begin() as session:
            case = session.get(Case, case_id)
            if case is None:
                raise CaseNotFoundError(case_id)
            case.status = status

    def get_queue_item(self, case_id: str) -> QueueItem | None:
        with self._sessions() as session:
            return session.scalars(select(QueueItem).where(QueueItem.case_id == case_id)).first()

    def update_queue_item(self, case_id: str, *, score: int, tier: RiskTier) -> None:
        with self._sessions.begin() as session:
            item = session.scalars(select(QueueItem).where(QueueItem.case_id == case_id)).first()
            if item is None:
                session.add(QueueItem(case_id=case_id, risk_score=score, risk_tier=tier, status=QueueStatus.OPEN))
            else:
                item.risk_score = score
                item.risk_tier = tier

    # Capture runs

    def max_attempt(self, evidence_id: str) -> int:
        with self._sessions() as session:
            value = session.scalar(
                select(func.max(CaptureRun.attempt)).where(CaptureRun.evidence_id == evidence_id)
            )
            return int(value or 0)

    def list_capture_runs(self, evidence_id: str) -> list[CaptureRun]:
        with self._sessions() as session:
            return list(
                session.scalars(
                    select(CaptureRun)
                    .where(CaptureRun.evidence_id == evidence_id)
                    .order_by(CaptureRun.attempt, CaptureRun.delivery)
                )
            )

    def get_capture_run(self, run_id: str) -> CaptureRun | None:
        with self._sessions() as session:
            return session.get(CaptureRun, run_id)

    def find_capture_run(self, evidence_id: str, attempt: int) -> CaptureRun | None:
        """The latest run recorded for ``attempt``, across deliveries."""

        with self._sessions() as session:
            return session.scalars(
                select(CaptureRun)
                .where(CaptureRun.evidence_id == evidence_id, CaptureRun.attempt == attempt)
                .order_by(CaptureRun.delivery.desc())
            ).first()

    def record_failed_capture(self, evidence_id: str, *, attempt: int, error: str) -> CaptureRun:
        """Record an attempt that was refused before any fetch."""

        now = utcnow()
        with self._sessions.begin() as session:
            run = CaptureRun(
                id=new_id("run"),
                evidence_id=evidence_id,
                status=CaptureRunStatus.FAILED,
                attempt=attempt,
                delivery=1,
                started_at=now,
                finished_at=now,
                error_message=error,
            )
            session.add(run)
            evidence = session.get(Evidence, evidence_id)
            if evidence is not None:
                evidence.current_capture_run_id = run.id
        return run

    def start_capture_run(self, evidence_id: str, *, attempt: int) -> CaptureRun:
        """Create a ``RUNNING`` run for ``attempt`` and make it the evidence's current run.

        Finished runs are never reopened. A run of the same attempt still marked ``RUNNING`` was
        interrupted (its worker died or its bookkeeping failed); it is closed as ``FAILED`` and the
        new run takes the next delivery number, so it gets its own run directory.
        """

        now = utcnow()
        with self._sessions.begin() as session:
            previous = session.scalars(
                select(CaptureRun)
                .where(CaptureRun.evidence_id == evidence_id, CaptureRun.attempt == attempt)
                .order_by(CaptureRun.delivery.desc())
            ).first()
            delivery = 1
            if previous is not None:
                delivery = previous.delivery + 1
                if previous.status == CaptureRunStatus.RUNNING:
                    previous.status = CaptureRunStatus.FAILED
                    previous.error_message = INTERRUPTED_MESSAGE
                    previous.finished_at = now
            run = CaptureRun(
                id=new_id("run"),
                evidence_id=evidence_id,
                attempt=attempt,
                delivery=delivery,
                status=CaptureRunStatus.RUNNING,
                started_at=now,
            )
            session.add(run)
            evidence = session.get(Evidence, evidence_id)
            if evidence is not None:
                evidence.current_capture_run_id = run.id
        return run

    def finish_capture_run(self, run_id: str, *, succeeded: bool, error: str | None = None) -> None:
        with self._sessions.begin() as session:
            run = session.get(CaptureRun, run_id)
            if run is None:
                return
            run.status = CaptureRunStatus.SUCCEEDED if succeeded else CaptureRunStatus.FAILED
            run.error_message = error
            run.finished_at = utcnow()

    # Artifacts

    def save_artifacts(
        self,
        *,
        evidence_id: str,
        capture_run_id: str,
        artifacts: Sequence[StoredArtifact],
        bundle_hash: str,
        captured_at: datetime,
    ) -> list[Artifact]:
        """Persist artifact rows and roll the evidence forward to this capture."""

        rows: list[Artifact] = []
        with self._sessions.begin() as session:
            for item in artifacts:
                row = Artifact(
                    id=new_id("art"),
                    evidence_id=evidence_id,
                    capture_run_id=capture_run_id,
                    type=item.hash.type,
                    path=item.path,
                    sha256=item.hash.sha256,
                    byte_size=item.hash.byte_size,
                    mime_type=item.mime_type,
                )
                session.add(row)
                rows.append(row)
            evidence = session.get(Evidence, evidence_id)
            if evidence is not None:
                evidence.evidence_hash = bundle_hash
                evidence.last_captured_at = captured_at
                screenshot = next((r for r in rows if r.type == ArtifactType.SCREENSHOT), None)
                # Always from this capture, never a stale one from an earlier run.
                evidence.screenshot_artifact_id = screenshot.id if screenshot is not None else None
        return rows

    def get_artifact(self, artifact_id: str) -> Artifact | None:
        with self._sessions() as session:
            return session.get(Artifact, artifact_id)

    def list_artifacts(self, evidence_id: str) -> list[Artifact]:
        with self._sessions() as session:
            return list(
                session.scalars(
                    select(Artifact).where(Artifact.evidence_id == evidence_id).order_by(Artifact.created_at)
                )
            )

    def latest_artifacts(self, evidence_id: str) -> dict[ArtifactType, Artifact]:
        """Artifacts of the most recent capture run that produced any."""

        with self._sessions() as session:
            latest_run = session.scalar(
                select(CaptureRun.id)
                .join(Artifact, Artifact.capture_run_id == CaptureRun.id)
                .where(CaptureRun.evidence_id == evidence_id)
                .order_by(CaptureRun.attempt.desc(), CaptureRun.delivery.desc())
                .limit(1)
            )
            if latest_run is None:
                return {}
            rows = session.scalars(select(Artifact).where(Artifact.capture_run_id == latest_run))
            return {row.type: row for row in rows}

    # Rule runs

    def add_rule_runs(self, case_id: str, capture_run_id: str | None, outcomes: Iterable[Any]) -> str:
        """Append one evaluation's rule runs and return its evaluation id."""

        evaluation_id = new_id("eval")
        with self._sessions.begin() as session:
            for position, o in enumerate(outcomes):
                session.add(
                    RuleRun(
                        id=new_id("rr"),
                        position=position,
                        case_id=case_id,
                        evaluation_id=evaluation_id,
                        capture_run_id=capture_run_id,
                        rule_id=o.rule_id,
                        severity=o.severity,
                        config_hash=o.config_hash,
                        triggered=o.triggered,
                        matched_text=o.matched_text,
                        explanation=o.explanation,
                        evidence_ref=o.evidence_ref,
                    )
                )
        return evaluation_id

    def latest_rule_runs(self, case_id: str) -> list[RuleRun]:
        """Rule runs of the case's most recent evaluation, in rule-table order."""

        with self._sessions() as session:
            latest = session.scalars(
                select(RuleRun).where(RuleRun.case_id == case_id).order_by(RuleRun.created_at.desc()).limit(1)
            ).first()
            if latest is None:
                return []
            return list(
                session.scalars(
                    select(RuleRun).where(RuleRun.evaluation_id == latest.evaluation_id).order_by(RuleRun.position)
                )
            )

    # Knowledge base

    def get_document_by_source(self, source: str) -> KnowledgeDocument | None:
        with self._sessions() as session:
            return session.scalars(select(KnowledgeDocument).where(KnowledgeDocument.source == source)).first()

    def replace_document(
        self,
        *,
        document_id: str,
        doc_type: DocType,
        title: str,
        source: str,
        content_hash: str,
        chunks: Sequence[Any],
        vectors: Sequence[list[float]],
        model: str,
    ) -> None:
        """Insert a document, replacing any previous chunk set for the same source."""

        with self._sessions.begin() as session:
            existing = session.scalars(select(KnowledgeDocument).where(KnowledgeDocument.source == source)).first()
            if existing is not None:
                session.delete(existing)
                session.flush()
            doc = KnowledgeDocument(
                id=document_id, type=doc_type, title=title, source=source, content_hash=content_hash
            )
            session.add(doc)
            for chunk, vector in zip(chunks, vectors, strict=True):
                row = KnowledgeChunk(
                    id=chunk.stable_id,
                    document_id=document_id,
                    chunk_index=chunk.index,
                    content=chunk.content,
                    content_hash=chunk.content_hash,
                )
                row.embedding = KnowledgeEmbedding(model=model, dimension=len(vector), vector=list(vector))
                session.add(row)

    def clear_knowledge(self) -> None:
        with self._sessions.begin() as session:
            session.execute(delete(KnowledgeEmbedding))
            session.execute(delete(KnowledgeChunk))
            session.execute(delete(KnowledgeDocument))

    def chunk_candidates(self, doc_types: Iterable[DocType]) -> list[ChunkCandidate]:
        with self._sessions() as session:
            rows = session.execute(
                select(
                    KnowledgeChunk.id,
                    KnowledgeDocument.id,
                    KnowledgeDocument.title,
                    KnowledgeDocument.type,
                    KnowledgeChunk.content,
                    KnowledgeEmbedding.vector,
                )
                .join(KnowledgeDocument, KnowledgeChunk.document_id == KnowledgeDocument.id)
                .join(KnowledgeEmbedding, KnowledgeEmbedding.chunk_id == KnowledgeChunk.id)
                .where(KnowledgeDocument.type.in_(list(doc_types)))
                .order_by(KnowledgeDocument.source, KnowledgeChunk.chunk_index)
            )
            return [
                ChunkCandidate(
                    chunk_id=r[0], document_id=r[1], document_title=r[2], doc_type=r[3], content=r[4], vector=r[5]
                )
                for r in rows
            ]

    def existing_chunk_ids(self, chunk_ids: Iterable[str]) -> set[str]:
        ids = set(chunk_ids)
        if not ids:
            return set()
        with self._sessions() as session:
            return set(session.scalars(select(KnowledgeChunk.id).where(KnowledgeChunk.id.in_(ids))))

    def count_chunks(self) -> int:
        with self._sessions() as session:
            return int(session.scalar(select(func.count()).select_from(KnowledgeChunk)) or 0)

    # Retrieval and advisory runs

    def add_retrieval_run(
        self,
        *,
        case_id: str,
        retrieval_type: str,
        query_text: str,
        embed_model: str,
        top_k: int,
        results: dict[str, Any],
    ) -> RetrievalRun:
        with self._sessions.begin() as session:
            run = RetrievalRun(
                id=new_id("ret"),
                case_id=case_id,
                retrieval_type=retrieval_type,
                query_text=query_text,
                embed_model=embed_model,
                top_k=top_k,
                results=results,
            )
            session.add(run)
        return run

    def latest_retrieval_run(self, case_id: str) -> RetrievalRun | None:
        with self._sessions() as session:
            return session.scalars(
                select(RetrievalRun).where(RetrievalRun.case_id == case_id).order_by(RetrievalRun.created_at.desc())
            ).first()

    def list_retrieval_runs(self, case_id: str) -> list[RetrievalRun]:
        with self._sessions() as session:
            return list(
                session.scalars(
                    select(RetrievalRun).where(RetrievalRun.case_id == case_id).order_by(RetrievalRun.created_at)
                )
            )

    def add_llm_run(self, **fields: Any) -> LLMRun:
        with self._sessions.begin() as session:
            run = LLMRun(id=new_id("llm"), **fields)
            session.add(run)
        return run

    def list_llm_runs(self, case_id: str) -> list[LLMRun]:
        with self._sessions() as session:
            return list(
                session.scalars(select(LLMRun).where(LLMRun.case_id == case_id).order_by(LLMRun.created_at))
            )
