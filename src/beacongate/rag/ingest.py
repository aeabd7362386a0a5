"""Knowledge-base ingestion.

Layout under the RAG directory::

    policies/*.md                        one policy document per file
    precedents/seed_precedents.json      list of precedent entries

Document ids derive from the source string and chunk ids are stable ids, so ingesting the same
corpus twice is a no-op. A document whose content changed has its chunk set replaced.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from pydantic import BaseModel, Field

from beacongate.db.store import Store
from beacongate.logging import get_logger
from beacongate.models.case import DocType
from beacongate.rag.chunker import Chunk, chunk_policy_document, chunk_precedent_entry, content_hash
from beacongate.rag.embeddings import Embedder

logger = get_logger(__name__)


class PrecedentEntry(BaseModel):
    """One entry of ``seed_precedents.json``."""

    title: str = ""
    scenario_summary: str = Field(default="", alias="scenarioSummary")
    triggered_rules: list[str] = Field(default_factory=list, alias="triggeredRules")
    outcome: str = ""
    rationale: str = ""


@dataclass
class IngestReport:
    ingested: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    chunks: int = 0


def document_id_for(source: str) -> str:
    return "doc_" + content_hash(source)[:16]


class KnowledgeIngestor:
    """Chunk, embed and store policy and precedent documents."""

    def __init__(self, store: Store, embedder: Embedder) -> None:
        self._store = store
        self._embedder = embedder

    def ingest_document(
        self, *, doc_type: DocType, title: str, source: str, chunks: Sequence[Chunk], report: IngestReport
    ) -> None:
        doc_hash = content_hash("\n".join(c.content_hash for c in chunks))
        existing = self._store.get_document_by_source(source)
        if existing is not None and existing.content_hash == doc_hash:
            report.unchanged.append(source)
            return

        vectors = self._embedder.embed([c.content for c in chunks])
        self._store.replace_document(
            document_id=document_id_for(source),
            doc_type=doc_type,
            title=title,
            source=source,
            content_hash=doc_hash,
            chunks=chunks,
            vectors=vectors,
            model=self._embedder.model_name,
        )
        report.ingested.append(source)
        report.chunks += len(chunks)
        logger.info("Ingested %s: %s (%d chunks)", doc_type.value.lower(), title, len(chunks))

    def ingest_policies(self, policies_dir: Path, report: IngestReport) -> None:
        if not policies_dir.is_dir():
            logger.info("No policies folder at %s, skipping policies", policies_dir)
            return
        for path in sorted(policies_dir.glob("*.md")):
            source = f"BeaconGate Policy: {path.stem}"
            chunks = chunk_policy_document(path.read_text(encoding="utf-8"), source)
            if not chunks:
                continue
            self.ingest_document(
                doc_type=DocType.POLICY,
                title=path.stem.replace("_", " "),
                source=source,
                chunks=chunks,
                report=report,
            )

    def ingest_precedents(self, precedents_file: Path, report: IngestReport) -> None:
        if not precedents_file.is_file():
            logger.info("No precedents file at %s, skipping precedents", precedents_file)
            return
        raw: list[dict[str, Any]] = json.loads(precedents_file.read_text(encoding="utf-8"))
        for idx, item in enumerate(raw):
            entry = PrecedentEntry.model_validate(item)
            title = entry.title or f"Precedent {idx + 1}"
            source = f"Precedent: {title}"
            chunks = chunk_precedent_entry(
                source,
                title=entry.title,
                scenario_summary=entry.scenario_summary,
                triggered_rules=entry.triggered_rules,
                outcome=entry.outcome,
                rationale=entry.rationale,
            )
            self.ingest_document(
                doc_type=DocType.PRECEDENT, title=title, source=source, chunks=chunks, report=report
            )

    def ingest_dir(self, rag_dir: Path, *, reindex: bool = False) -> IngestReport:
        """Ingest everything under ``rag_dir``.

        Args:
            rag_dir: Directory holding ``policies/`` and ``precedents/``.
            reindex: Clear all knowledge tables first.
        """

        if reindex:
            logger.info("Reindex requested: clearing knowledge tables")
            self._store.clear_knowledge()
        report = IngestReport()
        self.ingest_policies(rag_dir / "policies", report)
        self.ingest_precedents(rag_dir / "precedents" / "seed_precedents.json", report)
        logger.info(
            "Ingest done: %d ingested, %d unchanged, %d total chunks stored",
            len(report.ingested),
            len(report.unchanged),
            self._store.count_chunks(),
        )
        return report
