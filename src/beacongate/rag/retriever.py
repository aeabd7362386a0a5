"""Nearest-neighbour retrieval over stored chunk embeddings."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from beacongate.db.models import RetrievalRun
from beacongate.db.store import ChunkCandidate, Store
from beacongate.logging import get_logger
from beacongate.models.case import DocType
from beacongate.models.retrieval import RetrievalItem, RetrievalResults, RetrievalScope
from beacongate.rag.embeddings import EmbeddingDimensionError, Embedder

logger = get_logger(__name__)

DEFAULT_TOP_K = 6
SNIPPET_CHARS = 200
PAGE_EXCERPT_CHARS = 500

_WS_RE = re.compile(r"\s+")


def make_snippet(content: str, max_len: int = SNIPPET_CHARS) -> str:
    text = _WS_RE.sub(" ", content).strip()
    return text if len(text) <= max_len else text[:max_len] + "…"


def build_query_text(
    *,
    ad_text: str,
    category: str,
    landing_url: str,
    page_excerpt: str | None = None,
    final_domain: str | None = None,
) -> str:
    """Compose the retrieval query from case fields and captured evidence."""

    parts = [f"Ad: {ad_text}", f"Category: {category}", f"Landing URL: {landing_url}"]
    if page_excerpt:
        parts.append(f"Page excerpt: {page_excerpt}")
    if final_domain:
        parts.append(f"Final domain: {final_domain}")
    return "\n".join(parts)


def rank_by_cosine(
    query: Sequence[float], candidates: Sequence[ChunkCandidate], top_k: int
) -> list[tuple[ChunkCandidate, float]]:
    """Return the ``top_k`` candidates by cosine similarity, highest first.

    Ties keep candidate order.
    """

    if not candidates or top_k <= 0:
        return []
    q = np.asarray(query, dtype=np.float64)
    matrix = np.asarray([c.vector for c in candidates], dtype=np.float64)
    if matrix.shape[1] != q.shape[0]:
        raise EmbeddingDimensionError(
            f"Stored vectors have dimension {matrix.shape[1]}, query has {q.shape[0]}"
        )
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    norms[norms == 0] = 1.0
    scores = (matrix @ q) / norms
    order = np.argsort(-scores, kind="stable")[:top_k]
    return [(candidates[i], float(scores[i])) for i in order]


@dataclass(frozen=True)
class RetrievalOutcome:
    run: RetrievalRun
    results: RetrievalResults


class Retriever:
    """Rank chunks for a query and record the retrieval run."""

    def __init__(self, store: Store, embedder: Embedder) -> None:
        self._store = store
        self._embedder = embedder

    def search(
        self, query_text: str, *, top_k: int = DEFAULT_TOP_K, scope: RetrievalScope = RetrievalScope.BOTH
    ) -> RetrievalResults:
        """Rank chunks without persisting anything."""

        query_vector = self._embedder.embed_one(query_text)
        results = RetrievalResults()
        for doc_type in scope.doc_types():
            candidates = self._store.chunk_candidates([doc_type])
            ranked = rank_by_cosine(query_vector, candidates, top_k)
            items = [
                RetrievalItem(
                    chunk_id=c.chunk_id,
                    document_id=c.document_id,
                    document_title=c.document_title,
                    doc_type=c.doc_type,
                    score=score,
                    snippet=make_snippet(c.content),
                    content=c.content,
                )
                for c, score in ranked
            ]
            if doc_type == DocType.POLICY:
                results.policy = items
            else:
                results.precedent = items
        return results

    def run(
        self,
        case_id: str,
        query_text: str,
        *,
        top_k: int = DEFAULT_TOP_K,
        scope: RetrievalScope = RetrievalScope.BOTH,
    ) -> RetrievalOutcome:
        """Search and persist one :class:`RetrievalRun`."""

        results = self.search(query_text, top_k=top_k, scope=scope)
        run = self._store.add_retrieval_run(
            case_id=case_id,
            retrieval_type=scope.value,
            query_text=query_text,
            embed_model=self._embedder.model_name,
            top_k=top_k,
            results=results.to_wire(),
        )
        logger.info(
            "Retrieval run %s: %d policy, %d precedent matches",
            run.id,
            len(results.policy),
            len(results.precedent),
        )
        return RetrievalOutcome(run=run, results=results)
