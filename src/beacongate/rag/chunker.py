"""Chunking for policy documents and precedent entries.

Chunk ids are content-addressed: the same source, position and text always produce the same id, so
re-ingesting an unchanged corpus leaves every chunk id (and every stored citation) intact.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Sequence

DEFAULT_CHUNK_SIZE = 650
OVERLAP = 100

_SECTION_RE = re.compile(r"(?=^#{1,2}\s)", re.MULTILINE)
_PARAGRAPH_RE = re.compile(r"\n\n+")


@dataclass(frozen=True)
class Chunk:
    index: int
    content: str
    content_hash: str
    stable_id: str


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def stable_chunk_id(source: str, index: int, chunk_hash: str) -> str:
    """Derive the stable id ``chk_<12 hex>`` from ``(source, index, content hash)``."""

    digest = hashlib.sha256(f"{source}|{index}|{chunk_hash}".encode("utf-8")).hexdigest()
    return f"chk_{digest[:12]}"


def _finalize(texts: Sequence[str], source: str) -> list[Chunk]:
    chunks: list[Chunk] = []
    for i, text in enumerate(texts):
        h = content_hash(text)
        chunks.append(Chunk(index=i, content=text, content_hash=h, stable_id=stable_chunk_id(source, i, h)))
    return chunks


def chunk_policy_document(
    content: str,
    source: str,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = OVERLAP,
) -> list[Chunk]:
    """Split a markdown policy into overlapping chunks.

    The document is cut at top-level headings first; each section's paragraphs are then packed
    into chunks of roughly ``chunk_size`` characters. When a chunk is emitted, its last ``overlap``
    characters are carried into the next one.
    """

    texts: list[str] = []
    for section in _SECTION_RE.split(content):
        section = section.strip()
        if not section:
            continue
        current = ""
        for paragraph in _PARAGRAPH_RE.split(section):
            if current and len(current) + len(paragraph) + 2 > chunk_size:
                text = current.strip()
                if text:
                    texts.append(text)
                current = current[-overlap:] + "\n\n" + paragraph
            else:
                current = f"{current}\n\n{paragraph}" if current else paragraph
        if current.strip():
            texts.append(current.strip())

    if not texts and content.strip():
        texts.append(content.strip())
    return _finalize(texts, source)


def precedent_text(
    *,
    title: str,
    scenario_summary: str,
    triggered_rules: Sequence[str],
    outcome: str,
    rationale: str,
) -> str:
    parts = [
        f"Title: {title}",
        f"Scenario: {scenario_summary}",
        f"Triggered rules: {', '.join(triggered_rules) or 'None'}",
        f"Outcome: {outcome}",
        f"Rationale: {rationale}",
    ]
    return "\n\n".join(parts)


def chunk_precedent_entry(source: str, **fields: object) -> list[Chunk]:
    """A precedent is always exactly one chunk. See :func:`precedent_text` for the fields."""

    return _finalize([precedent_text(**fields)], source)  # type: ignore[arg-type]
