"""Lenient JSON extraction from model output.

Chat models asked for "only JSON" still wrap it in markdown fences or prepend a sentence now and
then. These helpers recover the object without guessing at its contents.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

from beacongate.logging import get_logger

logger = get_logger(__name__)

_FENCED_JSON_RE = re.compile(r"```json\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)
_FENCED_ANY_RE = re.compile(r"```\s*\n?(.*?)\n?```", re.DOTALL)


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def _first_balanced_object(text: str) -> Optional[str]:
    """Return the first brace-balanced ``{...}`` span, honouring string literals."""

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Extract one JSON object from ``text``.

    Strategies, strictest first:
        1. The body of a fenced ```json block (or any fenced block).
        2. The whole text, when it looks like a single object.
        3. The first brace-balanced ``{...}`` span anywhere in the text.

    Returns ``None`` instead of raising when nothing parses.
    """

    if not text:
        return None

    cleaned = text.strip()

    m = _FENCED_JSON_RE.search(cleaned) or _FENCED_ANY_RE.search(cleaned)
    if m:
        inner = m.group(1).strip()
        if inner.startswith("{") and inner.endswith("}"):
            obj = _loads_object(inner)
            if obj is not None:
                return obj
        logger.debug("extract_json_object: fenced block did not hold a JSON object")

    if cleaned.startswith("{") and cleaned.endswith("}"):
        obj = _loads_object(cleaned)
        if obj is not None:
            return obj
        logger.debug("extract_json_object: whole-text JSON parse failed")

    candidate = _first_balanced_object(cleaned)
    if candidate is not None:
        obj = _loads_object(candidate)
        if obj is not None:
            return obj
    logger.debug("extract_json_object: no JSON object found")
    return None
