"""ID utilities."""

from __future__ import annotations

import uuid


def new_id(prefix: str) -> str:
    """Return a random record id such as ``case_3f2a...``.

    Args:
        prefix: Short entity prefix, without the trailing underscore.
    """

    return f"{prefix}_{uuid.uuid4().hex[:24]}"
