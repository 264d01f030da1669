"""Normalisation helpers for human-entered asset codes and serial numbers.

Operators type codes like ``lap 001`` or ``LAP_001`` for the same laptop. The
registry stores the canonical form and lookups try the aliases below.
"""

from __future__ import annotations

import re
from typing import List

__all__ = ["normalize_code", "code_aliases"]


_SPACE_RE = re.compile(r"\s+")
_SEPARATOR_RE = re.compile(r"[\s_]+")


def _strip_and_collapse(value: str) -> str:
    value = value.strip()
    return _SPACE_RE.sub(" ", value)


def normalize_code(raw: str | None) -> str | None:
    """Return the canonical representation of an asset code or serial number.

    Outer whitespace is trimmed, inner whitespace collapsed and letters are
    upper-cased. Empty input yields ``None``.
    """

    if raw is None:
        return None
    cleaned = _strip_and_collapse(str(raw))
    if not cleaned:
        return None
    return cleaned.upper()


def code_aliases(raw: str | None) -> list[str]:
    """Return the code variants that should resolve to the same asset."""

    canonical = normalize_code(raw)
    if not canonical:
        return []

    aliases: List[str] = []
    seen: set[str] = set()

    def add(candidate: str | None) -> None:
        if not candidate or candidate in seen:
            return
        seen.add(candidate)
        aliases.append(candidate)

    add(canonical)
    add(_SEPARATOR_RE.sub("-", canonical))
    add(canonical.replace("-", ""))
    add(_SEPARATOR_RE.sub("", canonical).replace("-", ""))
    return aliases
