"""Numeric coercion — the single admission point for untrusted numbers.

Exchange payloads deliver most financial fields as decimal strings
("1234.5"), sometimes as numbers, and sometimes not at all. Everything
downstream assumes finite floats, so every raw field passes through
``coerce_number`` (or ``parse_number`` when the caller needs to know
whether the value was actually present).

Rules:
  - finite int / float / Decimal  → float(value)
  - string                        → parsed as a decimal literal
  - anything unparsable, missing, NaN or ±inf → 0.0 (flagged unparsed)

Never raises.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class ParsedNumber:
    """Coerced value plus whether the raw input was a usable number."""
    value: float
    parsed: bool


_UNPARSED = ParsedNumber(value=0.0, parsed=False)


def parse_number(value: Any) -> ParsedNumber:
    """Coerce ``value`` to a finite float, reporting parse success."""
    # bool is an int subclass but never a legitimate amount
    if value is None or isinstance(value, bool):
        return _UNPARSED

    if isinstance(value, (int, float, Decimal)):
        try:
            num = float(value)
        except (OverflowError, ValueError):
            return _UNPARSED
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return _UNPARSED
        try:
            num = float(text)
        except ValueError:
            return _UNPARSED
    else:
        return _UNPARSED

    if not math.isfinite(num):
        return _UNPARSED
    return ParsedNumber(value=num, parsed=True)


def coerce_number(value: Any) -> float:
    """Return ``value`` as a finite float, or 0.0 when it is unusable."""
    return parse_number(value).value


def safe_ratio(numerator: float, denominator: float, scale: float = 100.0) -> float:
    """``numerator / denominator * scale``, or 0.0 for a zero denominator."""
    if denominator == 0:
        return 0.0
    return numerator / denominator * scale
