"""Snapshot deltas — absolute and percentage change against a baseline.

Used for every "vs previous snapshot" figure: liquidity, available
balance, margin balance, protection and rolled-up equity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from scanner.analytics.numeric import coerce_number, safe_ratio


@dataclass(frozen=True)
class PnLDelta:
    """Change between a current value and its baseline."""
    absolute: float
    percentage: float  # 0.0 when the baseline is zero
    is_profit: bool    # absolute >= 0; no change is not a loss

    def to_dict(self) -> dict[str, Any]:
        return {
            "absolute": round(self.absolute, 2),
            "percentage": round(self.percentage, 2),
            "is_profit": self.is_profit,
        }


def calculate_delta(current: Any, baseline: Any) -> PnLDelta:
    """Compare ``current`` to ``baseline``.

    Both inputs go through numeric coercion first, so decimal strings
    and missing values are accepted.  A zero baseline yields 0%
    rather than an infinite percentage.
    """
    cur = coerce_number(current)
    base = coerce_number(baseline)
    absolute = cur - base
    return PnLDelta(
        absolute=absolute,
        percentage=safe_ratio(absolute, base),
        is_profit=absolute >= 0,
    )
