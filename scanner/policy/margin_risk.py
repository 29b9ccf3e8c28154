"""Margin risk classification — utilization, margin level, liquidation tier.

  utilization_ratio = initial_margin / balance × 100
  margin_level      = balance / maintenance_margin × 100

The margin level is bucketed into four tiers (worst → best):

  CRITICAL  margin_level < 110
  HIGH      margin_level < 150
  MEDIUM    margin_level < 200
  LOW       otherwise

Boundaries are half-open: a margin level exactly on a bound belongs to
the better tier.  The bounds come from ``MarginRiskConfig`` and are
pending product-owner confirmation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from scanner.analytics.numeric import coerce_number, safe_ratio
from scanner.config import MarginRiskConfig

RISK_LEVELS = ("CRITICAL", "HIGH", "MEDIUM", "LOW")


@dataclass(frozen=True)
class MarginAnalysis:
    utilization_ratio: float
    margin_level: float
    risk_level: str  # one of RISK_LEVELS

    @property
    def is_at_risk(self) -> bool:
        return self.risk_level in ("CRITICAL", "HIGH")

    def to_dict(self) -> dict[str, Any]:
        return {
            "utilization_ratio": round(self.utilization_ratio, 2),
            "margin_level": round(self.margin_level, 2),
            "risk_level": self.risk_level,
        }


def classify_margin_level(
    margin_level: float,
    config: MarginRiskConfig | None = None,
) -> str:
    """Map a margin level (%) to its risk tier."""
    cfg = config or MarginRiskConfig()
    if margin_level < cfg.critical_below:
        return "CRITICAL"
    if margin_level < cfg.high_below:
        return "HIGH"
    if margin_level < cfg.medium_below:
        return "MEDIUM"
    return "LOW"


def analyze_margin(
    balance: Any,
    initial_margin: Any,
    maintenance_margin: Any,
    config: MarginRiskConfig | None = None,
) -> MarginAnalysis:
    """Derive utilization, margin level and risk tier from a margin triple."""
    bal = coerce_number(balance)
    initial = coerce_number(initial_margin)
    maintenance = coerce_number(maintenance_margin)

    margin_level = safe_ratio(bal, maintenance)
    return MarginAnalysis(
        utilization_ratio=safe_ratio(initial, bal),
        margin_level=margin_level,
        risk_level=classify_margin_level(margin_level, config),
    )
