"""Resource efficiency scoring for workers and nodes.

efficiency = active / total × 100 (0 when total is 0), bucketed as
CRITICAL < 50 ≤ WARNING < 70 ≤ GOOD < 90 ≤ OPTIMAL.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from scanner.analytics.numeric import coerce_number, safe_ratio
from scanner.config import EfficiencyConfig

EFFICIENCY_STATUSES = ("CRITICAL", "WARNING", "GOOD", "OPTIMAL")


@dataclass(frozen=True)
class ResourceCounts:
    """Active / stopped / total counts; active + stopped need not equal total."""
    active: int = 0
    stopped: int = 0
    total: int = 0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "ResourceCounts":
        raw = raw or {}
        return cls(
            active=int(coerce_number(raw.get("active"))),
            stopped=int(coerce_number(raw.get("stopped"))),
            total=int(coerce_number(raw.get("total"))),
        )


@dataclass(frozen=True)
class EfficiencyScore:
    efficiency: float
    status: str  # one of EFFICIENCY_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {"efficiency": round(self.efficiency, 2), "status": self.status}


def classify_efficiency(
    efficiency: float,
    config: EfficiencyConfig | None = None,
) -> str:
    cfg = config or EfficiencyConfig()
    if efficiency < cfg.critical_below:
        return "CRITICAL"
    if efficiency < cfg.warning_below:
        return "WARNING"
    if efficiency < cfg.good_below:
        return "GOOD"
    return "OPTIMAL"


def score_efficiency(
    counts: ResourceCounts | Mapping[str, Any],
    config: EfficiencyConfig | None = None,
) -> EfficiencyScore:
    """Score a set of resource counts (a ``ResourceCounts`` or plain mapping)."""
    if not isinstance(counts, ResourceCounts):
        counts = ResourceCounts.from_mapping(counts)
    efficiency = safe_ratio(counts.active, counts.total)
    return EfficiencyScore(
        efficiency=efficiency,
        status=classify_efficiency(efficiency, config),
    )
