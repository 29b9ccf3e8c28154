"""Network health — liveness, geography and resource usage of runtime nodes.

A node is active when its last telemetry update is younger than the
liveness window (5 minutes by default).  Health is bucketed on the share
of active nodes:

  CRITICAL  active ratio < 10%
  STABLE    active ratio < 40%
  GOOD      active ratio < 95%
  EXCELLENT otherwise

An empty node map is CRITICAL.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Mapping

from scanner.analytics.numeric import safe_ratio
from scanner.config import NetworkConfig
from scanner.models import NetworkNode
from scanner.observability.logger import get_logger

log = get_logger(__name__)

HEALTH_STATUSES = ("CRITICAL", "STABLE", "GOOD", "EXCELLENT")


@dataclass
class NetworkHealth:
    total_nodes: int = 0
    active_nodes: int = 0
    regions: dict[str, int] = field(default_factory=dict)
    avg_cpu_usage: float = 0.0
    avg_memory_usage: float = 0.0
    health_status: str = "CRITICAL"
    last_update: float = 0.0

    @property
    def active_ratio(self) -> float:
        return safe_ratio(self.active_nodes, self.total_nodes)

    def top_regions(self, limit: int = 8) -> list[tuple[str, int]]:
        """Regions by node count, largest first (ties by name)."""
        ranked = sorted(self.regions.items(), key=lambda kv: (-kv[1], kv[0]))
        return ranked[:limit]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_nodes": self.total_nodes,
            "active_nodes": self.active_nodes,
            "active_ratio": round(self.active_ratio, 2),
            "regions": dict(self.regions),
            "avg_cpu_usage": round(self.avg_cpu_usage, 2),
            "avg_memory_usage": round(self.avg_memory_usage, 2),
            "health_status": self.health_status,
            "last_update": self.last_update,
        }


def now_ms() -> float:
    return time.time() * 1000


def is_node_active(
    node: NetworkNode,
    now: float,
    window_ms: int = NetworkConfig().liveness_window_ms,
) -> bool:
    return now - node.last_update < window_ms


def classify_health(active_ratio: float, config: NetworkConfig | None = None) -> str:
    cfg = config or NetworkConfig()
    if active_ratio < cfg.critical_below:
        return "CRITICAL"
    if active_ratio < cfg.stable_below:
        return "STABLE"
    if active_ratio < cfg.good_below:
        return "GOOD"
    return "EXCELLENT"


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _cpu_usage(node: NetworkNode) -> float:
    return _mean(node.cpu)


def _memory_usage(node: NetworkNode) -> float:
    if not node.has_memory:
        return 0.0
    return safe_ratio(node.heap_used, node.heap_total)


def analyze_network(
    nodes: Mapping[str, NetworkNode | Mapping[str, Any]],
    now: float | None = None,
    config: NetworkConfig | None = None,
) -> NetworkHealth:
    """Summarise a node-id → telemetry map.

    Raw telemetry mappings are parsed with ``NetworkNode.from_payload``.
    Nodes without CPU or memory data (or reporting zero) are left out of
    the respective averages; nodes without a country are left out of
    ``regions`` but still counted.  Anything other than a mapping reads as
    an empty map.
    """
    cfg = config or NetworkConfig()
    current = now_ms() if now is None else now
    if not isinstance(nodes, Mapping):
        log.warning("network_health.nodes_not_a_map", kind=type(nodes).__name__)
        nodes = {}

    parsed = [
        node if isinstance(node, NetworkNode) else NetworkNode.from_payload(node_id, node)
        for node_id, node in nodes.items()
    ]

    report = NetworkHealth(total_nodes=len(parsed))
    if not parsed:
        return report

    report.active_nodes = sum(
        1 for node in parsed if is_node_active(node, current, cfg.liveness_window_ms)
    )

    for node in parsed:
        if node.country:
            report.regions[node.country] = report.regions.get(node.country, 0) + 1

    report.avg_cpu_usage = _mean([u for u in map(_cpu_usage, parsed) if u > 0])
    report.avg_memory_usage = _mean([u for u in map(_memory_usage, parsed) if u > 0])
    report.health_status = classify_health(report.active_ratio, cfg)
    report.last_update = max(node.last_update for node in parsed)

    log.debug(
        "network_health.analyzed",
        total=report.total_nodes,
        active=report.active_nodes,
        regions=len(report.regions),
        status=report.health_status,
    )
    return report
