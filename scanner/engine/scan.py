"""Scan report — compose every calculator over one snapshot pair.

Pipeline (no I/O, no state between calls):
  1. Parse the wallet query response into ``AccountSnapshot``s
  2. Deltas of the runtime snapshot against the baseline snapshot
  3. Margin risk and worker efficiency of the runtime snapshot
  4. Network health of the node telemetry map
  5. Multi-account rollup, flattened positions and orders
  6. Asset valuation against ticker prices
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from scanner.analytics.deltas import PnLDelta, calculate_delta
from scanner.analytics.network_health import NetworkHealth, analyze_network
from scanner.analytics.orders import OrderLists, aggregate_account_orders
from scanner.analytics.portfolio import (
    AssetValuation,
    PortfolioTotals,
    available_ratio,
    rollup_accounts,
    value_assets,
)
from scanner.analytics.positions import PositionView, aggregate_account_positions
from scanner.config import ScannerConfig
from scanner.models import AccountSnapshot, NetworkNode, RuntimeSnapshot
from scanner.observability.logger import get_logger
from scanner.policy.efficiency import EfficiencyScore, ResourceCounts, score_efficiency
from scanner.policy.margin_risk import MarginAnalysis, analyze_margin

log = get_logger(__name__)


class WalletNotFoundError(LookupError):
    """The wallet query returned no accounts for the address."""


def parse_wallet_response(data: Any) -> list[AccountSnapshot]:
    """Parse the wallet query response (a JSON array of accounts).

    Raises ``WalletNotFoundError`` when there is nothing to analyse:
    the address is unknown or has not performed any actions yet.
    """
    if not isinstance(data, list):
        raise WalletNotFoundError("wallet response is not a list of accounts")
    accounts = [AccountSnapshot.from_payload(item) for item in data if isinstance(item, Mapping)]
    if not accounts:
        raise WalletNotFoundError("wallet is not connected or has no activity")

    for account in accounts:
        if account.wallet.unparsed_fields:
            log.warning(
                "scan.wallet_unparsed_fields",
                address=account.address,
                exchange=account.exchange,
                fields=account.wallet.unparsed_fields,
            )
    return accounts


@dataclass
class ScanReport:
    liquidity: PnLDelta
    available: PnLDelta
    margin: PnLDelta
    protection: PnLDelta
    margin_analysis: MarginAnalysis
    worker_analysis: EfficiencyScore
    network: NetworkHealth
    available_ratio: float
    assets: AssetValuation
    allocation: list[tuple[str, float]] = field(default_factory=list)
    totals: PortfolioTotals = field(default_factory=PortfolioTotals)
    positions: list[PositionView] = field(default_factory=list)
    orders: OrderLists = field(default_factory=OrderLists)

    def to_dict(self) -> dict[str, Any]:
        return {
            "liquidity": self.liquidity.to_dict(),
            "available": self.available.to_dict(),
            "margin": self.margin.to_dict(),
            "protection": self.protection.to_dict(),
            "margin_analysis": self.margin_analysis.to_dict(),
            "worker_analysis": self.worker_analysis.to_dict(),
            "network": self.network.to_dict(),
            "available_ratio": round(self.available_ratio, 2),
            "assets": self.assets.to_dict(),
            "allocation": [
                {"coin": coin, "share_pct": round(share, 2)} for coin, share in self.allocation
            ],
            "totals": self.totals.to_dict(),
            "positions": [p.to_dict() for p in self.positions],
            "orders": self.orders.counts(),
        }


def build_scan_report(
    runtime: RuntimeSnapshot,
    baseline: RuntimeSnapshot,
    nodes: Mapping[str, NetworkNode | Mapping[str, Any]] | None = None,
    accounts: Iterable[AccountSnapshot] = (),
    prices: Mapping[str, Any] | None = None,
    now: float | None = None,
    config: ScannerConfig | None = None,
) -> ScanReport:
    """Derive every metric for ``runtime`` against ``baseline``.

    Neither snapshot is modified.  ``now`` (epoch ms) defaults to the
    wall clock and only affects node liveness.
    """
    cfg = config or ScannerConfig()
    accounts = list(accounts)
    assets = value_assets(runtime.coins, baseline.coins, prices, cfg.portfolio)
    workers = ResourceCounts(
        active=int(runtime.workers.active),
        stopped=int(runtime.workers.stopped),
        total=int(runtime.workers.total),
    )

    report = ScanReport(
        liquidity=calculate_delta(runtime.liquidity, baseline.liquidity),
        available=calculate_delta(runtime.available, baseline.available),
        margin=calculate_delta(runtime.margin.balance, baseline.margin.balance),
        protection=calculate_delta(runtime.protection, baseline.protection),
        margin_analysis=analyze_margin(
            runtime.margin.balance,
            runtime.margin.initial,
            runtime.margin.maintenance,
            cfg.margin_risk,
        ),
        worker_analysis=score_efficiency(workers, cfg.efficiency),
        network=analyze_network(nodes or {}, now=now, config=cfg.network),
        available_ratio=available_ratio(runtime.available, runtime.liquidity),
        assets=assets,
        allocation=assets.allocation(cfg.portfolio.top_assets),
        totals=rollup_accounts(accounts),
        positions=aggregate_account_positions(accounts),
        orders=aggregate_account_orders(accounts),
    )

    log.info(
        "scan.completed",
        accounts=len(accounts),
        risk_level=report.margin_analysis.risk_level,
        worker_status=report.worker_analysis.status,
        network_status=report.network.health_status,
        liquidity_change_pct=round(report.liquidity.percentage, 2),
    )
    return report
