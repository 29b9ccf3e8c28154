"""Portfolio rollup and asset valuation.

Computes:
  - Multi-account totals (equity, wallet/available balance, perp UPL,
    position and open-order counts)
  - USD valuation of coin holdings against a ticker price map, with the
    change of each holding versus the baseline snapshot
  - Allocation share of the largest holdings
  - Available-to-liquidity ratio
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from scanner.analytics.numeric import coerce_number, safe_ratio
from scanner.config import PortfolioConfig
from scanner.models import AccountSnapshot


@dataclass
class PortfolioTotals:
    total_equity: float = 0.0
    total_wallet_balance: float = 0.0
    total_available_balance: float = 0.0
    total_perp_upl: float = 0.0
    total_positions: int = 0
    total_open_orders: int = 0
    accounts_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_equity": round(self.total_equity, 2),
            "total_wallet_balance": round(self.total_wallet_balance, 2),
            "total_available_balance": round(self.total_available_balance, 2),
            "total_perp_upl": round(self.total_perp_upl, 2),
            "total_positions": self.total_positions,
            "total_open_orders": self.total_open_orders,
            "accounts_count": self.accounts_count,
        }


def rollup_accounts(accounts: Iterable[AccountSnapshot]) -> PortfolioTotals:
    """Sum wallet totals and counts across accounts.  Zero accounts → zeros."""
    totals = PortfolioTotals()
    for account in accounts:
        wallet = account.wallet
        totals.total_equity += wallet.total_equity
        totals.total_wallet_balance += wallet.total_wallet_balance
        totals.total_available_balance += wallet.total_available_balance
        totals.total_perp_upl += wallet.total_perp_upl
        totals.total_positions += account.position_count
        totals.total_open_orders += account.open_order_count
        totals.accounts_count += 1
    return totals


# ── Asset valuation ──────────────────────────────────────────────────

@dataclass
class AssetHolding:
    coin: str
    amount: float
    price: float
    usd_value: float
    change: float        # amount - baseline amount
    change_pct: float    # 0 when the baseline amount is not positive

    def to_dict(self) -> dict[str, Any]:
        return {
            "coin": self.coin,
            "amount": self.amount,
            "price": self.price,
            "usd_value": round(self.usd_value, 2),
            "change": self.change,
            "change_pct": round(self.change_pct, 2),
        }


@dataclass
class AssetValuation:
    assets: list[AssetHolding] = field(default_factory=list)

    @property
    def total_value(self) -> float:
        return sum(a.usd_value for a in self.assets)

    def allocation(self, top_n: int = 6) -> list[tuple[str, float]]:
        """Share (%) of each of the top ``top_n`` holdings within their own total."""
        top = self.assets[:top_n]
        total = sum(a.usd_value for a in top)
        return [(a.coin, safe_ratio(a.usd_value, total)) for a in top]

    def to_dict(self) -> dict[str, Any]:
        return {
            "assets": [a.to_dict() for a in self.assets],
            "total_value": round(self.total_value, 2),
        }


def price_of(coin: str, prices: Mapping[str, Any], quote_asset: str = "USDT") -> float:
    """Last price of ``coin``; the quote asset is worth 1, unknown coins 0."""
    price = coerce_number(prices.get(coin))
    if price > 0:
        return price
    return 1.0 if coin == quote_asset else 0.0


def value_assets(
    current_coins: Mapping[str, Any],
    baseline_coins: Mapping[str, Any] | None = None,
    prices: Mapping[str, Any] | None = None,
    config: PortfolioConfig | None = None,
) -> AssetValuation:
    """Value positive holdings, keep those worth ``min_asset_usd`` or more,
    largest first."""
    cfg = config or PortfolioConfig()
    baseline_coins = baseline_coins or {}
    prices = prices or {}

    holdings: list[AssetHolding] = []
    for coin, raw_amount in current_coins.items():
        amount = coerce_number(raw_amount)
        if amount <= 0:
            continue
        price = price_of(coin, prices, cfg.quote_asset)
        usd_value = amount * price
        if usd_value < cfg.min_asset_usd:
            continue
        base_amount = coerce_number(baseline_coins.get(coin))
        change = amount - base_amount
        holdings.append(AssetHolding(
            coin=coin,
            amount=amount,
            price=price,
            usd_value=usd_value,
            change=change,
            change_pct=safe_ratio(change, base_amount) if base_amount > 0 else 0.0,
        ))

    holdings.sort(key=lambda a: a.usd_value, reverse=True)
    return AssetValuation(assets=holdings)


def available_ratio(available: Any, liquidity: Any) -> float:
    """Available balance as a percentage of total liquidity."""
    return safe_ratio(coerce_number(available), coerce_number(liquidity))
