"""Position aggregation — flatten per-account batches and compute ROI.

ROI is measured from entry to mark price and flipped for shorts:

  roi = (mark - entry) / entry × 100 × (-1 if short else +1)

A zero entry price yields an ROI of 0.  Mark price is used even when the
exchange also reports a break-even price.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from scanner.analytics.deltas import calculate_delta
from scanner.analytics.numeric import coerce_number
from scanner.models import AccountSnapshot, Position, PositionBatch


@dataclass(frozen=True)
class PositionView:
    """A position enriched with ROI and its owning account."""
    position: Position
    roi_pct: float
    is_profit: bool
    exchange: str = ""
    address: str = ""

    @property
    def is_long(self) -> bool:
        return not self.position.is_short

    def to_dict(self) -> dict[str, Any]:
        p = self.position
        return {
            "symbol": p.symbol,
            "side": "short" if p.is_short else "long",
            "leverage": p.leverage,
            "entry_price": p.entry_price,
            "mark_price": p.mark_price,
            "notional": round(p.notional, 2),
            "contracts": p.contracts,
            "liquidation_price": p.liquidation_price,
            "unrealized_pnl": round(p.unrealized_pnl, 2),
            "roi_pct": round(self.roi_pct, 2),
            "is_profit": self.is_profit,
            "exchange": self.exchange,
            "address": self.address,
        }


def calculate_roi(entry_price: Any, mark_price: Any, side: str) -> float:
    """Signed ROI (%) of a position; 0 when the entry price is zero."""
    entry = coerce_number(entry_price)
    mark = coerce_number(mark_price)
    if entry == 0:
        return 0.0
    direction = -1.0 if (side or "").strip().lower() == "sell" else 1.0
    return (mark - entry) / entry * 100 * direction


def view_position(position: Position, exchange: str = "", address: str = "") -> PositionView:
    return PositionView(
        position=position,
        roi_pct=calculate_roi(position.entry_price, position.mark_price, position.side),
        # PnL sign is a delta against an implicit zero baseline
        is_profit=calculate_delta(position.unrealized_pnl, 0.0).is_profit,
        exchange=exchange,
        address=address,
    )


def aggregate_positions(batches: Iterable[PositionBatch]) -> list[PositionView]:
    """Concatenate batches in order, preserving order within each batch."""
    return [
        view_position(position)
        for batch in batches
        for position in batch.positions
    ]


def aggregate_account_positions(accounts: Iterable[AccountSnapshot]) -> list[PositionView]:
    """Flatten every account's positions, tagging each with its account."""
    return [
        view_position(position, exchange=account.exchange, address=account.address)
        for account in accounts
        for batch in account.positions
        for position in batch.positions
    ]
