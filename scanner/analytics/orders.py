"""Order aggregation — merge per-symbol buckets into three flat lists."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from scanner.models import AccountSnapshot, Order, OrderBatch, OrderBucket


@dataclass
class OrderLists:
    open: list[Order] = field(default_factory=list)
    closed: list[Order] = field(default_factory=list)
    canceled: list[Order] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.open or self.closed or self.canceled)

    def counts(self) -> dict[str, int]:
        return {
            "open": len(self.open),
            "closed": len(self.closed),
            "canceled": len(self.canceled),
        }


def aggregate_orders(
    order_maps: Iterable[OrderBatch | Mapping[str, OrderBucket]],
) -> OrderLists:
    """Walk every symbol bucket of every map and concatenate its lists.

    Source order is preserved and nothing is de-duplicated: the same order
    id in two accounts' books is two entries.
    """
    result = OrderLists()
    for order_map in order_maps:
        buckets = order_map.orders if isinstance(order_map, OrderBatch) else order_map
        for bucket in buckets.values():
            result.open.extend(bucket.open)
            result.closed.extend(bucket.closed)
            result.canceled.extend(bucket.canceled)
    return result


def aggregate_account_orders(accounts: Iterable[AccountSnapshot]) -> OrderLists:
    """Merge spot then futures books of every account."""
    return aggregate_orders(
        batch for account in accounts for batch in account.orders.batches
    )
