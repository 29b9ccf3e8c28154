"""Account filtering and sorting for the scanner account list."""

from __future__ import annotations

from typing import Callable, Iterable

from scanner.models import AccountSnapshot

CONNECTION_FILTERS = ("all", "connected", "disconnected")
ACTIVITY_FILTERS = ("all", "active", "inactive")

_SORT_KEYS: dict[str, Callable[[AccountSnapshot], float | str]] = {
    "equity": lambda a: a.wallet.total_equity,
    "pnl": lambda a: a.wallet.total_perp_upl,
    "positions": lambda a: a.position_count,
    "exchange": lambda a: a.exchange.lower(),
}
SORT_FIELDS = tuple(_SORT_KEYS)


def _matches(account: AccountSnapshot, term: str) -> bool:
    haystack = (account.address, account.exchange, account.nid, account.note or "")
    return any(term in value.lower() for value in haystack)


def filter_accounts(
    accounts: Iterable[AccountSnapshot],
    connection: str = "all",
    activity: str = "all",
    search: str = "",
) -> list[AccountSnapshot]:
    """Keep accounts matching every active filter.

    An account is active when it holds a position or an open order.
    """
    if connection not in CONNECTION_FILTERS:
        raise ValueError(f"unknown connection filter: {connection!r}")
    if activity not in ACTIVITY_FILTERS:
        raise ValueError(f"unknown activity filter: {activity!r}")

    term = search.strip().lower()
    result = []
    for account in accounts:
        if connection != "all" and account.connection != (connection == "connected"):
            continue
        if activity != "all" and account.is_active != (activity == "active"):
            continue
        if term and not _matches(account, term):
            continue
        result.append(account)
    return result


def sort_accounts(
    accounts: Iterable[AccountSnapshot],
    field: str = "equity",
    descending: bool = True,
) -> list[AccountSnapshot]:
    """Stable sort by equity, perp PnL, position count or exchange name."""
    try:
        key = _SORT_KEYS[field]
    except KeyError:
        raise ValueError(f"unknown sort field: {field!r}") from None
    return sorted(accounts, key=key, reverse=descending)
