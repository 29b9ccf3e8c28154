"""Shared test fixtures."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable

import pytest

# Ensure scanner is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def _wallet_payload(**overrides: Any) -> dict[str, Any]:
    line = dict(
        totalEquity="1000",
        totalWalletBalance="900",
        totalAvailableBalance="600",
        totalPerpUPL="0",
        totalInitialMargin="200",
        totalMaintenanceMargin="100",
        accountLTV="0.1",
        coin=[],
    )
    line.update(overrides)
    return {"info": {"result": {"list": [line]}}}


def _account_payload(
    positions: list[list[dict[str, Any]]] | None = None,
    spot: list[dict[str, Any]] | None = None,
    futures: list[dict[str, Any]] | None = None,
    **overrides: Any,
) -> dict[str, Any]:
    """Wallet query account in the upstream shape.

    ``positions`` is a list of batches (each a list of raw positions);
    ``spot`` / ``futures`` are lists of ``{symbol: bucket}`` order maps.
    """
    wallet_fields = overrides.pop("wallet", {})
    account = dict(
        nid="node-1",
        address="GL1qq9z8x7w6v5u4t3s2r1",
        exchange="bybit",
        connection=True,
        wallet=_wallet_payload(**wallet_fields),
        positions=[
            {"key": ["p", str(i)], "value": {"raw": {"positions": batch, "timestamp": 1}, "timestamp": 1}}
            for i, batch in enumerate(positions or [])
        ],
        orders={
            "spot": [{"value": {"raw": {"orders": m}, "timestamp": 1}} for m in spot or []],
            "futures": [{"value": {"raw": {"orders": m}, "timestamp": 1}} for m in futures or []],
        },
    )
    account.update(overrides)
    return account


@pytest.fixture
def account_payload() -> Callable[..., dict[str, Any]]:
    return _account_payload


@pytest.fixture
def wallet_payload() -> Callable[..., dict[str, Any]]:
    return _wallet_payload


@pytest.fixture
def restore_logging():
    """Put the default stderr logging back after a test reconfigures it."""
    from scanner.observability.logger import configure_logging

    yield
    configure_logging(level="INFO", fmt="console", force=True)
