"""Tests for analytics modules — numeric coercion, deltas, positions,
orders, network health and portfolio rollup / asset valuation.
"""

from __future__ import annotations

import math
from decimal import Decimal

import pytest

from scanner.analytics.deltas import calculate_delta
from scanner.analytics.network_health import (
    analyze_network,
    classify_health,
    is_node_active,
)
from scanner.analytics.numeric import coerce_number, parse_number, safe_ratio
from scanner.analytics.orders import aggregate_account_orders, aggregate_orders
from scanner.analytics.portfolio import (
    available_ratio,
    price_of,
    rollup_accounts,
    value_assets,
)
from scanner.analytics.positions import (
    aggregate_account_positions,
    aggregate_positions,
    calculate_roi,
)
from scanner.config import NetworkConfig, PortfolioConfig
from scanner.models import AccountSnapshot, NetworkNode, OrderBatch, Position, PositionBatch

NOW = 1_700_000_000_000.0


# ── Helpers ──────────────────────────────────────────────────────────

def _position(symbol: str = "BTC/USDT", **overrides) -> dict:
    defaults = dict(
        symbol=symbol,
        side="buy",
        leverage=10,
        entryPrice=100.0,
        markPrice=110.0,
        notional=1100.0,
        contracts=10,
        liquidationPrice=80.0,
        unrealizedPnl=100.0,
    )
    defaults.update(overrides)
    return defaults


def _batch(*symbols: str) -> PositionBatch:
    return PositionBatch(positions=[_position(s) for s in symbols])


def _order(order_id: str, status: str = "open") -> dict:
    return dict(id=order_id, symbol="BTC/USDT", price="100", amount="1", status=status)


def _node(timestamp: float, country: str | None = "Germany", cpu=None, memory=None) -> dict:
    raw: dict = {}
    if country is not None:
        raw["location"] = {"country_name": country}
    if cpu is not None:
        raw["cpu"] = cpu
    if memory is not None:
        raw["memory"] = memory
    return {"value": {"timestamp": timestamp, "raw": raw}}


# ═══════════════════════════════════════════════════════════════════
#  NUMERIC COERCION
# ═══════════════════════════════════════════════════════════════════

class TestNumericCoercion:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (12, 12.0),
            (12.5, 12.5),
            ("1234.56", 1234.56),
            ("  -7.25 ", -7.25),
            ("1e3", 1000.0),
            (Decimal("3.5"), 3.5),
        ],
    )
    def test_parses_numbers(self, raw, expected) -> None:
        result = parse_number(raw)
        assert result.parsed is True
        assert result.value == pytest.approx(expected)

    @pytest.mark.parametrize(
        "raw",
        [None, "", "   ", "abc", "12abc", "NaN", "inf", float("nan"), float("-inf"),
         True, [], {}],
    )
    def test_unusable_input_is_zero_and_flagged(self, raw) -> None:
        result = parse_number(raw)
        assert result.parsed is False
        assert result.value == 0.0

    def test_coerce_never_returns_nan(self) -> None:
        for raw in ("NaN", float("nan"), "inf", None, object()):
            value = coerce_number(raw)
            assert math.isfinite(value)
            assert value == 0.0

    def test_safe_ratio(self) -> None:
        assert safe_ratio(1, 4) == pytest.approx(25.0)
        assert safe_ratio(5, 0) == 0.0
        assert safe_ratio(3, 2, scale=1.0) == pytest.approx(1.5)


# ═══════════════════════════════════════════════════════════════════
#  DELTAS
# ═══════════════════════════════════════════════════════════════════

class TestDeltaCalculator:
    def test_gain(self) -> None:
        d = calculate_delta(110, 100)
        assert d.absolute == pytest.approx(10.0)
        assert d.percentage == pytest.approx(10.0)
        assert d.is_profit is True

    def test_loss(self) -> None:
        d = calculate_delta(90, 100)
        assert d.absolute == pytest.approx(-10.0)
        assert d.percentage == pytest.approx(-10.0)
        assert d.is_profit is False

    def test_no_change_is_not_a_loss(self) -> None:
        d = calculate_delta(100, 100)
        assert d.absolute == 0.0
        assert d.is_profit is True

    @pytest.mark.parametrize("current", [0.0, 5.0, -5.0, 1e12])
    def test_zero_baseline_gives_zero_percent(self, current: float) -> None:
        d = calculate_delta(current, 0)
        assert d.percentage == 0.0
        assert math.isfinite(d.percentage)

    @pytest.mark.parametrize("a, b", [(1, 1), (2, 1), (-1, -2), (0, -3), (1e-9, 0)])
    def test_profit_when_current_not_below_baseline(self, a, b) -> None:
        assert calculate_delta(a, b).is_profit is True

    @pytest.mark.parametrize("a, b", [(1, 2), (-2, -1), (-3, 0)])
    def test_loss_when_current_below_baseline(self, a, b) -> None:
        assert calculate_delta(a, b).is_profit is False

    def test_percentage_divides_by_signed_baseline(self) -> None:
        d = calculate_delta(-50, -100)
        assert d.absolute == pytest.approx(50.0)
        assert d.percentage == pytest.approx(-50.0)

    def test_string_inputs(self) -> None:
        d = calculate_delta("3500", "3000")
        assert d.percentage == pytest.approx(16.67, abs=0.01)

    def test_to_dict(self) -> None:
        assert calculate_delta(3500, 3000).to_dict() == {
            "absolute": 500.0,
            "percentage": 16.67,
            "is_profit": True,
        }


# ═══════════════════════════════════════════════════════════════════
#  POSITIONS
# ═══════════════════════════════════════════════════════════════════

class TestROI:
    def test_short_gains_when_price_falls(self) -> None:
        assert calculate_roi(100, 90, "sell") == pytest.approx(10.0)

    def test_long_loses_when_price_falls(self) -> None:
        assert calculate_roi(100, 90, "buy") == pytest.approx(-10.0)

    @pytest.mark.parametrize("side", ["SELL", "Sell", " sell "])
    def test_side_is_case_insensitive(self, side: str) -> None:
        assert calculate_roi(100, 90, side) == pytest.approx(10.0)

    @pytest.mark.parametrize("side", ["long", "short", "", "BUY"])
    def test_only_sell_is_short(self, side: str) -> None:
        assert calculate_roi(100, 90, side) == pytest.approx(-10.0)

    def test_zero_entry_price(self) -> None:
        roi = calculate_roi(0, 90, "buy")
        assert roi == 0.0

    def test_string_prices(self) -> None:
        assert calculate_roi("200", "250", "buy") == pytest.approx(25.0)


class TestPositionAggregator:
    def test_concatenation_preserves_order(self) -> None:
        views = aggregate_positions([_batch("A", "B", "C"), _batch("D", "E")])
        assert len(views) == 5
        assert [v.position.symbol for v in views] == ["A", "B", "C", "D", "E"]

    def test_empty_batches(self) -> None:
        assert aggregate_positions([]) == []
        assert aggregate_positions([PositionBatch(), PositionBatch()]) == []

    def test_roi_and_sign_per_position(self) -> None:
        batch = PositionBatch(positions=[
            _position("LONG", side="buy", entryPrice=100, markPrice=90, unrealizedPnl=-10),
            _position("SHORT", side="sell", entryPrice=100, markPrice=90, unrealizedPnl=10),
            _position("FLAT", side="buy", entryPrice=100, markPrice=100, unrealizedPnl=0),
        ])
        long_, short, flat = aggregate_positions([batch])
        assert long_.roi_pct == pytest.approx(-10.0)
        assert long_.is_profit is False
        assert long_.is_long is True
        assert short.roi_pct == pytest.approx(10.0)
        assert short.is_profit is True
        assert short.is_long is False
        assert flat.is_profit is True

    def test_does_not_mutate_input(self) -> None:
        batch = _batch("A", "B")
        before = batch.model_dump()
        aggregate_positions([batch])
        assert batch.model_dump() == before

    def test_account_positions_are_tagged(self, account_payload) -> None:
        accounts = [
            AccountSnapshot.from_payload(account_payload(
                exchange="bybit", positions=[[_position("A")]],
            )),
            AccountSnapshot.from_payload(account_payload(
                exchange="binance", positions=[[_position("B")], [_position("C")]],
            )),
        ]
        views = aggregate_account_positions(accounts)
        assert [(v.position.symbol, v.exchange) for v in views] == [
            ("A", "bybit"), ("B", "binance"), ("C", "binance"),
        ]

    def test_to_dict(self) -> None:
        view = aggregate_positions([PositionBatch(positions=[
            _position("ETH/USDT", side="Sell", entryPrice="2000", markPrice="1900"),
        ])])[0]
        d = view.to_dict()
        assert d["symbol"] == "ETH/USDT"
        assert d["side"] == "short"
        assert d["roi_pct"] == pytest.approx(5.0)


# ═══════════════════════════════════════════════════════════════════
#  ORDERS
# ═══════════════════════════════════════════════════════════════════

class TestOrderAggregator:
    def test_merges_buckets_in_source_order(self) -> None:
        first = OrderBatch(orders={
            "BTC/USDT": {"open": [_order("1")], "closed": [_order("2", "closed")], "canceled": []},
            "ETH/USDT": {"open": [_order("3")], "closed": [], "canceled": [_order("4", "canceled")]},
        })
        second = OrderBatch(orders={
            "BTC/USDT": {"open": [_order("5")], "closed": [], "canceled": []},
        })
        lists = aggregate_orders([first, second])
        assert [o.id for o in lists.open] == ["1", "3", "5"]
        assert [o.id for o in lists.closed] == ["2"]
        assert [o.id for o in lists.canceled] == ["4"]
        assert lists.counts() == {"open": 3, "closed": 1, "canceled": 1}

    def test_no_deduplication_across_accounts(self, account_payload) -> None:
        bucket = {"BTC/USDT": {"open": [_order("same")], "closed": [], "canceled": []}}
        accounts = [
            AccountSnapshot.from_payload(account_payload(spot=[bucket])),
            AccountSnapshot.from_payload(account_payload(futures=[bucket])),
        ]
        lists = aggregate_account_orders(accounts)
        assert [o.id for o in lists.open] == ["same", "same"]

    def test_spot_before_futures(self, account_payload) -> None:
        account = AccountSnapshot.from_payload(account_payload(
            spot=[{"A": {"open": [_order("spot")]}}],
            futures=[{"B": {"open": [_order("fut")]}}],
        ))
        assert [o.id for o in aggregate_account_orders([account]).open] == ["spot", "fut"]

    def test_empty(self) -> None:
        lists = aggregate_orders([])
        assert lists.is_empty
        assert lists.counts() == {"open": 0, "closed": 0, "canceled": 0}

    def test_accepts_plain_symbol_maps(self) -> None:
        batch = OrderBatch(orders={"X": {"open": [_order("9")]}})
        lists = aggregate_orders([batch.orders])
        assert [o.id for o in lists.open] == ["9"]


# ═══════════════════════════════════════════════════════════════════
#  NETWORK HEALTH
# ═══════════════════════════════════════════════════════════════════

class TestNetworkHealth:
    def test_liveness_window(self) -> None:
        fresh = NetworkNode(node_id="a", last_update=NOW)
        stale = NetworkNode(node_id="b", last_update=NOW - 301_000)
        edge = NetworkNode(node_id="c", last_update=NOW - 300_000)
        assert is_node_active(fresh, NOW) is True
        assert is_node_active(stale, NOW) is False
        # strictly younger than the window
        assert is_node_active(edge, NOW) is False

    def test_empty_map_is_critical(self) -> None:
        health = analyze_network({}, now=NOW)
        assert health.total_nodes == 0
        assert health.active_nodes == 0
        assert health.active_ratio == 0.0
        assert health.health_status == "CRITICAL"
        assert health.last_update == 0.0
        assert health.regions == {}

    def test_full_analysis(self) -> None:
        nodes = {
            "a": _node(NOW, "Germany", cpu=[1, 2, 3], memory={"heapUsed": 50, "heapTotal": 200}),
            "b": _node(NOW - 301_000, "Germany", cpu=[]),
            "c": _node(NOW - 1_000, "Japan", cpu=[4, 4], memory={"heapUsed": 30, "heapTotal": 60}),
        }
        health = analyze_network(nodes, now=NOW)
        assert health.total_nodes == 3
        assert health.active_nodes == 2
        assert health.regions == {"Germany": 2, "Japan": 1}
        assert health.avg_cpu_usage == pytest.approx(3.0)
        assert health.avg_memory_usage == pytest.approx(37.5)
        assert health.health_status == "GOOD"
        assert health.last_update == NOW

    def test_nodes_without_location_still_counted(self) -> None:
        nodes = {"a": _node(NOW, country=None), "b": _node(NOW, "France")}
        health = analyze_network(nodes, now=NOW)
        assert health.total_nodes == 2
        assert health.regions == {"France": 1}

    def test_missing_telemetry_excluded_from_averages(self) -> None:
        nodes = {
            "a": _node(NOW, cpu=[10, 20]),
            "b": _node(NOW),
            "c": _node(NOW, memory={"heapUsed": 10, "heapTotal": 0}),
        }
        health = analyze_network(nodes, now=NOW)
        assert health.avg_cpu_usage == pytest.approx(15.0)
        assert health.avg_memory_usage == 0.0

    def test_malformed_node_is_inactive(self) -> None:
        health = analyze_network({"x": "garbage", "y": _node(NOW)}, now=NOW)
        assert health.total_nodes == 2
        assert health.active_nodes == 1

    @pytest.mark.parametrize("nodes", [[_node(NOW)], None, "nodes", 3])
    def test_non_mapping_reads_as_empty(self, nodes) -> None:
        health = analyze_network(nodes, now=NOW)
        assert health.total_nodes == 0
        assert health.health_status == "CRITICAL"

    def test_accepts_parsed_nodes(self) -> None:
        nodes = {"a": NetworkNode(node_id="a", last_update=NOW, country="Spain")}
        health = analyze_network(nodes, now=NOW)
        assert health.health_status == "EXCELLENT"
        assert health.regions == {"Spain": 1}

    @pytest.mark.parametrize(
        "ratio, expected",
        [
            (0.0, "CRITICAL"),
            (9.99, "CRITICAL"),
            (10.0, "STABLE"),
            (39.99, "STABLE"),
            (40.0, "GOOD"),
            (94.99, "GOOD"),
            (95.0, "EXCELLENT"),
            (100.0, "EXCELLENT"),
        ],
    )
    def test_health_boundaries(self, ratio: float, expected: str) -> None:
        assert classify_health(ratio) == expected

    def test_custom_window(self) -> None:
        cfg = NetworkConfig(liveness_window_ms=60_000)
        nodes = {"a": _node(NOW - 120_000), "b": _node(NOW)}
        health = analyze_network(nodes, now=NOW, config=cfg)
        assert health.active_nodes == 1
        assert health.health_status == "GOOD"

    def test_top_regions(self) -> None:
        nodes = {
            str(i): _node(NOW, country)
            for i, country in enumerate(["US", "US", "DE", "DE", "DE", "FR", "JP"])
        }
        health = analyze_network(nodes, now=NOW)
        assert health.top_regions(2) == [("DE", 3), ("US", 2)]
        assert health.top_regions()[-2:] == [("FR", 1), ("JP", 1)]


# ═══════════════════════════════════════════════════════════════════
#  PORTFOLIO
# ═══════════════════════════════════════════════════════════════════

class TestPortfolioRollup:
    def test_zero_accounts(self) -> None:
        totals = rollup_accounts([])
        assert totals.to_dict() == {
            "total_equity": 0.0,
            "total_wallet_balance": 0.0,
            "total_available_balance": 0.0,
            "total_perp_upl": 0.0,
            "total_positions": 0,
            "total_open_orders": 0,
            "accounts_count": 0,
        }

    def test_sums_strings_and_counts(self, account_payload) -> None:
        accounts = [
            AccountSnapshot.from_payload(account_payload(
                wallet={"totalEquity": "1000", "totalPerpUPL": "-50"},
                positions=[[_position("A"), _position("B")], [_position("C")]],
                spot=[{"A": {"open": [_order("1"), _order("2")], "closed": [_order("3")]}}],
            )),
            AccountSnapshot.from_payload(account_payload(
                wallet={"totalEquity": "2500", "totalPerpUPL": "75"},
                positions=[[_position("D")]],
                futures=[{"B": {"open": [_order("4")]}, "C": {"canceled": [_order("5")]}}],
            )),
        ]
        totals = rollup_accounts(accounts)
        assert totals.total_equity == pytest.approx(3500.0)
        assert totals.total_perp_upl == pytest.approx(25.0)
        assert totals.total_wallet_balance == pytest.approx(1800.0)
        assert totals.total_available_balance == pytest.approx(1200.0)
        assert totals.total_positions == 4
        assert totals.total_open_orders == 3
        assert totals.accounts_count == 2

    def test_unparsable_fields_count_as_zero(self, account_payload) -> None:
        accounts = [
            AccountSnapshot.from_payload(account_payload(wallet={"totalEquity": "oops"})),
            AccountSnapshot.from_payload(account_payload(wallet={"totalEquity": "10"})),
        ]
        assert rollup_accounts(accounts).total_equity == pytest.approx(10.0)


class TestAssetValuation:
    def test_values_filters_and_sorts(self) -> None:
        valuation = value_assets(
            current_coins={"BTC": 0.1, "ETH": 1.5, "USDT": 750, "DOGE": 100, "SOL": 0},
            baseline_coins={"BTC": 0.08, "ETH": 1.5},
            prices={"BTC": 60_000, "ETH": 3_000, "DOGE": 0.1},
        )
        assert [a.coin for a in valuation.assets] == ["BTC", "ETH", "USDT"]
        btc = valuation.assets[0]
        assert btc.usd_value == pytest.approx(6_000.0)
        assert btc.change == pytest.approx(0.02)
        assert btc.change_pct == pytest.approx(25.0)
        eth = valuation.assets[1]
        assert eth.change == pytest.approx(0.0)
        usdt = valuation.assets[2]
        assert usdt.price == 1.0
        assert usdt.change_pct == 0.0  # no baseline amount
        assert valuation.total_value == pytest.approx(11_250.0)

    def test_unknown_price_values_zero(self) -> None:
        valuation = value_assets({"XYZ": 1_000_000}, prices={})
        assert valuation.assets == []

    def test_price_of(self) -> None:
        assert price_of("USDT", {}) == 1.0
        assert price_of("BTC", {}) == 0.0
        assert price_of("BTC", {"BTC": "65000.5"}) == pytest.approx(65000.5)
        assert price_of("USDC", {}, quote_asset="USDC") == 1.0

    def test_custom_minimum(self) -> None:
        cfg = PortfolioConfig(min_asset_usd=0)
        valuation = value_assets({"DOGE": 100}, prices={"DOGE": 0.1}, config=cfg)
        assert [a.coin for a in valuation.assets] == ["DOGE"]

    def test_allocation_of_top_assets(self) -> None:
        valuation = value_assets(
            {"BTC": 1, "ETH": 1, "USDT": 600},
            prices={"BTC": 3000, "ETH": 1000},
        )
        allocation = valuation.allocation(top_n=2)
        assert allocation[0] == ("BTC", pytest.approx(75.0))
        assert allocation[1] == ("ETH", pytest.approx(25.0))

    def test_available_ratio(self) -> None:
        assert available_ratio(250, 1000) == pytest.approx(25.0)
        assert available_ratio(250, 0) == 0.0
        assert available_ratio("50", "200") == pytest.approx(25.0)
