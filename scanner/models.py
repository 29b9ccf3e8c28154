"""Snapshot models — Pydantic records for the upstream wallet payload.

Every numeric leaf is declared as ``Number`` so it passes through
``coerce_number`` on the way in; downstream code only ever sees finite
floats.  ``from_payload`` constructors navigate the nested upstream shapes
and treat malformed sub-structures as absent rather than failing the
whole account.
"""

from __future__ import annotations

from typing import Annotated, Any, Mapping

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    model_validator,
)

from scanner.analytics.numeric import coerce_number, parse_number
from scanner.observability.logger import get_logger

log = get_logger(__name__)


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def _as_list(value: Any) -> list[Any]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, (Mapping, BaseModel))]


def _dig(data: Any, *keys: str | int) -> Any:
    """Walk nested mappings/lists, returning None at the first missing step."""
    for key in keys:
        if isinstance(key, int):
            if not isinstance(data, list) or len(data) <= key:
                return None
        elif not isinstance(data, Mapping):
            return None
        data = data[key] if isinstance(key, int) else data.get(key)
    return data


Number = Annotated[float, BeforeValidator(coerce_number)]
Text = Annotated[str, BeforeValidator(_as_text)]


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ── Wallet ───────────────────────────────────────────────────────────

class CoinBalance(_Record):
    """Per-asset balance line."""
    coin: Text = ""
    equity: Number = 0.0
    usd_value: Number = Field(0.0, alias="usdValue")
    wallet_balance: Number = Field(0.0, alias="walletBalance")
    locked: Number = 0.0
    borrow_amount: Number = Field(0.0, alias="borrowAmount")
    unrealised_pnl: Number = Field(0.0, alias="unrealisedPnl")
    cum_realised_pnl: Number = Field(0.0, alias="cumRealisedPnl")


_WALLET_NUMERIC_FIELDS = (
    ("total_equity", "totalEquity"),
    ("total_wallet_balance", "totalWalletBalance"),
    ("total_available_balance", "totalAvailableBalance"),
    ("total_perp_upl", "totalPerpUPL"),
    ("total_initial_margin", "totalInitialMargin"),
    ("total_maintenance_margin", "totalMaintenanceMargin"),
    ("account_ltv", "accountLTV"),
)


class WalletState(_Record):
    """Account-level wallet totals.

    ``unparsed_fields`` names every numeric field whose raw value was
    missing or unusable; those fields read as 0.0.
    """
    total_equity: Number = Field(0.0, alias="totalEquity")
    total_wallet_balance: Number = Field(0.0, alias="totalWalletBalance")
    total_available_balance: Number = Field(0.0, alias="totalAvailableBalance")
    total_perp_upl: Number = Field(0.0, alias="totalPerpUPL")
    total_initial_margin: Number = Field(0.0, alias="totalInitialMargin")
    total_maintenance_margin: Number = Field(0.0, alias="totalMaintenanceMargin")
    account_ltv: Number = Field(0.0, alias="accountLTV")
    coins: list[CoinBalance] = Field(default_factory=list, alias="coin")
    unparsed_fields: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _flag_unparsed(cls, data: Any) -> Any:
        if isinstance(data, BaseModel):
            return data
        if not isinstance(data, Mapping):
            data = {}
        data = dict(data)
        flagged = []
        for name, alias in _WALLET_NUMERIC_FIELDS:
            raw = data[alias] if alias in data else data.get(name)
            if not parse_number(raw).parsed:
                flagged.append(name)
        data["unparsed_fields"] = flagged
        if "coin" in data:
            data["coin"] = _as_list(data["coin"])
        return data

    @property
    def is_fully_parsed(self) -> bool:
        return not self.unparsed_fields

    @classmethod
    def from_payload(cls, wallet: Any) -> "WalletState":
        """Build from ``wallet.info.result.list[0]``."""
        return cls.model_validate(_dig(wallet, "info", "result", "list", 0) or {})


# ── Positions ────────────────────────────────────────────────────────

class Position(_Record):
    symbol: Text = ""
    side: Text = ""
    leverage: Number = 0.0
    entry_price: Number = Field(0.0, alias="entryPrice")
    mark_price: Number = Field(0.0, alias="markPrice")
    break_even_price: Number = Field(0.0, alias="breakEvenPrice")
    notional: Number = 0.0
    contracts: Number = 0.0
    liquidation_price: Number = Field(0.0, alias="liquidationPrice")
    unrealized_pnl: Number = Field(0.0, alias="unrealizedPnl")
    timestamp: Number = 0.0

    @property
    def is_short(self) -> bool:
        # Only "sell" is short; every other side string reads as long.
        return self.side.strip().lower() == "sell"


class PositionBatch(_Record):
    """Positions reported by one exchange poll."""
    timestamp: Number = 0.0
    positions: list[Position] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, raw: Any) -> "PositionBatch":
        """Build from ``{value: {raw: {positions, timestamp}, timestamp}}``."""
        inner = _dig(raw, "value", "raw")
        if not isinstance(inner, Mapping):
            inner = {}
        return cls(
            timestamp=_dig(raw, "value", "timestamp") or inner.get("timestamp"),
            positions=_as_list(inner.get("positions")),
        )

    def __len__(self) -> int:
        return len(self.positions)


# ── Orders ───────────────────────────────────────────────────────────

class Order(_Record):
    id: Text = ""
    symbol: Text = ""
    side: Text = ""
    type: Text = ""
    status: Text = ""
    price: Number = 0.0
    amount: Number = 0.0
    filled: Number = 0.0
    remaining: Number = 0.0
    cost: Number = 0.0
    fee: Number = 0.0
    fee_currency: Text = ""
    timestamp: Number = 0.0

    @model_validator(mode="before")
    @classmethod
    def _flatten_fee(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and isinstance(data.get("fee"), Mapping):
            data = dict(data)
            fee = data.pop("fee")
            data["fee"] = fee.get("cost")
            data.setdefault("fee_currency", fee.get("currency"))
        return data


OrderList = Annotated[list[Order], BeforeValidator(_as_list)]


class OrderBucket(_Record):
    """Open / closed / canceled orders for one symbol; the lists are disjoint."""
    open: OrderList = Field(default_factory=list)
    closed: OrderList = Field(default_factory=list)
    canceled: OrderList = Field(default_factory=list)


class OrderBatch(_Record):
    """One exchange poll of orders, keyed by symbol."""
    timestamp: Number = 0.0
    orders: dict[str, OrderBucket] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, raw: Any) -> "OrderBatch":
        """Build from ``{value: {raw: {orders: {symbol: bucket}}, timestamp}}``."""
        inner = _dig(raw, "value", "raw")
        if not isinstance(inner, Mapping):
            inner = {}
        orders = inner.get("orders")
        if not isinstance(orders, Mapping):
            orders = {}
        return cls(
            timestamp=_dig(raw, "value", "timestamp") or inner.get("timestamp"),
            orders={
                str(symbol): bucket
                for symbol, bucket in orders.items()
                if isinstance(bucket, Mapping)
            },
        )


class AccountOrders(_Record):
    spot: list[OrderBatch] = Field(default_factory=list)
    futures: list[OrderBatch] = Field(default_factory=list)

    @property
    def batches(self) -> list[OrderBatch]:
        return [*self.spot, *self.futures]

    @classmethod
    def from_payload(cls, raw: Any) -> "AccountOrders":
        if not isinstance(raw, Mapping):
            return cls()
        return cls(
            spot=[OrderBatch.from_payload(b) for b in _as_list(raw.get("spot"))],
            futures=[OrderBatch.from_payload(b) for b in _as_list(raw.get("futures"))],
        )


# ── Protocol ─────────────────────────────────────────────────────────

class Protocol(_Record):
    """Static risk policy attached to an account.  Read-only."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    strategy: Text = ""
    trading_style: Text = Field("", alias="tradingStyle")
    max_risk_per_trade: Number = Field(0.0, alias="maxRiskPerTrade")
    max_leverage: Number = Field(0.0, alias="maxLeverage")
    max_drawdown: Number = Field(0.0, alias="maxDrawdown")
    stop_loss: Number = Field(0.0, alias="stopLoss")
    take_profit: Number = Field(0.0, alias="takeProfit")
    risk_reward_ratio: Number = Field(0.0, alias="riskRewardRatio")
    markets: list[str] = Field(default_factory=list)
    order_types: list[str] = Field(default_factory=list, alias="orderTypes")
    timeframes: list[str] = Field(default_factory=list)
    hedging_enabled: bool = Field(False, alias="hedgingEnabled")
    trailing_stop_enabled: bool = Field(False, alias="trailingStopEnabled")


def _parse_protocol(raw: Any) -> Protocol | None:
    if not isinstance(raw, Mapping):
        return None
    try:
        return Protocol.model_validate(raw)
    except ValidationError as exc:
        log.warning("models.protocol_invalid", errors=exc.error_count())
        return None


# ── Account ──────────────────────────────────────────────────────────

class AccountSnapshot(_Record):
    """One exchange account as returned by the wallet query."""
    nid: Text = ""
    address: Text = ""
    exchange: Text = ""
    connection: bool = False
    note: str | None = None
    wallet: WalletState = Field(default_factory=WalletState)
    positions: list[PositionBatch] = Field(default_factory=list)
    orders: AccountOrders = Field(default_factory=AccountOrders)
    protocol: Protocol | None = None

    @property
    def position_count(self) -> int:
        return sum(len(batch) for batch in self.positions)

    @property
    def open_order_count(self) -> int:
        return sum(
            len(bucket.open)
            for batch in self.orders.batches
            for bucket in batch.orders.values()
        )

    @property
    def is_active(self) -> bool:
        """Holds at least one position or open order."""
        return self.position_count > 0 or self.open_order_count > 0

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> "AccountSnapshot":
        return cls(
            nid=raw.get("nid"),
            address=raw.get("address"),
            exchange=raw.get("exchange"),
            connection=bool(raw.get("connection")),
            note=_as_text(raw.get("note")) or None,
            wallet=WalletState.from_payload(raw.get("wallet")),
            positions=[PositionBatch.from_payload(b) for b in _as_list(raw.get("positions"))],
            orders=AccountOrders.from_payload(raw.get("orders")),
            protocol=_parse_protocol(raw.get("protocol")),
        )


# ── Runtime session ──────────────────────────────────────────────────

class MarginState(_Record):
    balance: Number = 0.0
    initial: Number = 0.0
    maintenance: Number = 0.0


class WorkerCounts(_Record):
    active: Number = 0.0
    stopped: Number = 0.0
    total: Number = 0.0


class RuntimeSnapshot(_Record):
    """Aggregate runtime state of the scanned wallet at one point in time."""
    liquidity: Number = 0.0
    available: Number = 0.0
    margin: MarginState = Field(default_factory=MarginState)
    protection: Number = 0.0
    coins: dict[str, Number] = Field(default_factory=dict)
    workers: WorkerCounts = Field(default_factory=WorkerCounts)
    timestamp: Number = 0.0

    @classmethod
    def from_payload(cls, raw: Any) -> "RuntimeSnapshot":
        """Accept either the session record ``{raw: {...}}`` or the bare body."""
        if not isinstance(raw, Mapping):
            return cls()
        body = raw.get("raw") if isinstance(raw.get("raw"), Mapping) else raw
        body = dict(body)
        for key in ("margin", "workers", "coins"):
            if not isinstance(body.get(key), Mapping):
                body.pop(key, None)
        return cls.model_validate(body)


# ── Network telemetry ────────────────────────────────────────────────

class NetworkNode(_Record):
    """Telemetry of one runtime node.  Liveness is derived, not stored."""
    node_id: Text = ""
    last_update: Number = 0.0  # epoch ms
    country: Text = ""
    cpu: list[Number] = Field(default_factory=list)
    heap_used: Number = 0.0
    heap_total: Number = 0.0
    has_memory: bool = False

    @classmethod
    def from_payload(cls, node_id: str, raw: Any) -> "NetworkNode":
        """Build from ``{value: {timestamp, raw: {location, cpu, memory}}}``."""
        memory = _dig(raw, "value", "raw", "memory")
        cpu = _dig(raw, "value", "raw", "cpu")
        return cls(
            node_id=node_id,
            last_update=_dig(raw, "value", "timestamp"),
            country=_dig(raw, "value", "raw", "location", "country_name"),
            cpu=cpu if isinstance(cpu, list) else [],
            heap_used=memory.get("heapUsed") if isinstance(memory, Mapping) else None,
            heap_total=memory.get("heapTotal") if isinstance(memory, Mapping) else None,
            has_memory=isinstance(memory, Mapping),
        )
