import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, Optional, Tuple, Union

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_address(value: str) -> bool:
    return bool(ADDRESS_RE.match(value or ""))


def to_float(value: Any) -> float:
    """Parse a decimal string from the API. Anything unparseable reads as 0.0."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value))
    except ValueError:
        return 0.0


def to_decimal(value: Any) -> Decimal:
    """Exact counterpart of to_float for size arithmetic. Unparseable or non-finite reads as 0."""
    if value is None or isinstance(value, bool):
        return Decimal(0)
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        return Decimal(0)
    return result if result.is_finite() else Decimal(0)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


# ============================================================================
# Positions & Snapshots
# ============================================================================

@dataclass(frozen=True)
class Leverage:
    type: str = ""
    value: int = 0
    raw_usd: str = ""

    @classmethod
    def from_api(cls, raw: Any) -> "Leverage":
        if not isinstance(raw, dict):
            return cls(value=_int(raw))
        return cls(
            type=_text(raw.get("type")),
            value=_int(raw.get("value")),
            raw_usd=_text(raw.get("rawUsd")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "value": self.value, "rawUsd": self.raw_usd}


@dataclass(frozen=True)
class CumFunding:
    all_time: str = ""
    since_open: str = ""
    since_change: str = ""

    @classmethod
    def from_api(cls, raw: Any) -> "CumFunding":
        if not isinstance(raw, dict):
            return cls()
        return cls(
            all_time=_text(raw.get("allTime")),
            since_open=_text(raw.get("sinceOpen")),
            since_change=_text(raw.get("sinceChange")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allTime": self.all_time,
            "sinceOpen": self.since_open,
            "sinceChange": self.since_change,
        }


@dataclass(frozen=True)
class Position:
    """
    One open perp position as reported by the clearinghouse.

    Numeric fields keep the decimal text the API sent; the float accessors
    parse on use and read malformed values as zero.
    """

    coin: str
    szi: str = "0"
    leverage: Leverage = field(default_factory=Leverage)
    entry_px: str = ""
    position_value: str = ""
    unrealized_pnl: str = ""
    return_on_equity: str = ""
    liquidation_px: str = ""
    margin_used: str = ""
    max_leverage: int = 0
    cum_funding: CumFunding = field(default_factory=CumFunding)

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Position":
        return cls(
            coin=_text(raw.get("coin")),
            szi=_text(raw.get("szi")),
            leverage=Leverage.from_api(raw.get("leverage")),
            entry_px=_text(raw.get("entryPx")),
            position_value=_text(raw.get("positionValue")),
            unrealized_pnl=_text(raw.get("unrealizedPnl")),
            return_on_equity=_text(raw.get("returnOnEquity")),
            liquidation_px=_text(raw.get("liquidationPx")),
            margin_used=_text(raw.get("marginUsed")),
            max_leverage=_int(raw.get("maxLeverage")),
            cum_funding=CumFunding.from_api(raw.get("cumFunding")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coin": self.coin,
            "szi": self.szi,
            "leverage": self.leverage.to_dict(),
            "entryPx": self.entry_px,
            "positionValue": self.position_value,
            "unrealizedPnl": self.unrealized_pnl,
            "returnOnEquity": self.return_on_equity,
            "liquidationPx": self.liquidation_px,
            "marginUsed": self.margin_used,
            "maxLeverage": self.max_leverage,
            "cumFunding": self.cum_funding.to_dict(),
        }

    @property
    def size(self) -> float:
        return to_float(self.szi)

    @property
    def exact_size(self) -> Decimal:
        return to_decimal(self.szi)

    @property
    def entry_price(self) -> float:
        return to_float(self.entry_px)

    @property
    def notional(self) -> float:
        return to_float(self.position_value)

    @property
    def pnl(self) -> float:
        return to_float(self.unrealized_pnl)

    @property
    def roe(self) -> float:
        return to_float(self.return_on_equity)

    @property
    def liquidation_price(self) -> float:
        return to_float(self.liquidation_px)

    @property
    def margin(self) -> float:
        return to_float(self.margin_used)


@dataclass(frozen=True)
class AccountSnapshot:
    """Positions and equity of one address at one point in time."""

    address: str
    positions: Dict[str, Position] = field(default_factory=dict)
    account_value: float = 0.0

    @classmethod
    def empty(cls, address: str) -> "AccountSnapshot":
        return cls(address=address)

    @classmethod
    def from_api(cls, address: str, data: Dict[str, Any]) -> "AccountSnapshot":
        margin_summary = data.get("marginSummary") or {}
        account_value = to_float(margin_summary.get("accountValue")) if isinstance(margin_summary, dict) else 0.0

        positions: Dict[str, Position] = {}
        for item in data.get("assetPositions") or []:
            if not isinstance(item, dict):
                continue
            raw = item.get("position", item)
            if not isinstance(raw, dict):
                continue
            position = Position.from_api(raw)
            if position.coin:
                positions[position.coin] = position

        return cls(address=address, positions=positions, account_value=account_value)


@dataclass
class AccountState:
    """The last snapshot notifications were already sent for."""

    positions: Dict[str, Position] = field(default_factory=dict)
    account_value: float = 0.0

    @classmethod
    def from_snapshot(cls, snapshot: AccountSnapshot) -> "AccountState":
        return cls(positions=dict(snapshot.positions), account_value=snapshot.account_value)

    def is_empty(self) -> bool:
        return not self.positions and self.account_value == 0

    def positions_to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {coin: position.to_dict() for coin, position in self.positions.items()}

    @classmethod
    def from_stored(cls, account_value: Optional[float], positions: Dict[str, Dict[str, Any]]) -> "AccountState":
        parsed = {
            coin: Position.from_api({"coin": coin, **raw})
            for coin, raw in positions.items()
            if isinstance(raw, dict)
        }
        return cls(positions=parsed, account_value=account_value or 0.0)


@dataclass(frozen=True)
class Subscription:
    recipient: str
    address: str
    name: str

    @property
    def key(self) -> Tuple[str, str]:
        return (self.recipient, self.address)


# ============================================================================
# Diff events
# ============================================================================

@dataclass(frozen=True)
class Opened:
    coin: str
    position: Position


@dataclass(frozen=True)
class Closed:
    coin: str
    position: Position


@dataclass(frozen=True)
class Resized:
    coin: str
    previous_size: float
    current_size: float
    change_pct: float
    position: Position

    @property
    def increased(self) -> bool:
        return abs(self.current_size) > abs(self.previous_size)


@dataclass(frozen=True)
class AccountValueChanged:
    previous: float
    current: float
    change_pct: float


DiffEvent = Union[Opened, Closed, Resized, AccountValueChanged]


@dataclass(frozen=True)
class DiffReport:
    """Events detected between two snapshots. Empty means nothing notable."""

    events: Tuple[DiffEvent, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.events)

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[DiffEvent]:
        return iter(self.events)

    def of_type(self, kind: type) -> Tuple[DiffEvent, ...]:
        return tuple(event for event in self.events if isinstance(event, kind))
