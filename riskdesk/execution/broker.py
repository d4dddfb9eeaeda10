"""
Provider-neutral broker types.

The guard and the engine only ever see a :class:`BrokerSnapshot`; live
brokers implement :class:`LiveBroker`. Raw payloads from pollers or
simulated accounts are normalised through :meth:`BrokerSnapshot.from_raw`.
"""

import abc
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from riskdesk.types import Direction


__all__ = [
    "BrokerError",
    "BrokerSnapshot",
    "LiveBroker",
    "Position",
    "format_snapshot_for_prompt",
]


class BrokerError(Exception):
    """Raised by broker collaborators when an order or account call fails."""

    pass


def _num(value: Any) -> float | None:
    """Coerce finite numbers and numeric strings; anything else becomes None."""
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)) or value == "":
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


@dataclass(frozen=True)
class Position:
    """An open position as seen in a broker snapshot."""

    id: str
    symbol: str
    side: Direction | None
    size: float
    entry_price: float | None
    stop_loss: float | None = None
    take_profit: float | None = None
    unrealized_pnl: float | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "Position":
        """
        Normalise a broker-native position payload.

        Accepts the shapes produced by our pollers and the sim broker:
        ``id``/``ticket``/``positionId``, ``side``/``direction``,
        ``size``/``volume``/``qty``, and camelCase price fields.
        """
        pid = raw.get("id") or raw.get("ticket") or raw.get("positionId") or ""
        side = Direction.parse(raw.get("side") or raw.get("direction"))
        size = _num(raw.get("size"))
        if size is None:
            size = _num(raw.get("volume"))
        if size is None:
            size = _num(raw.get("qty"))
        return cls(
            id=str(pid),
            symbol=str(raw.get("symbol") or raw.get("instrumentSymbol") or ""),
            side=side,
            size=size or 0.0,
            entry_price=_num(raw.get("entry_price", raw.get("entryPrice"))),
            stop_loss=_num(raw.get("stop_loss", raw.get("stopLoss"))),
            take_profit=_num(raw.get("take_profit", raw.get("takeProfit"))),
            unrealized_pnl=_num(raw.get("unrealized_pnl", raw.get("unrealizedPnl"))),
        )


@dataclass(frozen=True)
class BrokerSnapshot:
    """Point-in-time read of account funds and open positions.

    Snapshots are values: the state store swaps a whole new snapshot in
    rather than editing one.
    """

    equity: float | None
    balance: float | None
    daily_pnl: float | None = None
    open_positions: tuple[Position, ...] = ()
    account_id: str | None = None
    broker: str | None = None
    currency: str | None = None
    free_margin: float | None = None
    margin_used: float | None = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def find_position(self, position_id: str) -> Position | None:
        """Look up an open position by id (compared as strings)."""
        target = str(position_id)
        for p in self.open_positions:
            if p.id == target:
                return p
        return None

    def positions_for_symbol(self, symbol: str) -> list[Position]:
        return [p for p in self.open_positions if p.symbol == symbol]

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "BrokerSnapshot":
        """
        Normalise an incoming snapshot payload.

        Numeric strings are coerced, invalid or non-finite numbers become
        ``None`` and positions are mapped through :meth:`Position.from_raw`.

        Args:
            raw: Broker payload with camelCase or snake_case keys

        Returns:
            A new immutable snapshot
        """
        positions = raw.get("open_positions", raw.get("openPositions")) or []

        def _opt_str(key: str) -> str | None:
            value = raw.get(key)
            return value if isinstance(value, str) else None

        return cls(
            equity=_num(raw.get("equity")),
            balance=_num(raw.get("balance")),
            daily_pnl=_num(raw.get("daily_pnl", raw.get("dailyPnl"))),
            open_positions=tuple(Position.from_raw(p) for p in positions),
            account_id=_opt_str("account_id") or _opt_str("accountId"),
            broker=_opt_str("broker"),
            currency=_opt_str("currency"),
            free_margin=_num(raw.get("free_margin", raw.get("freeMargin"))),
            margin_used=_num(raw.get("margin_used", raw.get("marginUsed"))),
        )


def _fmt(value: float | None) -> str:
    return f"{value:.2f}" if value is not None else "n/a"


def format_snapshot_for_prompt(snapshot: BrokerSnapshot | None) -> str:
    """Render a compact text summary of broker state for the coordinator."""
    if snapshot is None:
        return "No broker/account snapshot available."

    acct = snapshot.account_id or "(unknown account)"
    broker = snapshot.broker or "(unknown broker)"
    currency = f" ({snapshot.currency})" if snapshot.currency else ""

    lines = [
        f"Account: {acct} @ {broker}{currency}",
        f"Balance: {_fmt(snapshot.balance)}, Equity: {_fmt(snapshot.equity)}, "
        f"FreeMargin: {_fmt(snapshot.free_margin)}, MarginUsed: {_fmt(snapshot.margin_used)}",
        f"Daily PnL: {_fmt(snapshot.daily_pnl)}",
        "",
    ]

    if not snapshot.open_positions:
        lines.append("Open positions: none.")
        return "\n".join(lines)

    lines.append("Open positions:")
    for idx, p in enumerate(snapshot.open_positions, start=1):
        side = p.side.value if p.side else "UNKNOWN"
        sl = p.stop_loss if p.stop_loss is not None else "n/a"
        tp = p.take_profit if p.take_profit is not None else "n/a"
        lines.append(
            f"{idx}. {p.symbol or 'UNKNOWN'} {side} {p.size:.2f} @ {_fmt(p.entry_price)}, "
            f"uPnL={_fmt(p.unrealized_pnl)}, SL={sl}, TP={tp}"
        )
    return "\n".join(lines)


class LiveBroker(abc.ABC):
    """Abstract base for live brokerage clients used by the engine."""

    @abc.abstractmethod
    async def place_order(
        self,
        *,
        symbol: str,
        side: str,
        qty: float,
        order_type: str = "market",
        validity: str = "IOC",
        price: float | None = None,
        stop_price: float | None = None,
        sl_price: float | None = None,
        tp_price: float | None = None,
        route_id: str | None = None,
        client_order_id: str | None = None,
        instrument_id: str | None = None,
    ) -> dict[str, Any]:
        """Place an order.

        Args:
            symbol: The instrument symbol.
            side: "BUY" or "SELL" (never "BOTH"; the engine splits legs).
            qty: Order size.
            order_type: "market", "limit" or "stop".
            validity: Time in force.
            price: Limit/reference price.
            stop_price: Trigger price for stop entries.
            sl_price: Protective stop loss.
            tp_price: Take profit.
            route_id: Broker route identifier.
            client_order_id: Idempotency key supplied by the caller.
            instrument_id: Broker tradable-instrument identifier.

        Returns:
            The raw broker response.

        Raises:
            BrokerError: If the broker rejects the order.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def close_position(self, position_id: str, qty: float = 0) -> dict[str, Any]:
        """Close a position; ``qty=0`` closes it fully."""
        raise NotImplementedError

    @abc.abstractmethod
    async def modify_position(
        self,
        position_id: str,
        *,
        sl_price: float | None = None,
        tp_price: float | None = None,
    ) -> dict[str, Any]:
        """Update stop loss and/or take profit of an open position."""
        raise NotImplementedError
