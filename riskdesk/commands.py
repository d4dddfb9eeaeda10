"""Trade commands submitted to the guard and the execution engine.

A command is one of three frozen dataclasses. Each carries a ``type`` tag
matching the wire format used by callers (``"open"``, ``"close"``,
``"modify"``), so raw mappings can be turned into commands with
:func:`parse_command` and back with :meth:`to_dict`.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Mapping, Union

from riskdesk.types import OrderSide


__all__ = [
    "CloseCommand",
    "CommandError",
    "ModifyCommand",
    "OpenCommand",
    "TradeCommand",
    "parse_command",
]


class CommandError(ValueError):
    """Raised when a raw command cannot be turned into a TradeCommand.

    ``code`` is the guard reason code (``MissingCommandType``,
    ``UnknownCommandType`` or ``InvalidOrderSide``).
    """

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code


@dataclass(frozen=True)
class OpenCommand:
    """Open one position (BUY/SELL) or a hedged pair (BOTH)."""

    type: ClassVar[str] = "open"

    symbol: str
    side: OrderSide
    qty: float | None
    price: float | None = None
    sl_price: float | None = None
    tp_price: float | None = None
    entry_type: str = "market"  # market | limit | stop
    stop_price: float | None = None
    route_id: str | None = None
    client_order_id: str | None = None
    instrument_id: str | None = None
    playbook: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type
        data["side"] = self.side.value
        return data


@dataclass(frozen=True)
class CloseCommand:
    """Close a position, fully when ``qty`` is omitted or zero."""

    type: ClassVar[str] = "close"

    position_id: str
    qty: float | None = None
    price: float | None = None  # fill price for the simulated broker

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type
        return data


@dataclass(frozen=True)
class ModifyCommand:
    """Move the stop loss and/or take profit of an open position."""

    type: ClassVar[str] = "modify"

    position_id: str
    sl_price: float | None = None
    tp_price: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type
        return data


TradeCommand = Union[OpenCommand, CloseCommand, ModifyCommand]


# camelCase keys accepted from JSON callers
_ALIASES = {
    "slPrice": "sl_price",
    "tpPrice": "tp_price",
    "entryType": "entry_type",
    "stopPrice": "stop_price",
    "routeId": "route_id",
    "clientOrderId": "client_order_id",
    "positionId": "position_id",
    "tradableInstrumentId": "instrument_id",
    "instrumentId": "instrument_id",
    "instrumentSymbol": "symbol",
}


def _to_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _to_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _normalise_keys(raw: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in raw.items():
        out[_ALIASES.get(key, key)] = value
    return out


def parse_command(raw: Mapping[str, Any] | None) -> TradeCommand:
    """
    Build a TradeCommand from a raw mapping.

    Numeric fields that are missing or not parseable become ``None``; the
    guard reports those as risk-estimation warnings rather than failing here.

    Args:
        raw: Mapping with a ``type`` key and camelCase or snake_case fields

    Returns:
        The matching command dataclass

    Raises:
        CommandError: ``MissingCommandType`` if ``type`` is absent,
            ``UnknownCommandType`` if it is not open/close/modify
    """
    if not raw or not raw.get("type"):
        raise CommandError("MissingCommandType")

    data = _normalise_keys(raw)
    kind = str(data["type"]).strip().lower()

    if kind == OpenCommand.type:
        side_text = str(data.get("side") or "").strip().upper()
        try:
            side = OrderSide(side_text)
        except ValueError:
            raise CommandError(
                "InvalidOrderSide", f"Invalid order side {data.get('side')!r}"
            ) from None
        return OpenCommand(
            symbol=str(data.get("symbol") or ""),
            side=side,
            qty=_to_float(data.get("qty")),
            price=_to_float(data.get("price")),
            sl_price=_to_float(data.get("sl_price")),
            tp_price=_to_float(data.get("tp_price")),
            entry_type=str(data.get("entry_type") or "market").lower(),
            stop_price=_to_float(data.get("stop_price")),
            route_id=_to_str(data.get("route_id")),
            client_order_id=_to_str(data.get("client_order_id")),
            instrument_id=_to_str(data.get("instrument_id")),
            playbook=_to_str(data.get("playbook")),
        )

    if kind == CloseCommand.type:
        return CloseCommand(
            position_id=str(data.get("position_id") or ""),
            qty=_to_float(data.get("qty")),
            price=_to_float(data.get("price")),
        )

    if kind == ModifyCommand.type:
        return ModifyCommand(
            position_id=str(data.get("position_id") or ""),
            sl_price=_to_float(data.get("sl_price")),
            tp_price=_to_float(data.get("tp_price")),
        )

    raise CommandError("UnknownCommandType", f"Unknown command type {data['type']!r}")
