"""Broker-agnostic trading types."""

from enum import Enum


class Direction(str, Enum):
    """Trading direction for a position.

    Generic concept representing position bias (LONG or SHORT).
    Brokers are responsible for converting this to their API format.
    """
    LONG = "LONG"
    SHORT = "SHORT"

    def opposite(self) -> "Direction":
        """Return the opposite direction."""
        return Direction.SHORT if self is Direction.LONG else Direction.LONG

    def to_order_side(self) -> "OrderSide":
        """Convert direction to the order side that opens it."""
        return OrderSide.BUY if self is Direction.LONG else OrderSide.SELL

    @classmethod
    def parse(cls, value: object) -> "Direction | None":
        """
        Map broker-native direction strings onto a Direction.

        Accepts ``long``/``short``, ``buy``/``sell`` in any case.
        Returns ``None`` for anything else.
        """
        if isinstance(value, Direction):
            return value
        text = str(value or "").strip().upper()
        if text in ("LONG", "BUY"):
            return cls.LONG
        if text in ("SHORT", "SELL"):
            return cls.SHORT
        return None


class OrderSide(str, Enum):
    """Side of an open command. BOTH opens a buy leg and a sell leg."""
    BUY = "BUY"
    SELL = "SELL"
    BOTH = "BOTH"

    @property
    def legs(self) -> int:
        """Number of positions an order on this side creates."""
        return 2 if self is OrderSide.BOTH else 1


class ExecutionMode(str, Enum):
    """How the engine treats an allowed command."""
    CONFIRM = "confirm"
    AUTO = "auto"

    @classmethod
    def parse(cls, value: object) -> "ExecutionMode | None":
        """Case-insensitive lookup. Returns ``None`` for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class Environment(str, Enum):
    """Which brokerage a command is routed to."""
    SIM = "sim"
    LIVE = "live"

    @classmethod
    def parse(cls, value: object) -> "Environment | None":
        """Case-insensitive lookup. Returns ``None`` for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None
