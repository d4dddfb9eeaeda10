"""In-memory simulated broker: one account plus its positions."""

from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone

from riskdesk.execution.broker import BrokerError, BrokerSnapshot, Position
from riskdesk.time_utils import now_utc_iso
from riskdesk.types import Direction

log = logging.getLogger(__name__)


__all__ = ["SimAccount", "SimBroker", "SimPosition"]


@dataclass
class SimAccount:
    account_id: str = "SIM-001"
    account_name: str = "Simulated Account"
    equity: float = 100000.0
    balance: float = 100000.0
    currency: str = "USD"


@dataclass
class SimPosition:
    id: str
    symbol: str
    direction: Direction
    size: float
    entry_price: float
    stop_price: float | None = None
    take_profit: float | None = None
    opened_at: str = ""
    closed_at: str | None = None
    close_price: float | None = None
    pnl: float | None = None
    status: str = "open"  # open | closed


class SimBroker:
    """
    Simulated brokerage used when the session runs in sim mode.

    - positions fill immediately at the requested entry price
    - closing realises PnL into balance (equity tracks balance)
    - reads return copies so callers cannot mutate broker state
    """

    def __init__(self, account: SimAccount | None = None):
        self._account = account or SimAccount()
        self._position_counter = itertools.count(1)
        self._positions: list[SimPosition] = []
        self._realised_today = 0.0
        self._realised_day: date | None = None

    def get_sim_account(self) -> SimAccount:
        return replace(self._account)

    def get_sim_positions(self) -> list[SimPosition]:
        return [replace(p) for p in self._positions]

    def open_positions(self) -> list[SimPosition]:
        return [replace(p) for p in self._positions if p.status == "open"]

    def daily_pnl(self) -> float:
        """Realised PnL for the current UTC day."""
        if self._realised_day != datetime.now(timezone.utc).date():
            return 0.0
        return self._realised_today

    def _find(self, position_id: str) -> SimPosition:
        for p in self._positions:
            if p.id == position_id:
                return p
        raise BrokerError(f"Position not found: {position_id}")

    def open_sim_position(
        self,
        *,
        symbol: str,
        direction: Direction | str,
        size: float,
        entry_price: float,
        stop_price: float | None = None,
        take_profit: float | None = None,
    ) -> SimPosition:
        """
        Open a simulated position.

        Args:
            symbol: Instrument symbol
            direction: LONG/SHORT (or BUY/SELL)
            size: Units to open, must be > 0
            entry_price: Fill price, must be > 0
            stop_price: Optional protective stop
            take_profit: Optional take profit

        Returns:
            A copy of the new position

        Raises:
            BrokerError: On invalid size, price or direction
        """
        parsed = Direction.parse(direction)
        if parsed is None:
            raise BrokerError(f"Invalid direction {direction!r}")
        if not size or not math.isfinite(size) or size <= 0:
            raise BrokerError("size must be > 0")
        if not entry_price or not math.isfinite(entry_price) or entry_price <= 0:
            raise BrokerError("entry_price must be > 0")

        position = SimPosition(
            id=f"SIM-POS-{next(self._position_counter)}",
            symbol=symbol,
            direction=parsed,
            size=float(size),
            entry_price=float(entry_price),
            stop_price=stop_price,
            take_profit=take_profit,
            opened_at=now_utc_iso(),
        )
        self._positions.append(position)
        log.info(
            "Sim open %s %s %.4f @ %.5f (%s)",
            symbol, parsed.value, position.size, position.entry_price, position.id,
        )
        return replace(position)

    def close_sim_position(self, position_id: str, price: float) -> SimPosition:
        """
        Close a simulated position and realise its PnL.

        Closing an already-closed position returns it unchanged.

        Raises:
            BrokerError: If the position does not exist or price is invalid
        """
        pos = self._find(position_id)
        if pos.status == "closed":
            return replace(pos)
        if price is None or price <= 0:
            raise BrokerError("close price must be > 0")

        diff = price - pos.entry_price if pos.direction is Direction.LONG else pos.entry_price - price
        pnl = diff * pos.size

        self._account.balance += pnl
        self._account.equity = self._account.balance

        today = datetime.now(timezone.utc).date()
        if self._realised_day != today:
            self._realised_day = today
            self._realised_today = 0.0
        self._realised_today += pnl

        pos.close_price = float(price)
        pos.closed_at = now_utc_iso()
        pos.pnl = pnl
        pos.status = "closed"
        log.info("Sim close %s @ %.5f pnl=%.2f", pos.id, price, pnl)
        return replace(pos)

    def modify_sim_position(
        self,
        position_id: str,
        *,
        stop_price: float | None = None,
        take_profit: float | None = None,
    ) -> SimPosition:
        """Update stop and/or take profit; ``None`` leaves a level unchanged."""
        pos = self._find(position_id)
        if pos.status == "closed":
            raise BrokerError(f"Position already closed: {position_id}")
        if stop_price is not None:
            pos.stop_price = float(stop_price)
        if take_profit is not None:
            pos.take_profit = float(take_profit)
        return replace(pos)

    def snapshot(self) -> BrokerSnapshot:
        """Map the sim account onto the canonical broker snapshot."""
        acct = self._account
        return BrokerSnapshot(
            equity=float(acct.equity),
            balance=float(acct.balance),
            daily_pnl=self.daily_pnl(),
            open_positions=tuple(
                Position(
                    id=p.id,
                    symbol=p.symbol,
                    side=p.direction,
                    size=p.size,
                    entry_price=p.entry_price,
                    stop_loss=p.stop_price,
                    take_profit=p.take_profit,
                    unrealized_pnl=0.0,
                )
                for p in self._positions
                if p.status == "open"
            ),
            account_id=acct.account_id,
            broker="sim",
            currency=acct.currency,
        )
