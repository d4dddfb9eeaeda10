"""Trading session state: the global kill switch and execution mode."""

import logging
from dataclasses import dataclass, replace
from typing import Protocol

from riskdesk.types import Environment

log = logging.getLogger(__name__)


__all__ = ["SessionState", "SessionStateProvider", "SessionController"]


@dataclass(frozen=True)
class SessionState:
    trading_halted: bool = False
    execution_mode: Environment = Environment.SIM
    halt_reason: str = ""


class SessionStateProvider(Protocol):
    """Source of the kill switch consulted before every command."""

    async def get_session_state(self) -> SessionState:
        ...


class SessionController:
    """In-process session state holder.

    Each read returns the current value; nothing is cached by readers.
    """

    def __init__(self, state: SessionState | None = None):
        self._state = state or SessionState()

    async def get_session_state(self) -> SessionState:
        return self._state

    def halt(self, reason: str = "") -> None:
        """Engage the kill switch."""
        self._state = replace(self._state, trading_halted=True, halt_reason=reason)
        log.warning("Trading halted%s", f": {reason}" if reason else "")

    def resume(self) -> None:
        """Release the kill switch."""
        self._state = replace(self._state, trading_halted=False, halt_reason="")
        log.info("Trading resumed")

    def set_execution_mode(self, mode: Environment | str) -> None:
        self._state = replace(self._state, execution_mode=Environment(mode))
        log.info("Execution mode set to %s", self._state.execution_mode.value)
