# riskdesk/__init__.py
"""
Riskdesk - pre-trade risk guard and execution routing for trading assistants.

Evaluates trade commands against the live account snapshot, gates them by
execution mode and kill switch, and routes them to a simulated or live
broker. Tilt detection and a daily desk policy tighten risk after losses.
"""

from .commands import CloseCommand, ModifyCommand, OpenCommand, parse_command
from .config import Settings
from .execution import (
    BrokerSnapshot,
    ExecutionEngine,
    ExecutionResult,
    GuardLimits,
    GuardVerdict,
    evaluate_trade_command,
)
from .runner import build_desk, configure_logging

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "BrokerSnapshot",
    "CloseCommand",
    "ExecutionEngine",
    "ExecutionResult",
    "GuardLimits",
    "GuardVerdict",
    "ModifyCommand",
    "OpenCommand",
    "Settings",
    "build_desk",
    "configure_logging",
    "evaluate_trade_command",
    "parse_command",
]
