import logging

import pytest

from riskdesk.config import Settings
from riskdesk.execution.state_store import BrokerStateStore
from riskdesk.recording.journal import InMemoryTradeJournal, JournalEntry
from riskdesk.runner import build_desk, configure_logging
from riskdesk.time_utils import now_utc
from riskdesk.types import Environment


class TestConfigureLogging:

    def test_non_destructive_by_default(self):
        root = logging.getLogger()
        sentinel = logging.NullHandler()
        root.addHandler(sentinel)
        try:
            configure_logging("DEBUG")
            assert sentinel in root.handlers
        finally:
            root.removeHandler(sentinel)

    def test_force_replaces_handlers(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            root.addHandler(logging.NullHandler())
            configure_logging("warning", force=True)
            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0], logging.StreamHandler)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


class TestBuildDesk:

    def _desk(self, journal=None, **kwargs):
        return build_desk(
            Settings(allow_auto_execute=True),
            journal=journal,
            state_store=BrokerStateStore(),
            setup_logging=False,
            **kwargs,
        )

    def test_wires_settings(self):
        desk = self._desk()
        assert desk.engine.allow_auto_execute is True
        assert desk.engine.sim_broker is desk.sim_broker
        assert desk.engine.limits == desk.settings.guard_limits()
        assert desk.engine.policy_provider is None
        assert desk.tilt.overtrading_limit == 5

    @pytest.mark.asyncio
    async def test_sim_round_trip(self):
        desk = self._desk()

        result = await desk.engine.execute_trade_command(
            "auto",
            {"type": "open", "symbol": "EURUSD", "side": "BUY", "qty": 1000,
             "price": 1.1, "slPrice": 1.09},
            environment="sim",
        )

        assert result.executed is True
        assert result.environment is Environment.SIM
        assert len(desk.sim_broker.open_positions()) == 1

    @pytest.mark.asyncio
    async def test_enforced_policy_blocks_after_losing_streak(self):
        journal = InMemoryTradeJournal()
        for i in range(4):
            journal.log_entry(JournalEntry(id=f"l{i}", created_at=now_utc(), result_r=-0.5))
        desk = self._desk(journal=journal, enforce_policy=True)

        policy = await desk.effective_policy()
        result = await desk.engine.execute_trade_command(
            "auto",
            {"type": "open", "symbol": "EURUSD", "side": "BUY", "qty": 1000,
             "price": 1.1, "slPrice": 1.09},
            environment="sim",
        )

        assert policy.is_enforced
        assert policy.max_risk_per_trade == 0.0
        assert result.executed is False
        assert "SingleTradeRiskTooHigh" in result.reasons
