from datetime import datetime, timedelta, timezone

import pytest

from riskdesk.desk.policy import DeskPolicy
from riskdesk.desk.tilt import (
    DefenseMode,
    RiskState,
    TiltService,
    apply_defense_mode,
)
from riskdesk.recording.journal import InMemoryTradeJournal, JournalEntry

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _make_entry(minutes_ago, **overrides):
    defaults = dict(
        id=f"e{minutes_ago}",
        created_at=NOW - timedelta(minutes=minutes_ago),
        symbol="EURUSD",
        status="closed",
    )
    defaults.update(overrides)
    return JournalEntry(**defaults)


def _losses(n, start=0):
    # newest first: start minutes ago, then older
    return [_make_entry(start + i, result_r=-1.0) for i in range(n)]


@pytest.fixture
def service():
    return TiltService(InMemoryTradeJournal())


class TestAnalyze:

    def test_no_trades(self, service):
        state = service.analyze([], now=NOW)
        assert state.risk_state is RiskState.NORMAL
        assert state.defense_mode is DefenseMode.NORMAL
        assert state.tilt_signals == ()

    @pytest.mark.parametrize(
        "streak, risk, mode",
        [
            (0, RiskState.NORMAL, DefenseMode.NORMAL),
            (1, RiskState.WARMING, DefenseMode.NORMAL),
            (2, RiskState.HOT, DefenseMode.CAUTION),
            (4, RiskState.TILT_RISK, DefenseMode.DEFENSE),
            (5, RiskState.LOCKDOWN, DefenseMode.LOCKDOWN),
        ],
    )
    def test_streak_escalation(self, service, streak, risk, mode):
        # small losses so the daily stop never triggers
        entries = [_make_entry(i, result_r=-0.5) for i in range(streak)]
        entries.append(_make_entry(60, result_r=2.0))

        state = service.analyze(entries, now=NOW)

        assert state.consecutive_losses == streak
        assert state.risk_state is risk
        assert state.defense_mode is mode

    def test_defense_mode_never_relaxes_as_streak_grows(self, service):
        order = list(DefenseMode)
        previous = 0
        for streak in range(7):
            entries = [_make_entry(i, result_r=-0.1) for i in range(streak)]
            rank = order.index(service.analyze(entries, now=NOW).defense_mode)
            assert rank >= previous
            previous = rank

    def test_win_breaks_streak(self, service):
        entries = _losses(2) + [_make_entry(10, result_r=1.5)] + _losses(3, start=20)
        state = service.analyze(entries, now=NOW)
        assert state.consecutive_losses == 2

    def test_breakeven_and_open_do_not_break_streak(self, service):
        entries = [
            _make_entry(1, result_r=-1.0),
            _make_entry(2, result_r=0.0),
            _make_entry(3, outcome="BE"),
            _make_entry(4, outcome="Loss"),
            _make_entry(5, outcome="Win"),
        ]
        state = service.analyze(entries, now=NOW)
        assert state.consecutive_losses == 2

    def test_outcome_used_when_r_missing(self, service):
        entries = [_make_entry(i, outcome="Loss") for i in range(2)]
        state = service.analyze(entries, now=NOW)
        assert state.daily_r == -2.0
        assert state.risk_state is RiskState.HOT

    def test_outcome_only_losses_reach_daily_stop(self, service):
        entries = [_make_entry(i, outcome="Loss") for i in range(3)]
        state = service.analyze(entries, now=NOW)
        assert state.daily_r == -3.0
        assert "session_dd_hit" in [s.reason for s in state.tilt_signals]

    def test_explicit_r_wins_over_outcome(self, service):
        state = service.analyze([_make_entry(1, outcome="Loss", result_r=-0.5)], now=NOW)
        assert state.daily_r == -0.5

    def test_input_order_does_not_matter(self, service):
        entries = _losses(2) + [_make_entry(10, result_r=1.0)]
        assert (
            service.analyze(entries, now=NOW).consecutive_losses
            == service.analyze(list(reversed(entries)), now=NOW).consecutive_losses
        )

    def test_daily_stop_locks_down(self, service):
        entries = [_make_entry(1, result_r=-3.5), _make_entry(40, result_r=0.5)]

        state = service.analyze(entries, now=NOW)

        assert state.daily_r == pytest.approx(-3.0)
        assert state.consecutive_losses == 1
        assert state.risk_state is RiskState.LOCKDOWN
        reasons = [s.reason for s in state.tilt_signals]
        assert reasons == ["session_dd_hit"]
        assert state.tilt_signals[0].details == "Daily R is -3.00R"

    def test_rapid_losses_signal(self, service):
        state = service.analyze(_losses(3), now=NOW)
        assert state.tilt_signals[0].reason == "rapid_losses"
        assert state.tilt_signals[0].details == "3 consecutive losses"

    def test_overtrading_signal(self):
        service = TiltService(InMemoryTradeJournal(), overtrading_limit=3)
        entries = [_make_entry(i, result_r=0.5) for i in range(4)]

        state = service.analyze(entries, now=NOW)

        assert state.trades_today == 4
        assert [s.reason for s in state.tilt_signals] == ["overtrading"]
        assert state.risk_state is RiskState.NORMAL

    def test_only_todays_closed_trades_count(self, service):
        entries = _losses(1) + [
            _make_entry(60 * 24, result_r=-1.0),
            _make_entry(5, result_r=-1.0, status="executed"),
        ]
        state = service.analyze(entries, now=NOW)
        assert state.trades_today == 1
        assert state.consecutive_losses == 1


class TestGetTiltState:

    @pytest.mark.asyncio
    async def test_reads_journal(self, state_store):
        journal = InMemoryTradeJournal()
        for i in range(2):
            journal.log_entry(
                JournalEntry(id=f"t{i}", created_at=datetime.now(timezone.utc), result_r=-1.0)
            )
        service = TiltService(journal, state_store)

        state = await service.get_tilt_state()

        assert state.consecutive_losses == 2
        assert state.defense_mode is DefenseMode.CAUTION


class TestApplyDefenseMode:

    def _policy(self, **overrides):
        defaults = dict(max_risk_per_trade=0.5, notes="Standard risk allowed.")
        defaults.update(overrides)
        return DeskPolicy(**defaults)

    def test_normal_returns_policy_unchanged(self):
        policy = self._policy()
        assert apply_defense_mode(policy, DefenseMode.NORMAL) == policy

    def test_caution_caps_risk(self):
        policy = self._policy()

        adapted = apply_defense_mode(policy, "caution")

        assert adapted.max_risk_per_trade == 0.25
        assert adapted.mode == "advisory"
        assert adapted.notes.endswith("[DEFENSE] Mode: CAUTION. Risk capped at 0.25%.")
        assert policy.max_risk_per_trade == 0.5
        assert policy.notes == "Standard risk allowed."

    def test_caution_keeps_lower_risk(self):
        adapted = apply_defense_mode(self._policy(max_risk_per_trade=0.1), DefenseMode.CAUTION)
        assert adapted.max_risk_per_trade == 0.1

    @pytest.mark.parametrize(
        "mode, note",
        [
            (DefenseMode.DEFENSE, "[DEFENSE] Mode: DEFENSE. New risk blocked. Manage existing only."),
            (DefenseMode.LOCKDOWN, "[DEFENSE] Mode: LOCKDOWN. Trading suspended."),
        ],
    )
    def test_defense_and_lockdown_enforce_zero_risk(self, mode, note):
        adapted = apply_defense_mode(self._policy(), mode)
        assert adapted.max_risk_per_trade == 0.0
        assert adapted.is_enforced
        assert adapted.notes.splitlines()[-1] == note

    def test_service_method_delegates(self, service):
        adapted = service.apply_defense_mode(self._policy(), "lockdown")
        assert adapted.is_enforced
