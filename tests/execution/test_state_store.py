import logging

from riskdesk.execution.broker import BrokerSnapshot, format_snapshot_for_prompt
from riskdesk.execution.state_store import BrokerStateStore, get_state_store
from riskdesk.types import Direction


def _snapshot(**overrides):
    defaults = dict(equity=10000.0, balance=10000.0, daily_pnl=0.0)
    defaults.update(overrides)
    return BrokerSnapshot(**defaults)


class TestBrokerStateStore:

    def test_empty_store(self):
        assert BrokerStateStore().get_snapshot() is None

    def test_update_replaces_snapshot(self):
        store = BrokerStateStore(_snapshot())
        newer = _snapshot(equity=9500.0)

        returned = store.update_snapshot(newer)

        assert returned is newer
        assert store.get_snapshot() is newer

    def test_raw_payload_is_normalised(self):
        store = BrokerStateStore()
        stored = store.update_snapshot({
            "equity": "10250.5",
            "balance": 10000,
            "dailyPnl": "oops",
            "openPositions": [
                {"id": 7, "symbol": "XAUUSD", "side": "sell", "size": "0.5", "entryPrice": 2300},
            ],
        })

        assert stored.equity == 10250.5
        assert stored.daily_pnl is None
        position = stored.open_positions[0]
        assert position.id == "7"
        assert position.side is Direction.SHORT
        assert position.size == 0.5
        assert position.entry_price == 2300.0

    def test_non_finite_numbers_become_none(self):
        stored = BrokerStateStore().update_snapshot({
            "equity": "nan",
            "balance": float("inf"),
            "dailyPnl": "-Infinity",
            "openPositions": [{"id": 1, "side": "buy", "size": "nan", "stopLoss": "inf"}],
        })

        assert stored.equity is None
        assert stored.balance is None
        assert stored.daily_pnl is None
        assert stored.open_positions[0].size == 0.0
        assert stored.open_positions[0].stop_loss is None

    def test_subscribers_notified_in_order(self):
        store = BrokerStateStore()
        calls = []
        store.subscribe(lambda s: calls.append(("first", s.equity)))
        store.subscribe(lambda s: calls.append(("second", s.equity)))

        store.update_snapshot(_snapshot(equity=1.0))

        assert calls == [("first", 1.0), ("second", 1.0)]

    def test_failing_subscriber_is_isolated(self, caplog):
        store = BrokerStateStore()
        received = []

        def broken(snapshot):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.subscribe(received.append)

        with caplog.at_level(logging.ERROR):
            snap = store.update_snapshot(_snapshot())

        assert received == [snap]
        assert store.get_snapshot() is snap
        assert "listener bug" in caplog.text

    def test_unsubscribe(self):
        store = BrokerStateStore()
        calls = []
        unsubscribe = store.subscribe(calls.append)

        unsubscribe()
        store.update_snapshot(_snapshot())

        assert calls == []

    def test_subscriber_sees_new_snapshot_on_read(self):
        store = BrokerStateStore(_snapshot(equity=1.0))
        seen = []
        store.subscribe(lambda s: seen.append(store.get_snapshot().equity))

        store.update_snapshot(_snapshot(equity=2.0))

        assert seen == [2.0]

    def test_clear_keeps_listeners(self):
        store = BrokerStateStore(_snapshot())
        calls = []
        store.subscribe(calls.append)

        store.clear()
        assert store.get_snapshot() is None

        store.update_snapshot(_snapshot())
        assert len(calls) == 1

    def test_singleton(self):
        assert get_state_store() is get_state_store()


class TestFormatSnapshot:

    def test_no_snapshot(self):
        assert format_snapshot_for_prompt(None) == "No broker/account snapshot available."

    def test_lists_positions(self):
        snapshot = BrokerSnapshot.from_raw({
            "equity": 10000,
            "balance": 10000,
            "accountId": "ACC-1",
            "broker": "tradelocker",
            "openPositions": [{"id": "1", "symbol": "EURUSD", "side": "buy", "qty": 2,
                               "entryPrice": 1.1, "stopLoss": 1.09}],
        })
        text = format_snapshot_for_prompt(snapshot)

        assert "Account: ACC-1 @ tradelocker" in text
        assert "1. EURUSD LONG 2.00 @ 1.10" in text
        assert "SL=1.09" in text

    def test_no_positions(self):
        assert "Open positions: none." in format_snapshot_for_prompt(_snapshot())
