import pytest

from riskdesk.commands import (
    CloseCommand,
    CommandError,
    ModifyCommand,
    OpenCommand,
    parse_command,
)
from riskdesk.types import OrderSide


class TestParseCommand:

    def test_open_with_camel_case_keys(self):
        command = parse_command({
            "type": "open",
            "symbol": "EURUSD",
            "side": "buy",
            "qty": "2",
            "price": 1.1,
            "slPrice": "1.09",
            "tpPrice": 1.12,
            "entryType": "LIMIT",
            "routeId": 9,
            "clientOrderId": "c-1",
            "tradableInstrumentId": 278,
        })

        assert isinstance(command, OpenCommand)
        assert command.side is OrderSide.BUY
        assert command.qty == 2.0
        assert command.sl_price == 1.09
        assert command.entry_type == "limit"
        assert command.route_id == "9"
        assert command.instrument_id == "278"

    def test_open_defaults(self):
        command = parse_command({"type": "open", "symbol": "XAUUSD", "side": "BOTH"})
        assert command.side is OrderSide.BOTH
        assert command.entry_type == "market"
        assert command.qty is None
        assert command.price is None

    def test_unparseable_numbers_become_none(self):
        command = parse_command(
            {"type": "open", "symbol": "X", "side": "SELL", "qty": "lots", "price": ""}
        )
        assert command.qty is None
        assert command.price is None

    @pytest.mark.parametrize("value", ["nan", "inf", float("nan"), float("-inf"), 10**400])
    def test_non_finite_numbers_become_none(self, value):
        command = parse_command(
            {"type": "open", "symbol": "X", "side": "BUY", "qty": value,
             "price": value, "slPrice": value}
        )
        assert command.qty is None
        assert command.price is None
        assert command.sl_price is None

    def test_close(self):
        command = parse_command({"type": "close", "positionId": 12345, "qty": 0.5})
        assert command == CloseCommand(position_id="12345", qty=0.5)

    def test_modify(self):
        command = parse_command({"type": "Modify", "position_id": "P1", "sl_price": 1.2})
        assert command == ModifyCommand(position_id="P1", sl_price=1.2)

    @pytest.mark.parametrize("raw", [None, {}, {"type": ""}, {"symbol": "EURUSD"}])
    def test_missing_type(self, raw):
        with pytest.raises(CommandError) as exc_info:
            parse_command(raw)
        assert exc_info.value.code == "MissingCommandType"

    def test_unknown_type(self):
        with pytest.raises(CommandError) as exc_info:
            parse_command({"type": "hedge"})
        assert exc_info.value.code == "UnknownCommandType"

    def test_invalid_side(self):
        with pytest.raises(CommandError) as exc_info:
            parse_command({"type": "open", "symbol": "EURUSD", "side": "sideways"})
        assert exc_info.value.code == "InvalidOrderSide"

    def test_command_error_is_value_error(self):
        assert issubclass(CommandError, ValueError)


class TestToDict:

    def test_open_round_trips(self):
        command = OpenCommand(symbol="EURUSD", side=OrderSide.SELL, qty=1.0, price=1.1)
        data = command.to_dict()

        assert data["type"] == "open"
        assert data["side"] == "SELL"
        assert parse_command(data) == command

    def test_close_carries_type(self):
        assert CloseCommand(position_id="P1").to_dict()["type"] == "close"
