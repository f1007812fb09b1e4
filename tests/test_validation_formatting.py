"""
Input parsing defaults, Indian number formatting, settings and error types.
"""

from __future__ import annotations

import math

import pytest

from optsim.utils.config import Settings, reload_settings
from optsim.utils.exceptions import ErrorCategory, OrderStateError, UnknownSymbolError, ValidationError
from optsim.utils.formatting import format_number, format_pnl, format_price
from optsim.utils.logger import get_logger, order_log_fields, setup_logging
from optsim.utils.validation import parse_price, parse_quantity, parse_strike


class TestParseQuantity:

    @pytest.mark.parametrize("raw,expected", [(3, 3), ("2", 2), ("4.0", 4), (2.9, 2)])
    def test_valid(self, raw, expected):
        assert parse_quantity(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", 0, -2, True, "nan"])
    def test_defaults_to_one_lot(self, raw):
        assert parse_quantity(raw) == 1

    def test_strict_raises(self):
        with pytest.raises(ValidationError) as exc:
            parse_quantity("abc", strict=True)
        assert exc.value.field == "quantity"


class TestParsePrice:

    def test_valid(self):
        assert parse_price("123.45", fallback=99.0) == pytest.approx(123.45)

    @pytest.mark.parametrize("raw", [None, "", "x", 0, -5, math.inf, "nan"])
    def test_falls_back_to_quote(self, raw):
        assert parse_price(raw, fallback=99.0) == 99.0

    def test_strict_raises(self):
        with pytest.raises(ValidationError):
            parse_price(-1, fallback=99.0, strict=True)


class TestParseStrike:

    @pytest.mark.parametrize("raw,expected", [("21350", 21_350.0), (21_400, 21_400.0), ("2456.5", 2_456.5)])
    def test_valid(self, raw, expected):
        assert parse_strike(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", 0, -100, True, "inf", "-inf", "nan", math.inf, math.nan])
    def test_rejects_without_default(self, raw):
        with pytest.raises(ValidationError) as exc:
            parse_strike(raw)
        assert exc.value.field == "strike"


class TestFormatting:

    @pytest.mark.parametrize("value,text", [
        (21_347.5, "21,347.50"),
        (123_456.78, "1,23,456.78"),
        (12_345_678.9, "1,23,45,678.90"),
        (999.0, "999.00"),
        (0.0, "0.00"),
        (-1_500.0, "-1,500.00"),
    ])
    def test_format_price(self, value, text):
        assert format_price(value) == text

    @pytest.mark.parametrize("value,text", [
        (1_234_567, "12,34,567"),
        (1_000.5, "1,000.5"),
        (2.12345, "2.123"),
        (50, "50"),
    ])
    def test_format_number(self, value, text):
        assert format_number(value) == text

    def test_format_pnl(self):
        assert format_pnl(2_000.0) == "+₹2,000"
        assert format_pnl(-1_250.5) == "-₹1,250.5"
        assert format_pnl(0.0) == "+₹0"


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.risk_free_rate == 0.065
        assert settings.refresh_interval_seconds == 5.0
        assert settings.fill_probability == 0.95
        assert settings.symbols["NIFTY"].lot_size == 50
        assert settings.symbols["BANKNIFTY"].underlying_price == 46_284.70

    def test_fill_probability_bounds(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, fill_probability=1.2)


class TestErrors:

    def test_category_in_str(self):
        err = UnknownSymbolError("XYZ")
        assert err.category is ErrorCategory.MARKET_DATA
        assert str(err).startswith("[market_data]")

    def test_order_state_error(self):
        err = OrderStateError("ORD1001", "EXECUTED", "CANCELLED")
        assert err.category is ErrorCategory.ORDER
        assert "ORD1001" in err.message


class TestLogging:

    def test_setup_creates_log_file(self, tmp_path, monkeypatch):
        log_file = tmp_path / "logs" / "optsim.log"
        monkeypatch.setenv("LOG_FILE", str(log_file))
        reload_settings()
        try:
            setup_logging()
            get_logger("optsim.test").info("logging_configured")
            assert log_file.exists()
        finally:
            monkeypatch.delenv("LOG_FILE")
            reload_settings()

    def test_order_log_fields(self):
        fields = order_log_fields({"order_id": "ORD1001", "symbol": "NIFTY", "created_at": "x"})
        assert fields == {"order_id": "ORD1001", "symbol": "NIFTY"}
