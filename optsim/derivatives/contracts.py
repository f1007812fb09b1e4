"""
Instrument and order vocabulary shared across the simulator.

Enums are ``str`` subclasses so they serialise straight into JSON view
models and compare equal to their wire values ("CALL", "BUY", ...).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from optsim.utils.config import SymbolConfig
from optsim.utils.exceptions import UnknownSymbolError, ValidationError


class OptionType(str, Enum):
    CALL = "CALL"
    PUT = "PUT"

    @property
    def is_call(self) -> bool:
        return self is OptionType.CALL


class Action(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "Action":
        return Action.SELL if self is Action.BUY else Action.BUY

    @property
    def sign(self) -> int:
        """+1 for long exposure, -1 for short."""
        return 1 if self is Action.BUY else -1


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    SL = "SL"
    SL_M = "SL-M"
    BRACKET = "BRACKET"
    COVER = "COVER"
    GTT = "GTT"
    OCO = "OCO"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    EXECUTED = "EXECUTED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


def parse_enum(enum_cls: type[Enum], raw: Any, field: str) -> Any:
    """Coerce a wire value ("buy", "CALL", ...) into ``enum_cls``."""
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw).strip().upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field}: {raw!r} (expected one of {allowed})", field=field)


@dataclass
class Instrument:
    """An underlying with its contract terms.

    Everything except ``underlying_price`` is fixed for the symbol; the
    price drifts on every market data refresh.
    """
    symbol: str
    lot_size: int
    tick_size: float = 0.05
    multiplier: int = 1
    sector: str = ""
    underlying_price: float = 0.0

    @classmethod
    def from_config(cls, symbol: str, config: SymbolConfig) -> Instrument:
        return cls(
            symbol=symbol,
            lot_size=config.lot_size,
            tick_size=config.tick_size,
            multiplier=config.multiplier,
            sector=config.sector,
            underlying_price=config.underlying_price,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "lot_size": self.lot_size,
            "tick_size": self.tick_size,
            "multiplier": self.multiplier,
            "sector": self.sector,
            "underlying_price": round(self.underlying_price, 2),
        }


class InstrumentRegistry:
    """Fixed set of tradable underlyings, keyed by upper-case symbol."""

    def __init__(self, symbols: dict[str, SymbolConfig]) -> None:
        self._instruments: dict[str, Instrument] = {
            name.upper(): Instrument.from_config(name.upper(), cfg) for name, cfg in symbols.items()
        }

    def get(self, symbol: str) -> Instrument:
        instrument = self._instruments.get(str(symbol).upper())
        if instrument is None:
            raise UnknownSymbolError(symbol)
        return instrument

    def __contains__(self, symbol: object) -> bool:
        return isinstance(symbol, str) and symbol.upper() in self._instruments

    @property
    def symbols(self) -> list[str]:
        return list(self._instruments)

    def all(self) -> list[Instrument]:
        return list(self._instruments.values())
