"""
Synthetic Option Chain Builder: Fake-but-plausible NSE options chain.

There is no market feed. Every refresh derives the chain from the
underlying price alone:
• Strike ladder at a spot-dependent interval (41 strikes around spot)
• Theoretical prices and delta from Black-Scholes at a flat volatility
• Displayed IV from the synthetic smile model
• Open interest peaked at the money, volume as a fraction of OI
• Random day-change percentages

All randomness comes from the injected numpy Generator so a seeded
builder reproduces the same chain.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Optional

import numpy as np
import pandas as pd

from optsim.derivatives.contracts import OptionType
from optsim.options.greeks import BlackScholes, implied_volatility_approx

RISK_FREE_RATE = 0.065
PRICING_VOLATILITY = 0.25

STRIKES_EACH_SIDE = 20
BASE_OPEN_INTEREST = 10_000
SPOT_DRIFT_FRACTION = 0.002      # ±0.1% max move per refresh tick
MARKET_CLOSE = time(15, 30)
SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# (upper bound exclusive, interval)
STRIKE_INTERVALS: list[tuple[float, int]] = [
    (500, 5),
    (1_000, 10),
    (5_000, 25),
    (10_000, 50),
]
MAX_STRIKE_INTERVAL = 100


@dataclass(frozen=True)
class OptionQuote:
    """One side (call or put) of a chain row. Never mutated; rebuilt each tick."""
    symbol: str
    strike: float
    option_type: OptionType
    theoretical_price: float
    delta: float
    implied_volatility: float    # fraction, 0.25 = 25%
    open_interest: int
    volume: int
    price_change_pct: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "strike": self.strike,
            "option_type": self.option_type.value,
            "price": round(self.theoretical_price, 2),
            "delta": round(self.delta, 3),
            "iv": round(self.implied_volatility * 100, 2),
            "oi": self.open_interest,
            "volume": self.volume,
            "change_pct": round(self.price_change_pct, 2),
        }


@dataclass(frozen=True)
class ChainRow:
    strike: float
    is_atm: bool
    call: OptionQuote
    put: OptionQuote
    spot_ref: float = 0.0

    @property
    def call_itm(self) -> bool:
        return self.strike < self.spot_ref

    @property
    def put_itm(self) -> bool:
        return self.strike > self.spot_ref

    def to_dict(self) -> dict[str, Any]:
        return {
            "strike": self.strike,
            "is_atm": self.is_atm,
            "call_itm": self.call_itm,
            "put_itm": self.put_itm,
            "call": self.call.to_dict(),
            "put": self.put.to_dict(),
        }


@dataclass
class OptionChain:
    """A complete synthetic chain for one symbol/expiry at one instant."""
    symbol: str
    expiry: date
    spot_price: float
    time_to_expiry: float
    strike_interval: int
    timestamp: datetime
    rows: list[ChainRow] = field(default_factory=list)

    @property
    def strikes(self) -> list[float]:
        return [row.strike for row in self.rows]

    @property
    def total_call_oi(self) -> int:
        return sum(row.call.open_interest for row in self.rows)

    @property
    def total_put_oi(self) -> int:
        return sum(row.put.open_interest for row in self.rows)

    @property
    def pcr_oi(self) -> float:
        call_oi = self.total_call_oi
        return self.total_put_oi / call_oi if call_oi > 0 else 0.0

    def quote(self, strike: float, option_type: OptionType) -> Optional[OptionQuote]:
        for row in self.rows:
            if row.strike == strike:
                return row.call if option_type == OptionType.CALL else row.put
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "expiry": self.expiry.isoformat(),
            "spot_price": round(self.spot_price, 2),
            "time_to_expiry": round(self.time_to_expiry, 6),
            "strike_interval": self.strike_interval,
            "timestamp": self.timestamp.isoformat(),
            "total_call_oi": self.total_call_oi,
            "total_put_oi": self.total_put_oi,
            "pcr_oi": round(self.pcr_oi, 3),
            "rows": [row.to_dict() for row in self.rows],
        }

    def to_frame(self) -> pd.DataFrame:
        """Flat call/put table, one row per strike."""
        records = []
        for row in self.rows:
            records.append({
                "strike": row.strike,
                "is_atm": row.is_atm,
                "call_oi": row.call.open_interest,
                "call_volume": row.call.volume,
                "call_price": row.call.theoretical_price,
                "call_change_pct": row.call.price_change_pct,
                "call_iv": row.call.implied_volatility,
                "call_delta": row.call.delta,
                "put_delta": row.put.delta,
                "put_iv": row.put.implied_volatility,
                "put_change_pct": row.put.price_change_pct,
                "put_price": row.put.theoretical_price,
                "put_volume": row.put.volume,
                "put_oi": row.put.open_interest,
            })
        return pd.DataFrame.from_records(records)


@dataclass
class StrikeAnalysis:
    """Both sides of one strike, as shown when a strike is inspected."""
    symbol: str
    strike: float
    spot_price: float
    call_price: float
    put_price: float
    call_delta: float
    put_delta: float
    implied_volatility: float
    call_itm: bool
    put_itm: bool
    moneyness_pct: float
    liquidity: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "strike": self.strike,
            "spot_price": round(self.spot_price, 2),
            "call_price": round(self.call_price, 2),
            "put_price": round(self.put_price, 2),
            "call_delta": round(self.call_delta, 3),
            "put_delta": round(self.put_delta, 3),
            "iv": round(self.implied_volatility * 100, 2),
            "call_itm": self.call_itm,
            "put_itm": self.put_itm,
            "moneyness_pct": round(self.moneyness_pct, 2),
            "liquidity": self.liquidity,
        }


@dataclass(frozen=True)
class SpotTick:
    previous: float
    spot: float

    @property
    def change(self) -> float:
        return self.spot - self.previous

    @property
    def change_pct(self) -> float:
        return (self.change / self.previous) * 100 if self.previous else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "previous": round(self.previous, 2),
            "spot": round(self.spot, 2),
            "change": round(self.change, 2),
            "change_pct": round(self.change_pct, 2),
        }


def strike_interval(spot: float) -> int:
    for upper, interval in STRIKE_INTERVALS:
        if spot < upper:
            return interval
    return MAX_STRIKE_INTERVAL


def generate_strikes(spot: float) -> list[float]:
    """41 strikes centred on spot, rounded to the interval, positive only."""
    interval = strike_interval(spot)
    centre = math.floor(spot / interval + 0.5)
    strikes = [
        float((centre + i) * interval)
        for i in range(-STRIKES_EACH_SIDE, STRIKES_EACH_SIDE + 1)
        if centre + i > 0
    ]
    return sorted(strikes)


def liquidity_rating(strike: float, spot: float) -> str:
    distance = abs(strike / spot - 1)
    if distance < 0.02:
        return "Excellent"
    if distance < 0.05:
        return "Good"
    if distance < 0.10:
        return "Moderate"
    return "Low"


def time_to_expiry(expiry: date, now: datetime) -> float:
    """Years until 15:30 on the expiry date, never negative."""
    expiry_at = datetime.combine(expiry, MARKET_CLOSE, tzinfo=now.tzinfo)
    return max((expiry_at - now).total_seconds() / SECONDS_PER_YEAR, 0.0)


def upcoming_expiries(today: date, count: int = 4, weekday: int = 3) -> list[date]:
    """Next ``count`` weekly expiries on ``weekday`` (3 = Thursday), today included."""
    first = today + timedelta(days=(weekday - today.weekday()) % 7)
    return [first + timedelta(weeks=i) for i in range(count)]


class SyntheticChainBuilder:
    """Generate synthetic strikes, liquidity and prices around a spot price.

    Features:
    • Spot-dependent strike interval (5/10/25/50/100)
    • Black-Scholes theoretical price + delta per side
    • Volatility smile for displayed IV
    • ATM-peaked open interest, OTM discount
    • Volume as 10-40% of OI
    """

    def __init__(
        self,
        rng: Optional[np.random.Generator] = None,
        risk_free_rate: float = RISK_FREE_RATE,
        pricing_volatility: float = PRICING_VOLATILITY,
        pricing: Optional[BlackScholes] = None,
    ) -> None:
        self.rng = rng if rng is not None else np.random.default_rng()
        self.risk_free_rate = risk_free_rate
        self.pricing_volatility = pricing_volatility
        self.pricing = pricing or BlackScholes()

    # ────────────────────────────────────────────────────────
    # Synthetic liquidity
    # ────────────────────────────────────────────────────────

    def generate_open_interest(self, strike: float, spot: float, is_call: bool) -> int:
        moneyness = strike / spot
        oi = float(BASE_OPEN_INTEREST)

        if abs(moneyness - 1) < 0.02:
            oi *= 5
        elif abs(moneyness - 1) < 0.05:
            oi *= 3

        if is_call and moneyness > 1.05:
            oi *= 0.7
        elif not is_call and moneyness < 0.95:
            oi *= 0.7

        return math.floor(oi * (0.5 + self.rng.random()))

    def generate_volume(self, open_interest: int) -> int:
        return math.floor(open_interest * (0.1 + self.rng.random() * 0.3))

    def generate_price_change(self) -> float:
        return (self.rng.random() - 0.5) * 20

    def drift_spot(self, spot: float) -> SpotTick:
        change = (self.rng.random() - 0.5) * spot * SPOT_DRIFT_FRACTION
        return SpotTick(previous=spot, spot=spot + change)

    # ────────────────────────────────────────────────────────
    # Pricing
    # ────────────────────────────────────────────────────────

    def theoretical_price(
        self, spot: float, strike: float, tte: float, option_type: OptionType
    ) -> float:
        return self.pricing.price(
            spot, strike, tte, self.risk_free_rate, self.pricing_volatility, option_type
        )

    def delta(self, spot: float, strike: float, tte: float, option_type: OptionType) -> float:
        return self.pricing.delta(
            spot, strike, tte, self.risk_free_rate, self.pricing_volatility, option_type
        )

    def _quote(
        self, symbol: str, strike: float, spot: float, tte: float,
        option_type: OptionType, iv: float,
    ) -> OptionQuote:
        oi = self.generate_open_interest(strike, spot, option_type.is_call)
        return OptionQuote(
            symbol=symbol,
            strike=strike,
            option_type=option_type,
            theoretical_price=self.theoretical_price(spot, strike, tte, option_type),
            delta=self.delta(spot, strike, tte, option_type),
            implied_volatility=iv,
            open_interest=oi,
            volume=self.generate_volume(oi),
            price_change_pct=self.generate_price_change(),
        )

    def build_chain(
        self,
        symbol: str,
        spot: float,
        tte: float,
        expiry: date,
        timestamp: Optional[datetime] = None,
    ) -> OptionChain:
        interval = strike_interval(spot)
        rows: list[ChainRow] = []
        for strike in generate_strikes(spot):
            # one IV per strike, shown on both sides
            iv = implied_volatility_approx(strike, spot, tte, self.rng)
            call = self._quote(symbol, strike, spot, tte, OptionType.CALL, iv)
            put = self._quote(symbol, strike, spot, tte, OptionType.PUT, iv)
            rows.append(ChainRow(
                strike=strike,
                is_atm=abs(strike - spot) < interval,
                call=call,
                put=put,
                spot_ref=spot,
            ))

        return OptionChain(
            symbol=symbol,
            expiry=expiry,
            spot_price=spot,
            time_to_expiry=tte,
            strike_interval=interval,
            timestamp=timestamp or datetime.now(),
            rows=rows,
        )

    def strike_analysis(self, symbol: str, strike: float, spot: float, tte: float) -> StrikeAnalysis:
        return StrikeAnalysis(
            symbol=symbol,
            strike=strike,
            spot_price=spot,
            call_price=self.theoretical_price(spot, strike, tte, OptionType.CALL),
            put_price=self.theoretical_price(spot, strike, tte, OptionType.PUT),
            call_delta=self.delta(spot, strike, tte, OptionType.CALL),
            put_delta=self.delta(spot, strike, tte, OptionType.PUT),
            implied_volatility=implied_volatility_approx(strike, spot, tte, self.rng),
            call_itm=strike < spot,
            put_itm=strike > spot,
            moneyness_pct=(spot / strike - 1) * 100,
            liquidity=liquidity_rating(strike, spot),
        )
