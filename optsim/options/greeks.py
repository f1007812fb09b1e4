"""
Black-Scholes pricing for European index/stock options.

The normal CDF defaults to the Abramowitz-Stegun 7.1.26 error-function
approximation (five coefficients, |error| <= 1.5e-7). ``exact_cdf=True``
switches to scipy's implementation.

``implied_volatility_approx`` is NOT an implied-volatility solver. There is
no market price to invert, so it produces a synthetic volatility smile for
display in the chain.
"""
from __future__ import annotations

import math
from typing import Callable, Optional

import numpy as np
from scipy.stats import norm

# Below this time to expiry (years) the option is priced at intrinsic value.
MIN_TIME_TO_EXPIRY = 1e-9

_A1 = 0.254829592
_A2 = -0.284496736
_A3 = 1.421413741
_A4 = -1.453152027
_A5 = 1.061405429
_P = 0.3275911

ERF_MAX_ABS_ERROR = 1.5e-7


def erf_approx(x: float) -> float:
    """Abramowitz-Stegun 7.1.26 approximation of erf(x)."""
    sign = 1.0 if x >= 0 else -1.0
    x = abs(x)
    t = 1.0 / (1.0 + _P * x)
    y = 1.0 - (((((_A5 * t + _A4) * t) + _A3) * t + _A2) * t + _A1) * t * math.exp(-x * x)
    return sign * y


def normal_cdf(x: float) -> float:
    return 0.5 * (1.0 + erf_approx(x / math.sqrt(2.0)))


def normal_cdf_exact(x: float) -> float:
    return float(norm.cdf(x))


def _is_call(option_type: str | bool) -> bool:
    if isinstance(option_type, bool):
        return option_type
    return option_type in ("CALL", "CE")


class BlackScholes:
    """Stateless Black-Scholes model.

    Argument order is (spot, strike, time_to_expiry, rate, volatility).
    """

    def __init__(self, exact_cdf: bool = False) -> None:
        self.exact_cdf = exact_cdf
        self._cdf: Callable[[float], float] = normal_cdf_exact if exact_cdf else normal_cdf

    @staticmethod
    def is_degenerate(time_to_expiry: float, volatility: float) -> bool:
        return time_to_expiry <= MIN_TIME_TO_EXPIRY or volatility <= 0

    @staticmethod
    def d1(spot: float, strike: float, time_to_expiry: float, rate: float, volatility: float) -> float:
        return (
            math.log(spot / strike) + (rate + 0.5 * volatility ** 2) * time_to_expiry
        ) / (volatility * math.sqrt(time_to_expiry))

    @staticmethod
    def d2(spot: float, strike: float, time_to_expiry: float, rate: float, volatility: float) -> float:
        return BlackScholes.d1(spot, strike, time_to_expiry, rate, volatility) - volatility * math.sqrt(
            time_to_expiry
        )

    def call_price(
        self, spot: float, strike: float, time_to_expiry: float, rate: float, volatility: float
    ) -> float:
        if self.is_degenerate(time_to_expiry, volatility):
            return max(spot - strike, 0.0)
        d1_val = self.d1(spot, strike, time_to_expiry, rate, volatility)
        d2_val = self.d2(spot, strike, time_to_expiry, rate, volatility)
        return spot * self._cdf(d1_val) - strike * math.exp(-rate * time_to_expiry) * self._cdf(d2_val)

    def put_price(
        self, spot: float, strike: float, time_to_expiry: float, rate: float, volatility: float
    ) -> float:
        if self.is_degenerate(time_to_expiry, volatility):
            return max(strike - spot, 0.0)
        d1_val = self.d1(spot, strike, time_to_expiry, rate, volatility)
        d2_val = self.d2(spot, strike, time_to_expiry, rate, volatility)
        return strike * math.exp(-rate * time_to_expiry) * self._cdf(-d2_val) - spot * self._cdf(-d1_val)

    def price(
        self,
        spot: float,
        strike: float,
        time_to_expiry: float,
        rate: float,
        volatility: float,
        option_type: str | bool,
    ) -> float:
        if _is_call(option_type):
            return self.call_price(spot, strike, time_to_expiry, rate, volatility)
        return self.put_price(spot, strike, time_to_expiry, rate, volatility)

    def delta(
        self,
        spot: float,
        strike: float,
        time_to_expiry: float,
        rate: float,
        volatility: float,
        option_type: str | bool,
    ) -> float:
        """N(d1) for calls, N(d1) - 1 for puts.

        At expiry the call delta is 1 when spot > strike, else 0, and the put
        delta stays call delta - 1.
        """
        if self.is_degenerate(time_to_expiry, volatility):
            call_delta = 1.0 if spot > strike else 0.0
        else:
            call_delta = self._cdf(self.d1(spot, strike, time_to_expiry, rate, volatility))
        return call_delta if _is_call(option_type) else call_delta - 1.0


def implied_volatility_approx(
    strike: float,
    spot: float,
    time_to_expiry: float,
    rng: Optional[np.random.Generator] = None,
) -> float:
    """Synthetic volatility smile, returned as a fraction (0.25 = 25%).

    Base 20%, +5% when strike/spot is outside 0.95-1.05, another +5%
    outside 0.90-1.10, +3% inside one month, then +/-2% jitter from ``rng``.
    Never below 10%.
    """
    moneyness = strike / spot
    vol = 0.20

    if moneyness < 0.95 or moneyness > 1.05:
        vol += 0.05
    if moneyness < 0.90 or moneyness > 1.10:
        vol += 0.05

    if time_to_expiry < 1 / 12:
        vol += 0.03

    if rng is not None:
        vol += (rng.random() - 0.5) * 0.04

    return max(vol, 0.10)
