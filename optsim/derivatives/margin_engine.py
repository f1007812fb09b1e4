"""
Simplified Margin Calculator: NOT exchange-accurate.

Stands in for NSE SPAN + exposure margining with flat percentages of
notional. Good enough for a pre-trade risk preview in a simulator; never
use the figures for real capital planning.

• BUY:  margin = premium paid (quantity × lot size × price)
• SELL: notional = spot × quantity × lot size
        SPAN ≈ 15% of notional, exposure ≈ 5% of notional
        margin = max(SPAN + exposure − premium received, exposure)
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from optsim.derivatives.contracts import Action, OptionType

SPAN_RATE = 0.15
EXPOSURE_RATE = 0.05


@dataclass
class MarginResult:
    span_margin: float = 0.0
    exposure_margin: float = 0.0
    premium: float = 0.0
    total_margin: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "span_margin": round(self.span_margin, 2),
            "exposure_margin": round(self.exposure_margin, 2),
            "premium": round(self.premium, 2),
            "total_margin": round(self.total_margin, 2),
        }


@dataclass
class RiskAnalysis:
    """Trade-ticket preview for a single leg."""
    action: Action
    total_cost: float        # premium paid (BUY) or received (SELL)
    margin_required: float
    breakeven: float

    @property
    def is_credit(self) -> bool:
        return self.action == Action.SELL

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "total_cost": round(self.total_cost, 2),
            "is_credit": self.is_credit,
            "margin_required": round(self.margin_required, 2),
            "breakeven": round(self.breakeven, 2),
        }


def calculate_breakeven(strike: float, premium: float, option_type: OptionType) -> float:
    """Strike ± premium. Direction does not matter: it is a price level."""
    if option_type == OptionType.CALL:
        return strike + premium
    return strike - premium


class MarginCalculator:
    """Flat-rate margin estimate for single option legs."""

    def __init__(self, span_rate: float = SPAN_RATE, exposure_rate: float = EXPOSURE_RATE) -> None:
        self.span_rate = span_rate
        self.exposure_rate = exposure_rate

    def calculate_margin(
        self,
        action: Action,
        quantity: int,
        lot_size: int,
        price: float,
        spot: float,
    ) -> MarginResult:
        shares = quantity * lot_size
        premium = shares * price

        if action == Action.BUY:
            return MarginResult(premium=premium, total_margin=premium)

        notional = spot * shares
        span_margin = notional * self.span_rate
        exposure_margin = notional * self.exposure_rate
        total = max(span_margin + exposure_margin - premium, exposure_margin)
        return MarginResult(
            span_margin=span_margin,
            exposure_margin=exposure_margin,
            premium=premium,
            total_margin=total,
        )

    def risk_analysis(
        self,
        action: Action,
        option_type: OptionType,
        strike: float,
        quantity: int,
        lot_size: int,
        price: float,
        spot: float,
    ) -> RiskAnalysis:
        margin = self.calculate_margin(action, quantity, lot_size, price, spot)
        return RiskAnalysis(
            action=action,
            total_cost=quantity * lot_size * price,
            margin_required=margin.total_margin,
            breakeven=calculate_breakeven(strike, price, option_type),
        )
