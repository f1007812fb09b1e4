"""
Derivatives layer for the options chain simulator.

Provides:
• Contract vocabulary (option type, action, order status) and instrument registry
• Synthetic option chain generation around a drifting spot
• Order basket, order book and simulated fills
• Position book with square-off and live P&L
• Simplified SPAN-style margin calculator
"""

from optsim.derivatives.contracts import (
    Action,
    Instrument,
    InstrumentRegistry,
    OptionType,
    OrderStatus,
    OrderType,
)
from optsim.derivatives.chain_builder import OptionChain, OptionQuote, SyntheticChainBuilder
from optsim.derivatives.basket import Basket, BasketItem, BasketSummary
from optsim.derivatives.orders import Order, OrderBook
from optsim.derivatives.fill_simulator import FillDecision, FillSimulator
from optsim.derivatives.positions import Position, PositionBook, PositionsSummary
from optsim.derivatives.margin_engine import MarginCalculator, MarginResult, RiskAnalysis

__all__ = [
    "Action", "Instrument", "InstrumentRegistry", "OptionType", "OrderStatus", "OrderType",
    "OptionChain", "OptionQuote", "SyntheticChainBuilder",
    "Basket", "BasketItem", "BasketSummary",
    "Order", "OrderBook",
    "FillDecision", "FillSimulator",
    "Position", "PositionBook", "PositionsSummary",
    "MarginCalculator", "MarginResult", "RiskAnalysis",
]
