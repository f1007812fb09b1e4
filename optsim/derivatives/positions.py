"""
Position book: open exposures per (symbol, strike, option type, action).

Fills on the same key merge with a quantity-weighted average price. A BUY
and a SELL on the same strike/type are kept as two separate positions;
nothing is netted. Square-off is the only way a position closes and the
only source of realised P&L.
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from optsim.derivatives.contracts import Action, OptionType
from optsim.derivatives.margin_engine import MarginCalculator
from optsim.derivatives.orders import Order
from optsim.utils.exceptions import PositionNotFoundError
from optsim.utils.logger import get_logger

logger = get_logger(__name__)

PositionKey = tuple[str, float, OptionType, Action]


def position_pnl(
    avg_price: float, current_price: float, quantity: int, lot_size: int, action: Action
) -> float:
    return (current_price - avg_price) * quantity * lot_size * action.sign


@dataclass
class Position:
    id: str
    symbol: str
    strike: float
    option_type: OptionType
    action: Action
    quantity: int           # lots, always > 0
    avg_price: float
    delta: float = 0.0
    opened_at: datetime = field(default_factory=datetime.now)

    @property
    def key(self) -> PositionKey:
        return (self.symbol, self.strike, self.option_type, self.action)

    def merge(self, quantity: int, price: float) -> None:
        total_qty = self.quantity + quantity
        self.avg_price = (self.avg_price * self.quantity + price * quantity) / total_qty
        self.quantity = total_qty

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "strike": self.strike,
            "option_type": self.option_type.value,
            "action": self.action.value,
            "quantity": self.quantity,
            "avg_price": round(self.avg_price, 2),
            "delta": round(self.delta, 3),
            "opened_at": self.opened_at.isoformat(),
        }


@dataclass
class PositionView:
    """Position marked to the current theoretical price."""
    position: Position
    current_price: float
    pnl: float
    margin: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data = self.position.to_dict()
        data.update({
            "current_price": round(self.current_price, 2),
            "pnl": round(self.pnl, 2),
            "margin": round(self.margin, 2),
        })
        return data


@dataclass
class PositionsSummary:
    total_pnl: float = 0.0
    day_pnl: float = 0.0        # no intraday baseline is kept, so equals total
    position_count: int = 0
    margin_used: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_pnl": round(self.total_pnl, 2),
            "day_pnl": round(self.day_pnl, 2),
            "position_count": self.position_count,
            "margin_used": round(self.margin_used, 2),
        }


@dataclass
class SquareOffResult:
    position: Position
    exit_price: float
    closing_action: Action
    realized_pnl: float


# (position) -> (current_price, lot_size, spot)
PriceResolver = Callable[[Position], tuple[float, int, float]]


class PositionBook:
    def __init__(self, margin_calculator: Optional[MarginCalculator] = None) -> None:
        self._positions: list[Position] = []
        self._ids = itertools.count(1)
        self.margin_calculator = margin_calculator or MarginCalculator()

    def __len__(self) -> int:
        return len(self._positions)

    @property
    def positions(self) -> list[Position]:
        return list(self._positions)

    def get(self, position_id: str) -> Position:
        for pos in self._positions:
            if pos.id == position_id:
                return pos
        raise PositionNotFoundError(position_id)

    def find(self, key: PositionKey) -> Optional[Position]:
        for pos in self._positions:
            if pos.key == key:
                return pos
        return None

    def apply_fill(self, order: Order, delta: float = 0.0, at: Optional[datetime] = None) -> Position:
        """Open a position for an executed order or merge into the same key."""
        key = (order.symbol, order.strike, order.option_type, order.action)
        existing = self.find(key)
        if existing is not None:
            existing.merge(order.quantity, order.price)
            logger.info(
                "position_merged",
                position_id=existing.id,
                quantity=existing.quantity,
                avg_price=round(existing.avg_price, 2),
            )
            return existing

        position = Position(
            id=f"POS{next(self._ids):04d}",
            symbol=order.symbol,
            strike=order.strike,
            option_type=order.option_type,
            action=order.action,
            quantity=order.quantity,
            avg_price=order.price,
            delta=delta,
            opened_at=at or datetime.now(),
        )
        self._positions.append(position)
        logger.info(
            "position_opened",
            position_id=position.id,
            symbol=position.symbol,
            strike=position.strike,
            option_type=position.option_type.value,
            action=position.action.value,
            quantity=position.quantity,
        )
        return position

    def square_off(self, position_id: str, current_price: float, lot_size: int) -> SquareOffResult:
        position = self.get(position_id)
        pnl = position_pnl(position.avg_price, current_price, position.quantity, lot_size, position.action)
        self._positions = [p for p in self._positions if p.id != position_id]
        logger.info(
            "position_squared_off",
            position_id=position_id,
            exit_price=round(current_price, 2),
            realized_pnl=round(pnl, 2),
        )
        return SquareOffResult(
            position=position,
            exit_price=current_price,
            closing_action=position.action.opposite,
            realized_pnl=pnl,
        )

    @staticmethod
    def unrealized_pnl(position: Position, current_price: float, lot_size: int) -> float:
        return position_pnl(position.avg_price, current_price, position.quantity, lot_size, position.action)

    def mark(self, resolve: PriceResolver) -> list[PositionView]:
        views: list[PositionView] = []
        for pos in self._positions:
            current_price, lot_size, spot = resolve(pos)
            margin = 0.0
            if pos.action == Action.SELL:
                margin = self.margin_calculator.calculate_margin(
                    pos.action, pos.quantity, lot_size, pos.avg_price, spot
                ).total_margin
            views.append(PositionView(
                position=pos,
                current_price=current_price,
                pnl=self.unrealized_pnl(pos, current_price, lot_size),
                margin=margin,
            ))
        return views

    def summary(self, resolve: PriceResolver) -> PositionsSummary:
        views = self.mark(resolve)
        total = sum(v.pnl for v in views)
        return PositionsSummary(
            total_pnl=total,
            day_pnl=total,
            position_count=len(views),
            margin_used=sum(v.margin for v in views),
        )
