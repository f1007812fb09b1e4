"""
Order book with a forward-only lifecycle:

    PENDING → EXECUTED | REJECTED | CANCELLED

Terminal orders are frozen. Basket legs are recorded already resolved
(EXECUTED or REJECTED) because they are decided at submission time; direct
orders start PENDING and are resolved later by the session.
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from optsim.derivatives.contracts import Action, OptionType, OrderStatus, OrderType
from optsim.utils.exceptions import OrderNotFoundError, OrderStateError
from optsim.utils.logger import get_logger

logger = get_logger(__name__)

FIRST_ORDER_NUMBER = 1001


@dataclass
class Order:
    order_id: str
    symbol: str
    strike: float
    option_type: OptionType
    action: Action
    quantity: int
    price: float
    order_type: OrderType = OrderType.MARKET
    status: OrderStatus = OrderStatus.PENDING
    placed_at: datetime = field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None
    reject_reason: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition(self, target: OrderStatus, at: Optional[datetime] = None, reason: str = "") -> None:
        if self.status.is_terminal or target == OrderStatus.PENDING:
            raise OrderStateError(self.order_id, self.status.value, target.value)
        self.status = target
        self.updated_at = at or datetime.now()
        if target == OrderStatus.REJECTED:
            self.reject_reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "symbol": self.symbol,
            "strike": self.strike,
            "option_type": self.option_type.value,
            "action": self.action.value,
            "quantity": self.quantity,
            "price": round(self.price, 2),
            "order_type": self.order_type.value,
            "status": self.status.value,
            "placed_at": self.placed_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "reject_reason": self.reject_reason,
        }


class OrderBook:
    """Sequence of submitted orders, in placement order."""

    def __init__(self, first_number: int = FIRST_ORDER_NUMBER) -> None:
        self._orders: list[Order] = []
        self._by_id: dict[str, Order] = {}
        self._numbers = itertools.count(first_number)

    def __len__(self) -> int:
        return len(self._orders)

    def _next_order_id(self) -> str:
        return f"ORD{next(self._numbers)}"

    def create(
        self,
        symbol: str,
        strike: float,
        option_type: OptionType,
        action: Action,
        quantity: int,
        price: float,
        order_type: OrderType = OrderType.MARKET,
        status: OrderStatus = OrderStatus.PENDING,
        placed_at: Optional[datetime] = None,
        reject_reason: str = "",
    ) -> Order:
        """Append a new order. ``status`` may already be terminal."""
        now = placed_at or datetime.now()
        order = Order(
            order_id=self._next_order_id(),
            symbol=symbol,
            strike=strike,
            option_type=option_type,
            action=action,
            quantity=quantity,
            price=price,
            order_type=order_type,
            status=status,
            placed_at=now,
            updated_at=now if status.is_terminal else None,
            reject_reason=reject_reason,
        )
        self._orders.append(order)
        self._by_id[order.order_id] = order
        logger.info(
            "order_recorded",
            order_id=order.order_id,
            symbol=symbol,
            strike=strike,
            option_type=option_type.value,
            action=action.value,
            quantity=quantity,
            status=status.value,
        )
        return order

    def get(self, order_id: str) -> Order:
        order = self._by_id.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def resolve(
        self, order_id: str, executed: bool, reason: str = "", at: Optional[datetime] = None
    ) -> Order:
        order = self.get(order_id)
        order.transition(OrderStatus.EXECUTED if executed else OrderStatus.REJECTED, at, reason)
        logger.info("order_resolved", order_id=order_id, status=order.status.value, reason=reason)
        return order

    def cancel(self, order_id: str, at: Optional[datetime] = None) -> Order:
        order = self.get(order_id)
        order.transition(OrderStatus.CANCELLED, at)
        logger.info("order_cancelled", order_id=order_id)
        return order

    def filter(self, status: Optional[OrderStatus] = None) -> list[Order]:
        if status is None:
            return list(self._orders)
        return [o for o in self._orders if o.status == status]

    @property
    def pending(self) -> list[Order]:
        return self.filter(OrderStatus.PENDING)

    def to_list(self, status: Optional[OrderStatus] = None) -> list[dict[str, Any]]:
        return [o.to_dict() for o in self.filter(status)]
