"""
Order basket: legs staged by the user before a one-shot execution.

The basket only stages; it never prices or fills anything. Execution
lives on the trading session, which drains the basket atomically.
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from optsim.derivatives.contracts import Action, OptionType, OrderType
from optsim.utils.exceptions import BasketItemNotFoundError, ValidationError


@dataclass
class BasketItem:
    id: int
    symbol: str
    strike: float
    option_type: OptionType
    action: Action
    quantity: int            # lots
    price: float
    order_type: OrderType
    lot_size: int
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def shares(self) -> int:
        return self.quantity * self.lot_size

    @property
    def total_cost(self) -> float:
        return self.shares * self.price

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "strike": self.strike,
            "option_type": self.option_type.value,
            "action": self.action.value,
            "quantity": self.quantity,
            "shares": self.shares,
            "price": round(self.price, 2),
            "order_type": self.order_type.value,
            "lot_size": self.lot_size,
            "total_cost": round(self.total_cost, 2),
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class BasketSummary:
    legs: int = 0
    net_premium: float = 0.0             # credit positive, debit negative
    max_profit: Optional[float] = None   # None = unlimited (no short legs)
    max_loss: float = 0.0
    breakeven: str = "Multiple levels"

    @property
    def net_cost(self) -> float:
        return -self.net_premium

    def to_dict(self) -> dict[str, Any]:
        return {
            "legs": self.legs,
            "net_premium": round(self.net_premium, 2),
            "net_cost": round(self.net_cost, 2),
            "max_profit": round(self.max_profit, 2) if self.max_profit is not None else "Unlimited",
            "max_loss": round(self.max_loss, 2),
            "breakeven": self.breakeven,
        }


class Basket:
    """Ordered collection of pending legs, owned by one session."""

    def __init__(self) -> None:
        self._items: list[BasketItem] = []
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    @property
    def is_empty(self) -> bool:
        return not self._items

    @property
    def items(self) -> list[BasketItem]:
        return list(self._items)

    def add(
        self,
        symbol: str,
        strike: float,
        option_type: OptionType,
        action: Action,
        quantity: int,
        price: float,
        lot_size: int,
        order_type: OrderType = OrderType.MARKET,
        created_at: Optional[datetime] = None,
    ) -> BasketItem:
        if quantity < 1:
            raise ValidationError(f"Quantity must be at least 1 lot, got {quantity}", field="quantity")
        item = BasketItem(
            id=next(self._ids),
            symbol=symbol,
            strike=strike,
            option_type=option_type,
            action=action,
            quantity=quantity,
            price=price,
            order_type=order_type,
            lot_size=lot_size,
            created_at=created_at or datetime.now(),
        )
        self._items.append(item)
        return item

    def remove(self, item_id: int) -> BasketItem:
        for idx, item in enumerate(self._items):
            if item.id == item_id:
                return self._items.pop(idx)
        raise BasketItemNotFoundError(item_id)

    def clear(self) -> list[BasketItem]:
        drained, self._items = self._items, []
        return drained

    def summary(self) -> BasketSummary:
        net_premium = 0.0
        max_profit = 0.0
        max_loss = 0.0
        for item in self._items:
            cost = item.total_cost
            if item.action == Action.BUY:
                net_premium -= cost
                max_loss += cost
            else:
                net_premium += cost
                max_profit += cost
        return BasketSummary(
            legs=len(self._items),
            net_premium=net_premium,
            max_profit=max_profit if max_profit else None,
            max_loss=max_loss,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self._items],
            "summary": self.summary().to_dict(),
        }
