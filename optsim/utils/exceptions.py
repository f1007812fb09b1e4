from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    ORDER = "order"
    POSITION = "position"
    MARKET_DATA = "market_data"
    SYSTEM = "system"


class SimulatorError(Exception):
    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.SYSTEM) -> None:
        self.message = message
        self.category = category
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.category.value}] {self.message}"


class ValidationError(SimulatorError):
    def __init__(self, message: str, field: str = "") -> None:
        self.field = field
        super().__init__(message, ErrorCategory.VALIDATION)


class UnknownSymbolError(SimulatorError):
    def __init__(self, symbol: str) -> None:
        self.symbol = symbol
        super().__init__(f"Unknown symbol: {symbol}", ErrorCategory.MARKET_DATA)


class InvalidExpiryError(SimulatorError):
    def __init__(self, expiry: str) -> None:
        self.expiry = expiry
        super().__init__(f"Invalid expiry date: {expiry!r}", ErrorCategory.MARKET_DATA)


class OrderNotFoundError(SimulatorError):
    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found", ErrorCategory.ORDER)


class OrderStateError(SimulatorError):
    def __init__(self, order_id: str, current: str, target: str) -> None:
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(
            f"Order {order_id} cannot move from {current} to {target}", ErrorCategory.ORDER
        )


class BasketItemNotFoundError(SimulatorError):
    def __init__(self, item_id: int) -> None:
        self.item_id = item_id
        super().__init__(f"Basket item {item_id} not found", ErrorCategory.ORDER)


class PositionNotFoundError(SimulatorError):
    def __init__(self, position_id: str) -> None:
        self.position_id = position_id
        super().__init__(f"Position {position_id} not found", ErrorCategory.POSITION)
