from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Optional

import numpy as np

from optsim.derivatives.basket import Basket, BasketItem
from optsim.derivatives.chain_builder import (
    OptionChain,
    SpotTick,
    StrikeAnalysis,
    SyntheticChainBuilder,
    time_to_expiry,
    upcoming_expiries,
)
from optsim.derivatives.contracts import (
    Action,
    Instrument,
    InstrumentRegistry,
    OptionType,
    OrderStatus,
    OrderType,
    parse_enum,
)
from optsim.derivatives.fill_simulator import FillSimulator
from optsim.derivatives.margin_engine import MarginCalculator, RiskAnalysis
from optsim.derivatives.orders import Order, OrderBook
from optsim.derivatives.positions import Position, PositionBook, PositionsSummary, PositionView, SquareOffResult
from optsim.journal.trade_history import TradeHistory
from optsim.options.greeks import BlackScholes
from optsim.utils.config import Settings, get_settings
from optsim.utils.exceptions import InvalidExpiryError, OrderStateError
from optsim.utils.formatting import format_pnl, format_price
from optsim.utils.logger import get_logger, order_log_fields
from optsim.utils.validation import parse_price, parse_quantity, parse_strike

logger = get_logger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"


@dataclass
class Notification:
    level: NotificationLevel
    title: str
    message: str
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "title": self.title,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
        }


class BasketOutcome(str, Enum):
    EMPTY = "EMPTY"        # nothing to execute
    FULL = "FULL"          # every leg executed
    PARTIAL = "PARTIAL"    # some legs rejected
    NONE = "NONE"          # every leg rejected


@dataclass
class BasketExecutionResult:
    outcome: BasketOutcome
    total: int = 0
    succeeded: int = 0
    orders: list[Order] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.total - self.succeeded,
            "orders": [o.to_dict() for o in self.orders],
        }


@dataclass
class TradeIntent:
    """A validated trade request from the view (trade ticket or basket)."""
    symbol: str
    strike: float
    option_type: OptionType
    action: Action
    quantity: int
    price: float
    order_type: OrderType = OrderType.MARKET


class TradingSession:
    """All simulator state for one user: market view, basket, orders,
    positions and history.

    Every mutation runs under a single asyncio.Lock, so a basket or order
    book never sees two writers at once even when the HTTP layer serves
    requests concurrently. Deferred order settlements are tracked tasks;
    ``drain()`` waits for them.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.rng = rng if rng is not None else np.random.default_rng(self.settings.random_seed)
        self._clock = clock or datetime.now

        self.pricing = BlackScholes(exact_cdf=self.settings.exact_cdf)
        self.registry = InstrumentRegistry(self.settings.symbols)
        self.chain_builder = SyntheticChainBuilder(
            rng=self.rng,
            risk_free_rate=self.settings.risk_free_rate,
            pricing_volatility=self.settings.pricing_volatility,
            pricing=self.pricing,
        )
        self.fill_simulator = FillSimulator(self.settings.fill_probability, self.rng)
        self.margin_calculator = MarginCalculator()

        self.basket = Basket()
        self.orders = OrderBook()
        self.positions = PositionBook(self.margin_calculator)
        self.history = TradeHistory()
        self._notifications: deque[Notification] = deque(maxlen=self.settings.notification_limit)

        self._lock = asyncio.Lock()
        self._pending_tasks: set[asyncio.Task] = set()

        self.current_symbol = self.registry.get(self.settings.default_symbol).symbol
        self.current_expiry = (
            self._parse_expiry(self.settings.default_expiry)
            if self.settings.default_expiry
            else self.available_expiries()[0]
        )
        self.chain: OptionChain = self.rebuild_chain()

    # ────────────────────────────────────────────────────────
    # Market view
    # ────────────────────────────────────────────────────────

    def now(self) -> datetime:
        return self._clock()

    @property
    def instrument(self) -> Instrument:
        return self.registry.get(self.current_symbol)

    @property
    def spot_price(self) -> float:
        return self.instrument.underlying_price

    @property
    def time_to_expiry(self) -> float:
        return time_to_expiry(self.current_expiry, self.now())

    @property
    def days_to_expiry(self) -> int:
        return (self.current_expiry - self.now().date()).days

    def available_expiries(self) -> list[date]:
        return upcoming_expiries(
            self.now().date(), self.settings.expiry_count, self.settings.expiry_weekday
        )

    @staticmethod
    def _parse_expiry(raw: Any) -> date:
        if isinstance(raw, date):
            return raw
        try:
            return date.fromisoformat(str(raw).strip())
        except ValueError:
            raise InvalidExpiryError(str(raw)) from None

    def rebuild_chain(self) -> OptionChain:
        self.chain = self.chain_builder.build_chain(
            symbol=self.current_symbol,
            spot=self.spot_price,
            tte=self.time_to_expiry,
            expiry=self.current_expiry,
            timestamp=self.now(),
        )
        return self.chain

    async def change_symbol(self, symbol: str) -> OptionChain:
        async with self._lock:
            self.current_symbol = self.registry.get(symbol).symbol
            chain = self.rebuild_chain()
        logger.info("symbol_changed", symbol=self.current_symbol, spot=round(self.spot_price, 2))
        self.notify(NotificationLevel.INFO, "Symbol Changed", f"Switched to {self.current_symbol} options chain")
        return chain

    async def change_expiry(self, expiry: Any) -> OptionChain:
        parsed = self._parse_expiry(expiry)
        async with self._lock:
            self.current_expiry = parsed
            chain = self.rebuild_chain()
        logger.info("expiry_changed", expiry=parsed.isoformat(), days=self.days_to_expiry)
        self.notify(NotificationLevel.INFO, "Expiry Changed", f"{self.days_to_expiry} days to expiration")
        return chain

    async def refresh_market_data(self) -> SpotTick:
        """One refresh tick: drift the spot of the selected symbol and rebuild the chain."""
        async with self._lock:
            instrument = self.instrument
            tick = self.chain_builder.drift_spot(instrument.underlying_price)
            instrument.underlying_price = tick.spot
            self.rebuild_chain()
        logger.debug("market_refreshed", symbol=instrument.symbol, **tick.to_dict())
        return tick

    def strike_analysis(self, strike: Any) -> StrikeAnalysis:
        return self.chain_builder.strike_analysis(
            self.current_symbol, parse_strike(strike), self.spot_price, self.time_to_expiry
        )

    def quote_price(self, symbol: str, strike: float, option_type: OptionType) -> float:
        """Current theoretical price from the symbol's live spot."""
        spot = self.registry.get(symbol).underlying_price
        return self.chain_builder.theoretical_price(spot, strike, self.time_to_expiry, option_type)

    def _quote_delta(self, symbol: str, strike: float, option_type: OptionType) -> float:
        spot = self.registry.get(symbol).underlying_price
        return self.chain_builder.delta(spot, strike, self.time_to_expiry, option_type)

    # ────────────────────────────────────────────────────────
    # Trade intents
    # ────────────────────────────────────────────────────────

    def make_intent(self, data: dict[str, Any]) -> TradeIntent:
        """Build a TradeIntent from raw view input.

        Bad quantity/price is replaced by 1 lot / the current quote unless
        strict validation is configured.
        """
        strict = self.settings.strict_validation
        symbol = self.registry.get(data.get("symbol") or self.current_symbol).symbol
        strike = parse_strike(data.get("strike"))

        option_type = parse_enum(OptionType, data.get("option_type"), "option_type")
        action = parse_enum(Action, data.get("action") or Action.BUY, "action")
        order_type = parse_enum(OrderType, data.get("order_type") or OrderType.MARKET, "order_type")
        quantity = parse_quantity(data.get("quantity"), strict=strict)
        price = parse_price(
            data.get("price"), fallback=self.quote_price(symbol, strike, option_type), strict=strict
        )
        return TradeIntent(
            symbol=symbol,
            strike=strike,
            option_type=option_type,
            action=action,
            quantity=quantity,
            price=price,
            order_type=order_type,
        )

    def risk_analysis(self, intent: TradeIntent) -> RiskAnalysis:
        instrument = self.registry.get(intent.symbol)
        return self.margin_calculator.risk_analysis(
            action=intent.action,
            option_type=intent.option_type,
            strike=intent.strike,
            quantity=intent.quantity,
            lot_size=instrument.lot_size,
            price=intent.price,
            spot=instrument.underlying_price,
        )

    # ────────────────────────────────────────────────────────
    # Basket
    # ────────────────────────────────────────────────────────

    async def add_to_basket(self, intent: TradeIntent) -> BasketItem:
        async with self._lock:
            item = self.basket.add(
                symbol=intent.symbol,
                strike=intent.strike,
                option_type=intent.option_type,
                action=intent.action,
                quantity=intent.quantity,
                price=intent.price,
                lot_size=self.registry.get(intent.symbol).lot_size,
                order_type=intent.order_type,
                created_at=self.now(),
            )
        logger.info("basket_item_added", item_id=item.id, **order_log_fields(item.to_dict()))
        self.notify(
            NotificationLevel.SUCCESS,
            "Added to Basket",
            f"{item.action.value} {item.quantity} lot(s) {item.symbol} {format_price(item.strike)} "
            f"{item.option_type.value} @ ₹{format_price(item.price)}",
        )
        return item

    async def remove_from_basket(self, item_id: int) -> BasketItem:
        async with self._lock:
            item = self.basket.remove(item_id)
        logger.info("basket_item_removed", item_id=item_id)
        self.notify(NotificationLevel.INFO, "Removed from Basket", "Option removed from basket")
        return item

    async def clear_basket(self) -> int:
        async with self._lock:
            removed = len(self.basket.clear())
        logger.info("basket_cleared", removed=removed)
        self.notify(NotificationLevel.INFO, "Basket Cleared", "All options removed from basket")
        return removed

    async def execute_basket(self) -> BasketExecutionResult:
        """Submit every basket leg; each leg fills or rejects on its own.

        There is no cross-leg atomicity and no retry. The basket is emptied
        whatever the outcome.
        """
        if self.basket.is_empty:
            self.notify(NotificationLevel.WARNING, "Empty Basket", "No orders to execute")
            return BasketExecutionResult(outcome=BasketOutcome.EMPTY)

        await asyncio.sleep(self.settings.basket_latency_seconds)

        async with self._lock:
            items = self.basket.clear()
            if not items:
                self.notify(NotificationLevel.WARNING, "Empty Basket", "No orders to execute")
                return BasketExecutionResult(outcome=BasketOutcome.EMPTY)

            orders: list[Order] = []
            succeeded = 0
            for item in items:
                decision = self.fill_simulator.decide()
                order = self.orders.create(
                    symbol=item.symbol,
                    strike=item.strike,
                    option_type=item.option_type,
                    action=item.action,
                    quantity=item.quantity,
                    price=item.price,
                    order_type=item.order_type,
                    status=OrderStatus.EXECUTED if decision.executed else OrderStatus.REJECTED,
                    placed_at=self.now(),
                    reject_reason=decision.reason,
                )
                orders.append(order)
                if decision.executed:
                    succeeded += 1
                    self._on_executed(order)

        total = len(orders)
        if succeeded == total:
            outcome = BasketOutcome.FULL
            self.notify(NotificationLevel.SUCCESS, "All Orders Executed", f"{total} orders executed successfully")
        elif succeeded == 0:
            outcome = BasketOutcome.NONE
            self.notify(NotificationLevel.DANGER, "Basket Rejected", f"0/{total} orders executed")
        else:
            outcome = BasketOutcome.PARTIAL
            self.notify(NotificationLevel.WARNING, "Partial Execution", f"{succeeded}/{total} orders executed")

        logger.info("basket_executed", outcome=outcome.value, total=total, succeeded=succeeded)
        return BasketExecutionResult(outcome=outcome, total=total, succeeded=succeeded, orders=orders)

    # ────────────────────────────────────────────────────────
    # Orders
    # ────────────────────────────────────────────────────────

    async def place_order(self, intent: TradeIntent) -> Order:
        """Record a PENDING order and schedule its simulated fill.

        The settlement cannot be cancelled; if the order is cancelled first
        the settlement finds it terminal and leaves it alone.
        """
        async with self._lock:
            order = self.orders.create(
                symbol=intent.symbol,
                strike=intent.strike,
                option_type=intent.option_type,
                action=intent.action,
                quantity=intent.quantity,
                price=intent.price,
                order_type=intent.order_type,
                placed_at=self.now(),
            )
        logger.info("order_placed", **order_log_fields(order.to_dict()))

        task = asyncio.create_task(self._settle_order(order.order_id))
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)
        task.add_done_callback(self._task_exception_handler)
        return order

    @staticmethod
    def _task_exception_handler(task: asyncio.Task) -> None:
        """Log failures of settlement tasks as soon as they finish."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("background_task_failed", task=task.get_name(), error=str(exc), exc_info=exc)

    async def _settle_order(self, order_id: str) -> None:
        await asyncio.sleep(self.settings.order_latency_seconds)
        async with self._lock:
            order = self.orders.get(order_id)
            if order.status != OrderStatus.PENDING:
                logger.info("order_settlement_skipped", order_id=order_id, status=order.status.value)
                return
            decision = self.fill_simulator.decide()
            self.orders.resolve(order_id, decision.executed, decision.reason, at=self.now())
            if decision.executed:
                self._on_executed(order)

        if order.status == OrderStatus.EXECUTED:
            self.notify(
                NotificationLevel.SUCCESS,
                "Order Executed",
                f"Order {order.order_id} executed: {order.action.value} {order.quantity} lots "
                f"@ ₹{format_price(order.price)}",
            )
        else:
            self.notify(
                NotificationLevel.DANGER,
                "Order Rejected",
                f"Order {order.order_id} rejected - {order.reject_reason}",
            )

    async def cancel_order(self, order_id: str) -> Order:
        """Cancel a PENDING order. Raises OrderStateError for terminal orders."""
        async with self._lock:
            try:
                order = self.orders.cancel(order_id, at=self.now())
            except OrderStateError:
                status = self.orders.get(order_id).status.value
                self.notify(NotificationLevel.WARNING, "Cannot Cancel", f"Order {order_id} is already {status}")
                raise
        self.notify(NotificationLevel.INFO, "Order Cancelled", f"Order {order_id} cancelled successfully")
        return order

    async def drain(self) -> None:
        """Wait for every scheduled order settlement to land."""
        while self._pending_tasks:
            await asyncio.gather(*list(self._pending_tasks))

    def _on_executed(self, order: Order) -> None:
        delta = self._quote_delta(order.symbol, order.strike, order.option_type)
        self.positions.apply_fill(order, delta=delta, at=self.now())
        self.history.record(order)

    # ────────────────────────────────────────────────────────
    # Positions
    # ────────────────────────────────────────────────────────

    def _mark_inputs(self, position: Position) -> tuple[float, int, float]:
        instrument = self.registry.get(position.symbol)
        price = self.quote_price(position.symbol, position.strike, position.option_type)
        return price, instrument.lot_size, instrument.underlying_price

    def position_views(self) -> list[PositionView]:
        return self.positions.mark(self._mark_inputs)

    def positions_summary(self) -> PositionsSummary:
        return self.positions.summary(self._mark_inputs)

    async def square_off(self, position_id: str) -> SquareOffResult:
        """Close a position at the current theoretical price and realise P&L."""
        async with self._lock:
            position = self.positions.get(position_id)
            instrument = self.registry.get(position.symbol)
            current_price = self.quote_price(position.symbol, position.strike, position.option_type)
            result = self.positions.square_off(position_id, current_price, instrument.lot_size)
            order = self.orders.create(
                symbol=position.symbol,
                strike=position.strike,
                option_type=position.option_type,
                action=result.closing_action,
                quantity=position.quantity,
                price=current_price,
                order_type=OrderType.MARKET,
                status=OrderStatus.EXECUTED,
                placed_at=self.now(),
            )
            self.history.record(order, realized_pnl=result.realized_pnl)

        self.notify(
            NotificationLevel.SUCCESS,
            "Position Squared Off",
            f"Position closed with P&L: {format_pnl(result.realized_pnl)}",
        )
        return result

    # ────────────────────────────────────────────────────────
    # Notifications / snapshot
    # ────────────────────────────────────────────────────────

    def notify(self, level: NotificationLevel, title: str, message: str) -> Notification:
        note = Notification(level=level, title=title, message=message, created_at=self.now())
        self._notifications.append(note)
        return note

    @property
    def notifications(self) -> list[Notification]:
        return list(self._notifications)

    def drain_notifications(self) -> list[Notification]:
        notes = list(self._notifications)
        self._notifications.clear()
        return notes

    def status(self) -> dict[str, Any]:
        return {
            "symbol": self.current_symbol,
            "expiry": self.current_expiry.isoformat(),
            "days_to_expiry": self.days_to_expiry,
            "spot_price": round(self.spot_price, 2),
            "lot_size": self.instrument.lot_size,
            "basket_legs": len(self.basket),
            "orders": len(self.orders),
            "pending_orders": len(self.orders.pending),
            "positions": len(self.positions),
            "trades": len(self.history),
            "realized_pnl": round(self.history.realized_pnl, 2),
        }
