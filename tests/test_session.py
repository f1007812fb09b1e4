"""
TradingSession: market view, basket execution, deferred order settlement,
cancellation and square-off, driven through the async API.
"""

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from conftest import FIXED_NOW, intent_payload, make_session
from optsim.api import service as service_module
from optsim.api.service import BasketOutcome, NotificationLevel
from optsim.derivatives.contracts import Action, OptionType, OrderStatus, OrderType
from optsim.utils.exceptions import (
    InvalidExpiryError,
    OrderStateError,
    PositionNotFoundError,
    UnknownSymbolError,
    ValidationError,
)


# ═══════════════════════════════════════════════════════════
# 1. MARKET VIEW
# ═══════════════════════════════════════════════════════════

class TestMarketView:

    def test_initial_state(self, session):
        assert session.current_symbol == "NIFTY"
        assert session.current_expiry == date(2026, 10, 22)
        assert session.days_to_expiry == 3
        assert len(session.chain.rows) == 41
        assert session.chain.spot_price == 21_347.50

    def test_available_expiries(self, session):
        assert session.available_expiries()[:2] == [date(2026, 10, 22), date(2026, 10, 29)]

    def test_configured_expiry(self):
        session = make_session(default_expiry="2026-11-26")
        assert session.current_expiry == date(2026, 11, 26)

    @pytest.mark.asyncio
    async def test_change_symbol(self, session):
        chain = await session.change_symbol("banknifty")
        assert session.current_symbol == "BANKNIFTY"
        assert chain.symbol == "BANKNIFTY"
        assert chain.spot_price == 46_284.70
        assert session.instrument.lot_size == 15

    @pytest.mark.asyncio
    async def test_change_symbol_unknown(self, session):
        with pytest.raises(UnknownSymbolError):
            await session.change_symbol("XYZ")
        assert session.current_symbol == "NIFTY"

    @pytest.mark.asyncio
    async def test_change_expiry(self, session):
        chain = await session.change_expiry("2026-10-29")
        assert chain.expiry == date(2026, 10, 29)
        assert session.days_to_expiry == 10
        assert session.notifications[-1].title == "Expiry Changed"

    @pytest.mark.asyncio
    async def test_change_expiry_invalid(self, session):
        with pytest.raises(InvalidExpiryError):
            await session.change_expiry("next thursday")

    @pytest.mark.asyncio
    async def test_refresh_drifts_spot(self, session):
        before = session.spot_price
        tick = await session.refresh_market_data()
        assert tick.previous == before
        assert session.spot_price == tick.spot
        assert session.chain.spot_price == tick.spot
        assert abs(tick.change) <= before * 0.001

    def test_strike_analysis(self, session):
        analysis = session.strike_analysis(21_400)
        assert analysis.symbol == "NIFTY"
        assert analysis.put_itm

    @pytest.mark.parametrize("strike", [float("inf"), float("nan"), "inf", 0, -100])
    def test_strike_analysis_rejects_non_finite(self, session, strike):
        with pytest.raises(ValidationError):
            session.strike_analysis(strike)


# ═══════════════════════════════════════════════════════════
# 2. TRADE INTENTS
# ═══════════════════════════════════════════════════════════

class TestTradeIntent:

    def test_parses_wire_values(self, session):
        intent = session.make_intent({
            "symbol": "nifty", "strike": "21350", "option_type": "put",
            "action": "sell", "quantity": "2", "price": "85.5", "order_type": "limit",
        })
        assert intent.symbol == "NIFTY"
        assert intent.strike == 21_350.0
        assert intent.option_type is OptionType.PUT
        assert intent.action is Action.SELL
        assert intent.quantity == 2
        assert intent.price == 85.5
        assert intent.order_type is OrderType.LIMIT

    def test_bad_quantity_and_price_default(self, session):
        intent = session.make_intent(intent_payload(quantity="abc", price=None))
        assert intent.quantity == 1
        assert intent.price == pytest.approx(session.quote_price("NIFTY", 21_350.0, OptionType.CALL))

    def test_strict_validation_raises(self):
        session = make_session(strict_validation=True)
        with pytest.raises(ValidationError):
            session.make_intent(intent_payload(quantity=0))

    def test_missing_strike(self, session):
        payload = intent_payload()
        del payload["strike"]
        with pytest.raises(ValidationError):
            session.make_intent(payload)

    @pytest.mark.parametrize("strike", ["inf", "-inf", "nan", float("inf"), True])
    def test_non_finite_strike_rejected(self, session, strike):
        with pytest.raises(ValidationError) as exc:
            session.make_intent(intent_payload(strike=strike))
        assert exc.value.field == "strike"

    @pytest.mark.asyncio
    async def test_non_finite_strike_never_reaches_the_book(self, session):
        with pytest.raises(ValidationError):
            await session.place_order(session.make_intent(intent_payload(strike="nan")))
        assert len(session.orders) == 0
        assert len(session.positions) == 0
        assert session.basket.is_empty

    def test_risk_analysis(self, session):
        risk = session.risk_analysis(session.make_intent(intent_payload(quantity=2, price=100.0)))
        assert risk.total_cost == pytest.approx(10_000.0)
        assert risk.margin_required == pytest.approx(10_000.0)
        assert risk.breakeven == pytest.approx(21_450.0)


# ═══════════════════════════════════════════════════════════
# 3. BASKET EXECUTION
# ═══════════════════════════════════════════════════════════

class TestBasketExecution:

    async def stage_three_legs(self, session):
        for payload in (
            intent_payload(strike=21_300.0, action=Action.BUY, price=120.0),
            intent_payload(strike=21_400.0, action=Action.SELL, price=80.0),
            intent_payload(strike=21_300.0, option_type=OptionType.PUT, action=Action.BUY, price=70.0),
        ):
            await session.add_to_basket(session.make_intent(payload))

    @pytest.mark.asyncio
    async def test_three_legs_all_fill(self, session):
        await self.stage_three_legs(session)
        result = await session.execute_basket()

        assert result.outcome is BasketOutcome.FULL
        assert result.total == 3 and result.succeeded == 3
        assert all(o.status == OrderStatus.EXECUTED for o in result.orders)
        assert len(session.positions) == 3
        assert len(session.history) == 3
        assert all(e.realized_pnl == 0.0 for e in session.history)
        assert session.basket.is_empty
        assert session.notifications[-1].level is NotificationLevel.SUCCESS

    @pytest.mark.asyncio
    async def test_all_rejected(self, rejecting_session):
        await self.stage_three_legs(rejecting_session)
        result = await rejecting_session.execute_basket()

        assert result.outcome is BasketOutcome.NONE
        assert all(o.status == OrderStatus.REJECTED for o in result.orders)
        assert len(rejecting_session.positions) == 0
        assert len(rejecting_session.history) == 0
        assert rejecting_session.basket.is_empty

    @pytest.mark.asyncio
    async def test_outcome_matches_leg_results(self):
        session = make_session(fill_probability=0.5)
        for strike in range(21_000, 22_000, 100):
            await session.add_to_basket(session.make_intent(intent_payload(strike=float(strike))))
        result = await session.execute_basket()

        executed = sum(o.status == OrderStatus.EXECUTED for o in result.orders)
        assert result.total == 10
        assert result.succeeded == executed
        if executed == 10:
            assert result.outcome is BasketOutcome.FULL
        elif executed == 0:
            assert result.outcome is BasketOutcome.NONE
        else:
            assert result.outcome is BasketOutcome.PARTIAL
        assert len(session.positions) == executed
        assert session.basket.is_empty

    @pytest.mark.asyncio
    async def test_empty_basket(self, session):
        result = await session.execute_basket()
        assert result.outcome is BasketOutcome.EMPTY
        assert len(session.orders) == 0
        assert session.notifications[-1].level is NotificationLevel.WARNING

    @pytest.mark.asyncio
    async def test_overlapping_executions_notify_empty_basket(self):
        session = make_session(basket_latency_seconds=0.05)
        await session.add_to_basket(session.make_intent(intent_payload()))
        results = await asyncio.gather(session.execute_basket(), session.execute_basket())

        assert {r.outcome for r in results} == {BasketOutcome.FULL, BasketOutcome.EMPTY}
        assert len(session.orders) == 1
        empty = [n for n in session.notifications if n.title == "Empty Basket"]
        assert len(empty) == 1
        assert empty[0].level is NotificationLevel.WARNING

    @pytest.mark.asyncio
    async def test_remove_and_clear(self, session):
        await self.stage_three_legs(session)
        first = session.basket.items[0]
        await session.remove_from_basket(first.id)
        assert len(session.basket) == 2
        assert await session.clear_basket() == 2
        assert session.basket.is_empty

    @pytest.mark.asyncio
    async def test_concurrent_adds_are_serialised(self, session):
        intents = [session.make_intent(intent_payload(strike=float(21_000 + i * 100))) for i in range(20)]
        items = await asyncio.gather(*(session.add_to_basket(i) for i in intents))
        assert len(session.basket) == 20
        assert len({item.id for item in items}) == 20


# ═══════════════════════════════════════════════════════════
# 4. SINGLE ORDERS
# ═══════════════════════════════════════════════════════════

class TestOrders:

    @pytest.mark.asyncio
    async def test_order_settles_after_latency(self, session):
        order = await session.place_order(session.make_intent(intent_payload()))
        assert order.status == OrderStatus.PENDING
        await session.drain()
        assert order.status == OrderStatus.EXECUTED
        assert len(session.positions) == 1
        assert len(session.history) == 1
        assert session.notifications[-1].title == "Order Executed"

    @pytest.mark.asyncio
    async def test_rejection_is_an_outcome(self, rejecting_session):
        order = await rejecting_session.place_order(rejecting_session.make_intent(intent_payload()))
        await rejecting_session.drain()
        assert order.status == OrderStatus.REJECTED
        assert order.reject_reason == "Market conditions"
        assert len(rejecting_session.positions) == 0
        assert rejecting_session.notifications[-1].level is NotificationLevel.DANGER

    @pytest.mark.asyncio
    async def test_cancelled_order_never_executes(self):
        session = make_session(order_latency_seconds=0.05)
        order = await session.place_order(session.make_intent(intent_payload()))
        await session.cancel_order(order.order_id)
        await session.drain()
        assert order.status == OrderStatus.CANCELLED
        assert len(session.positions) == 0
        assert len(session.history) == 0

    @pytest.mark.asyncio
    async def test_cancel_terminal_order(self, session):
        order = await session.place_order(session.make_intent(intent_payload()))
        await session.drain()
        with pytest.raises(OrderStateError):
            await session.cancel_order(order.order_id)
        assert order.status == OrderStatus.EXECUTED
        assert session.notifications[-1].level is NotificationLevel.WARNING

    @pytest.mark.asyncio
    async def test_fill_merges_position(self, session):
        for price in (100.0, 120.0):
            await session.place_order(session.make_intent(intent_payload(quantity=1, price=price)))
        await session.drain()
        assert len(session.positions) == 1
        assert session.positions.positions[0].avg_price == pytest.approx(110.0)

    @pytest.mark.asyncio
    async def test_failed_settlement_is_logged(self, session, monkeypatch):
        events = []

        class RecordingLogger:
            def error(self, event, **kw):
                events.append((event, kw))

        async def broken_settlement(order_id):
            raise RuntimeError(f"settlement crashed for {order_id}")

        monkeypatch.setattr(service_module, "logger", RecordingLogger())
        monkeypatch.setattr(session, "_settle_order", broken_settlement)

        order = await session.place_order(session.make_intent(intent_payload()))
        for _ in range(3):
            await asyncio.sleep(0)

        assert [e for e, _ in events] == ["background_task_failed"]
        assert order.order_id in events[0][1]["error"]
        assert isinstance(events[0][1]["exc_info"], RuntimeError)
        assert session._pending_tasks == set()
        assert session.positions.positions[0].quantity == 2


# ═══════════════════════════════════════════════════════════
# 5. POSITIONS & SQUARE-OFF
# ═══════════════════════════════════════════════════════════

class TestSquareOff:

    @pytest.mark.asyncio
    async def test_square_off_realises_pnl(self, session):
        await session.place_order(session.make_intent(intent_payload(quantity=2, price=100.0)))
        await session.drain()
        position = session.positions.positions[0]
        current = session.quote_price("NIFTY", 21_350.0, OptionType.CALL)

        result = await session.square_off(position.id)

        assert result.realized_pnl == pytest.approx((current - 100.0) * 2 * 50)
        assert len(session.positions) == 0
        closing = session.orders.filter()[-1]
        assert closing.action is Action.SELL
        assert closing.status is OrderStatus.EXECUTED
        assert closing.order_type is OrderType.MARKET
        assert session.history.entries[-1].realized_pnl == pytest.approx(result.realized_pnl)
        assert session.history.realized_pnl == pytest.approx(result.realized_pnl)

    @pytest.mark.asyncio
    async def test_square_off_unknown(self, session):
        with pytest.raises(PositionNotFoundError):
            await session.square_off("POS9999")

    @pytest.mark.asyncio
    async def test_positions_follow_live_spot(self, session):
        await session.place_order(session.make_intent(intent_payload()))
        await session.drain()
        before = session.position_views()[0].current_price
        for _ in range(5):
            await session.refresh_market_data()
        after = session.position_views()[0].current_price
        assert after == pytest.approx(session.quote_price("NIFTY", 21_350.0, OptionType.CALL))
        assert after != before

    @pytest.mark.asyncio
    async def test_summary_counts_short_margin(self, session):
        await session.place_order(session.make_intent(intent_payload(action=Action.SELL, price=90.0)))
        await session.drain()
        summary = session.positions_summary()
        assert summary.position_count == 1
        assert summary.margin_used > 0


class TestNotifications:

    def test_bounded(self):
        session = make_session(notification_limit=3)
        for i in range(5):
            session.notify(NotificationLevel.INFO, "n", str(i))
        assert [n.message for n in session.notifications] == ["2", "3", "4"]
        assert all(n.created_at == FIXED_NOW for n in session.notifications)

    def test_drain(self, session):
        session.notify(NotificationLevel.INFO, "n", "m")
        assert len(session.drain_notifications()) == 1
        assert session.notifications == []

    def test_status(self, session):
        status = session.status()
        assert status["symbol"] == "NIFTY"
        assert status["lot_size"] == 50
        assert status["days_to_expiry"] == 3
