from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from optsim.api.refresher import MarketDataRefresher
from optsim.api.service import TradingSession
from optsim.derivatives.contracts import OrderStatus, parse_enum
from optsim.utils.config import Settings, get_settings
from optsim.utils.exceptions import (
    BasketItemNotFoundError,
    OrderNotFoundError,
    OrderStateError,
    PositionNotFoundError,
    SimulatorError,
    ValidationError,
)
from optsim.utils.logger import get_logger

logger = get_logger(__name__)

NOT_FOUND_ERRORS = (OrderNotFoundError, BasketItemNotFoundError, PositionNotFoundError)


def get_session(request: Request) -> TradingSession:
    return request.app.state.session


def get_refresher(request: Request) -> MarketDataRefresher:
    return request.app.state.refresher


async def read_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except Exception:
        raise ValidationError("Invalid request body")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the simulator app; one TradingSession lives for the app's lifetime."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        cfg = settings or get_settings()
        session = TradingSession(cfg)
        refresher = MarketDataRefresher(session)
        app.state.session = session
        app.state.refresher = refresher
        if refresher.auto_refresh:
            refresher.start()
        logger.info("simulator_started", symbol=session.current_symbol, expiry=session.current_expiry.isoformat())
        try:
            yield
        finally:
            await refresher.aclose()
            await session.drain()
            logger.info("simulator_stopped", orders=len(session.orders), positions=len(session.positions))

    app = FastAPI(title="NSE Options Chain Simulator", version="1.0", lifespan=lifespan)

    @app.exception_handler(SimulatorError)
    async def simulator_error_handler(request: Request, exc: SimulatorError) -> JSONResponse:
        if isinstance(exc, NOT_FOUND_ERRORS):
            status_code = 404
        elif isinstance(exc, OrderStateError):
            status_code = 409
        else:
            status_code = 400
        logger.warning("request_failed", path=request.url.path, category=exc.category.value, error=exc.message)
        return JSONResponse(
            {"error": exc.message, "category": exc.category.value},
            status_code=status_code,
        )

    # ── Market view ───────────────────────────────────────────

    @app.get("/api/status")
    async def status(request: Request) -> dict[str, Any]:
        refresher = get_refresher(request)
        data = get_session(request).status()
        data.update({
            "auto_refresh": refresher.auto_refresh,
            "refreshing": refresher.is_running,
            "visible": refresher.visible,
        })
        return data

    @app.get("/api/symbols")
    async def symbols(request: Request) -> dict[str, Any]:
        session = get_session(request)
        return {
            "current": session.current_symbol,
            "symbols": [i.to_dict() for i in session.registry.all()],
        }

    @app.post("/api/symbol")
    async def change_symbol(request: Request) -> dict[str, Any]:
        body = await read_body(request)
        chain = await get_session(request).change_symbol(str(body.get("symbol", "")))
        return chain.to_dict()

    @app.get("/api/expiries")
    async def expiries(request: Request) -> dict[str, Any]:
        session = get_session(request)
        return {
            "current": session.current_expiry.isoformat(),
            "expiries": [e.isoformat() for e in session.available_expiries()],
        }

    @app.post("/api/expiry")
    async def change_expiry(request: Request) -> dict[str, Any]:
        body = await read_body(request)
        chain = await get_session(request).change_expiry(body.get("expiry", ""))
        return chain.to_dict()

    @app.get("/api/chain")
    async def chain(request: Request) -> dict[str, Any]:
        return get_session(request).chain.to_dict()

    @app.get("/api/strike/{strike}")
    async def strike_analysis(request: Request, strike: str) -> dict[str, Any]:
        return get_session(request).strike_analysis(strike).to_dict()

    @app.post("/api/refresh")
    async def refresh(request: Request) -> dict[str, Any]:
        tick = await get_refresher(request).tick()
        return {"tick": tick.to_dict(), "chain": get_session(request).chain.to_dict()}

    @app.post("/api/auto-refresh")
    async def toggle_auto_refresh(request: Request) -> dict[str, Any]:
        refresher = get_refresher(request)
        enabled = refresher.toggle()
        return {"auto_refresh": enabled, "refreshing": refresher.is_running}

    @app.post("/api/visibility")
    async def visibility(request: Request) -> dict[str, Any]:
        body = await read_body(request)
        refresher = get_refresher(request)
        refresher.set_visible(bool(body.get("visible", True)))
        return {"visible": refresher.visible, "refreshing": refresher.is_running}

    # ── Trade ticket ──────────────────────────────────────────

    @app.post("/api/risk")
    async def risk(request: Request) -> dict[str, Any]:
        session = get_session(request)
        intent = session.make_intent(await read_body(request))
        data = session.risk_analysis(intent).to_dict()
        data.update({"quantity": intent.quantity, "price": round(intent.price, 2)})
        return data

    # ── Basket ────────────────────────────────────────────────

    @app.get("/api/basket")
    async def basket(request: Request) -> dict[str, Any]:
        return get_session(request).basket.to_dict()

    @app.post("/api/basket")
    async def add_to_basket(request: Request) -> dict[str, Any]:
        session = get_session(request)
        intent = session.make_intent(await read_body(request))
        item = await session.add_to_basket(intent)
        return {"item": item.to_dict(), "basket": session.basket.to_dict()}

    @app.delete("/api/basket")
    async def clear_basket(request: Request) -> dict[str, Any]:
        removed = await get_session(request).clear_basket()
        return {"removed": removed}

    @app.delete("/api/basket/{item_id}")
    async def remove_basket_item(request: Request, item_id: int) -> dict[str, Any]:
        session = get_session(request)
        item = await session.remove_from_basket(item_id)
        return {"removed": item.to_dict(), "basket": session.basket.to_dict()}

    @app.post("/api/basket/execute")
    async def execute_basket(request: Request) -> dict[str, Any]:
        result = await get_session(request).execute_basket()
        return result.to_dict()

    # ── Orders ────────────────────────────────────────────────

    @app.get("/api/orders")
    async def orders(request: Request, status: str = "") -> dict[str, Any]:
        wanted = parse_enum(OrderStatus, status, "status") if status else None
        return {"orders": get_session(request).orders.to_list(wanted)}

    @app.post("/api/orders")
    async def place_order(request: Request) -> dict[str, Any]:
        session = get_session(request)
        intent = session.make_intent(await read_body(request))
        order = await session.place_order(intent)
        return order.to_dict()

    @app.post("/api/orders/{order_id}/cancel")
    async def cancel_order(request: Request, order_id: str) -> dict[str, Any]:
        order = await get_session(request).cancel_order(order_id)
        return order.to_dict()

    # ── Positions / history ───────────────────────────────────

    @app.get("/api/positions")
    async def positions(request: Request) -> dict[str, Any]:
        session = get_session(request)
        return {
            "positions": [v.to_dict() for v in session.position_views()],
            "summary": session.positions_summary().to_dict(),
        }

    @app.post("/api/positions/{position_id}/square-off")
    async def square_off(request: Request, position_id: str) -> dict[str, Any]:
        result = await get_session(request).square_off(position_id)
        return {
            "position_id": result.position.id,
            "exit_price": round(result.exit_price, 2),
            "closing_action": result.closing_action.value,
            "realized_pnl": round(result.realized_pnl, 2),
        }

    @app.get("/api/history")
    async def history(request: Request) -> dict[str, Any]:
        trades = get_session(request).history
        return {"trades": trades.to_list(), "realized_pnl": round(trades.realized_pnl, 2)}

    @app.get("/api/notifications")
    async def notifications(request: Request, drain: bool = False) -> dict[str, Any]:
        session = get_session(request)
        notes = session.drain_notifications() if drain else session.notifications
        return {"notifications": [n.to_dict() for n in notes]}

    return app


app = create_app()
