"""
Trade history: append-only ledger of fills and square-offs.

Entries written at fill time carry realized_pnl = 0; only square-off
entries carry a realised figure.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterator

import pandas as pd

from optsim.derivatives.contracts import Action, OptionType
from optsim.derivatives.orders import Order


@dataclass(frozen=True)
class TradeHistoryEntry:
    date: date
    order_id: str
    symbol: str
    strike: float
    option_type: OptionType
    action: Action
    quantity: int
    price: float
    realized_pnl: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "order_id": self.order_id,
            "symbol": self.symbol,
            "strike": self.strike,
            "option_type": self.option_type.value,
            "action": self.action.value,
            "quantity": self.quantity,
            "price": round(self.price, 2),
            "pnl": round(self.realized_pnl, 2),
        }


class TradeHistory:
    def __init__(self) -> None:
        self._entries: list[TradeHistoryEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TradeHistoryEntry]:
        return iter(list(self._entries))

    @property
    def entries(self) -> list[TradeHistoryEntry]:
        return list(self._entries)

    def record(self, order: Order, realized_pnl: float = 0.0) -> TradeHistoryEntry:
        entry = TradeHistoryEntry(
            date=(order.updated_at or order.placed_at).date(),
            order_id=order.order_id,
            symbol=order.symbol,
            strike=order.strike,
            option_type=order.option_type,
            action=order.action,
            quantity=order.quantity,
            price=order.price,
            realized_pnl=realized_pnl,
        )
        self._entries.append(entry)
        return entry

    @property
    def realized_pnl(self) -> float:
        return sum(e.realized_pnl for e in self._entries)

    def to_list(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self._entries]

    def to_frame(self) -> pd.DataFrame:
        columns = ["date", "order_id", "symbol", "strike", "option_type",
                   "action", "quantity", "price", "pnl"]
        return pd.DataFrame(self.to_list(), columns=columns)
