"""
Fill Simulator: decides whether a simulated order fills.

Models exchange/broker execution risk as a single Bernoulli draw: an order
fills with ``fill_probability`` and is otherwise rejected. A rejection is
an order outcome, never an exception.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

DEFAULT_FILL_PROBABILITY = 0.95
REJECT_REASON = "Market conditions"


@dataclass(frozen=True)
class FillDecision:
    executed: bool
    reason: str = ""


class FillSimulator:
    def __init__(
        self,
        fill_probability: float = DEFAULT_FILL_PROBABILITY,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        if not 0.0 <= fill_probability <= 1.0:
            raise ValueError(f"fill_probability must be within [0, 1], got {fill_probability}")
        self.fill_probability = fill_probability
        self.rng = rng if rng is not None else np.random.default_rng()

    def decide(self) -> FillDecision:
        if self.rng.random() < self.fill_probability:
            return FillDecision(executed=True)
        return FillDecision(executed=False, reason=REJECT_REASON)
