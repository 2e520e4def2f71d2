"""
Per-request spending ledger and cost estimation.

A Budget is created once per webhook request and owned by that request's
call stack. Every unit of external work is charged before (input) and after
(output) its network call; a charge that would cross the ceiling is refused
and leaves the ledger untouched.
"""

import math
from dataclasses import dataclass, field
from typing import List, Tuple

from .errors import BudgetExceeded

# Totals are rounded to this many decimals to keep float drift out of the ceiling check
_PRECISION = 6


@dataclass
class Budget:
    """Spending tracker with a hard ceiling (amounts in cents)."""
    ceiling: float
    spent: float = 0.0
    charges: List[Tuple[str, float]] = field(default_factory=list)

    def charge(self, amount: float, reason: str = "unknown") -> float:
        """Commit ``amount`` and return the new total.

        Raises:
            BudgetExceeded: when the new total would exceed the ceiling.
            ValueError: for negative amounts.
        """
        if amount < 0:
            raise ValueError(f"Charge amount must be non-negative (got {amount} for {reason})")
        attempted = round(self.spent + amount, _PRECISION)
        if attempted > self.ceiling:
            raise BudgetExceeded(attempted_total=attempted, ceiling=self.ceiling, reason=reason)
        self.spent = attempted
        self.charges.append((reason, amount))
        return self.spent

    @property
    def remaining(self) -> float:
        return round(self.ceiling - self.spent, _PRECISION)


def create_budget(ceiling: float) -> Budget:
    """Create a fresh ledger. Ceilings must be positive."""
    ceiling = float(ceiling)
    if not math.isfinite(ceiling) or ceiling <= 0:
        raise ValueError(f"Budget ceiling must be a positive number (got {ceiling})")
    return Budget(ceiling=ceiling)


class CostEstimator:
    """Character-count token proxy.

    One unit per ``chars_per_unit`` characters, minimum 1. Real token counts
    vary by backend and language; swap this out for a tokenizer-backed
    estimator where accuracy matters.
    """

    def __init__(self, chars_per_unit: int = 4):
        if chars_per_unit < 1:
            raise ValueError("chars_per_unit must be >= 1")
        self.chars_per_unit = chars_per_unit

    def estimate_units(self, text: str) -> int:
        return max(1, math.ceil(len(text or "") / self.chars_per_unit))

    def cost(self, text: str, rate_per_1k: float) -> float:
        """Cost in cents of ``text`` at ``rate_per_1k`` cents per 1000 units."""
        return (self.estimate_units(text) / 1000.0) * rate_per_1k
