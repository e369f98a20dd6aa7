"""
Bid admissibility.

A bid is admissible when it is positive and undercuts the current floor by
at least one full decrement step:

    0 < value <= floor - decrement_step

A bid equal to the floor, or one that undercuts it by less than the step,
is rejected. There is no lower bound besides positivity. The boundary is
computed exactly, never rounded to the context precision.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Optional

from .errors import BidRejected, RejectReason


def _money(amount: Decimal) -> str:
    # Two places unless that would hide the sub-cent part of the boundary
    if amount.as_tuple().exponent >= -2:
        return f"{amount:.2f}"
    return f"{amount:f}"


@dataclass(frozen=True)
class BidDecision:
    accepted: bool
    boundary: Decimal  # highest admissible value against the floor
    reason: Optional[RejectReason] = None

    def message(self, value: Decimal) -> str:
        if self.reason == RejectReason.NON_POSITIVE:
            return f"Bid must be positive (got {value})"
        if self.reason == RejectReason.TOO_HIGH:
            return f"Bid must be <= {_money(self.boundary)} as per decrement step (got {value})"
        return "Bid accepted"


def _exact_difference(a: Decimal, b: Decimal) -> Decimal:
    """``a - b`` without rounding, whatever the operands' magnitudes."""
    top = max(a.adjusted(), b.adjusted())
    bottom = min(a.as_tuple().exponent, b.as_tuple().exponent)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, top - bottom + 2)
        return a - b


def check_bid(decrement_step: Decimal, floor: Decimal, value: Decimal) -> BidDecision:
    boundary = _exact_difference(floor, decrement_step)
    if value <= 0:
        return BidDecision(False, boundary, RejectReason.NON_POSITIVE)
    if value > boundary:
        return BidDecision(False, boundary, RejectReason.TOO_HIGH)
    return BidDecision(True, boundary)


def validate_bid(decrement_step: Decimal, floor: Decimal, value: Decimal) -> Decimal:
    """Like ``check_bid`` but raises ``BidRejected``; returns the boundary on success."""
    decision = check_bid(decrement_step, floor, value)
    if not decision.accepted:
        raise BidRejected(decision.reason, decision.message(value))
    return decision.boundary


def to_bid_value(raw: Any) -> Decimal:
    """Coerce an incoming bid value to a finite Decimal, rejecting anything else."""
    try:
        value = raw if isinstance(raw, Decimal) else Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise BidRejected(RejectReason.INVALID_VALUE, f"Bid value {raw!r} is not a number")
    if not value.is_finite():
        raise BidRejected(RejectReason.INVALID_VALUE, f"Bid value {raw!r} is not a finite number")
    return value
