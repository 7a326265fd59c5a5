"""Admission Control
=================

Two-phase admission for generation requests: reserve budget before any
provider work, then commit on success or refund on failure, degradation or
cancellation.

The rate limiter is consulted first, then credits. A rejected request never
holds a partial charge.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sitegen.constants import AdmissionReason, AIOperation
from sitegen.services.credits import CreditsService
from sitegen.services.rate_limiter import RateLimitDecision, SlidingWindowRateLimiter
from sitegen.utils.errors import AppError, PaymentRequiredError, TooManyRequestsError

logger = logging.getLogger(__name__)

HELD = 'held'
COMMITTED = 'committed'
REFUNDED = 'refunded'

_REJECTION_ERRORS = {
    AdmissionReason.INSUFFICIENT_CREDITS: (PaymentRequiredError, 'Insufficient credits for this operation'),
    AdmissionReason.INSUFFICIENT_RATE_LIMIT: (TooManyRequestsError, 'Too many requests, please retry later'),
}


@dataclass
class Reservation:
    """Provisional credit decrement, settled exactly once."""
    user_id: str
    amount: int
    operation: AIOperation
    credits: CreditsService = field(repr=False)
    state: str = HELD

    @property
    def held(self) -> bool:
        return self.state == HELD

    async def commit(self) -> bool:
        """Confirm the charge. Returns False if already settled."""
        if not self.held:
            return False
        self.state = COMMITTED
        logger.debug(f"Committed {self.amount} credits for {self.user_id} ({self.operation.value})")
        return True

    async def refund(self) -> bool:
        """Return the reserved credits. Returns False if already settled."""
        if not self.held:
            return False
        self.state = REFUNDED
        try:
            await self.credits.refund(self.user_id, self.amount)
        except Exception:
            self.state = HELD
            raise
        logger.info(f"Refunded {self.amount} credits to {self.user_id} ({self.operation.value})")
        return True


@dataclass
class AdmissionDecision:
    ok: bool
    reason: Optional[AdmissionReason] = None
    reservation: Optional[Reservation] = None
    remaining: Optional[int] = None
    rate_limit: Optional[RateLimitDecision] = None

    def to_error(self) -> Optional[AppError]:
        """The ``AppError`` describing a rejection, None when admitted."""
        if self.ok or self.reason is None:
            return None
        error_cls, message = _REJECTION_ERRORS[self.reason]
        details: Dict[str, Any] = {'reason': self.reason.value}
        if self.remaining is not None:
            details['remaining'] = self.remaining
        if self.rate_limit is not None:
            details['reset_at'] = self.rate_limit.reset_at
        return error_cls(message, details=details)


class AdmissionController:
    """Gate generation requests on rate limit and credit budget."""

    def __init__(self, credits: CreditsService, rate_limiter: SlidingWindowRateLimiter):
        self.credits = credits
        self.rate_limiter = rate_limiter

    async def admit(self, user_id: str, operation: AIOperation = AIOperation.GENERATE_PAGE,
                    amount: Optional[int] = None) -> AdmissionDecision:
        """Reserve budget for one operation.

        Args:
            user_id: Caller identity (trusted, supplied by the HTTP layer)
            operation: Operation tag, prices the reservation
            amount: Explicit reservation size, overriding the pricing estimate

        Returns:
            AdmissionDecision holding a held ``Reservation`` when admitted
        """
        rate = await self.rate_limiter.check(f"user:{user_id}")
        if not rate.allowed:
            return AdmissionDecision(ok=False, reason=AdmissionReason.INSUFFICIENT_RATE_LIMIT, rate_limit=rate)

        amount = amount if amount is not None else self.credits.estimate_for(operation)
        balance = await self.credits.get_balance(user_id)
        if balance <= 0:
            return AdmissionDecision(ok=False, reason=AdmissionReason.INSUFFICIENT_CREDITS,
                                     remaining=balance, rate_limit=rate)

        remaining = await self.credits.reserve_balance(user_id, amount)
        if remaining is None:
            return AdmissionDecision(ok=False, reason=AdmissionReason.INSUFFICIENT_CREDITS,
                                     remaining=await self.credits.get_balance(user_id), rate_limit=rate)

        reservation = Reservation(user_id=user_id, amount=amount, operation=operation, credits=self.credits)
        logger.debug(f"Admitted {operation.value} for {user_id}: reserved {amount}, {remaining} left")
        return AdmissionDecision(ok=True, reservation=reservation, remaining=remaining, rate_limit=rate)
