"""Credits Service
===============

Per-user credit balances on top of the shared counter store.

Keys are ``credits:<user_id>``. Balances are created lazily with the
starting allowance and only ever decremented through the store's atomic
check-and-decrement, so a successful reservation never leaves a negative
balance and concurrent reservations for the same user cannot double-spend.

Pricing is injected through ``PricingTable``; the defaults are placeholders
until a billing plan supplies real per-operation rates.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from sitegen.constants import AIOperation
from sitegen.services.counter_store import CounterStore

logger = logging.getLogger(__name__)

CREDITS_KEY_PREFIX = 'credits:'
DEFAULT_STARTING_CREDITS = 100

DEFAULT_CREDIT_COSTS: Dict[AIOperation, int] = {
    AIOperation.GENERATE_PAGE: 10,
    AIOperation.GENERATE_COMPONENT: 4,
    AIOperation.CONTENT_REWRITE: 2,
    AIOperation.DESIGN_SUGGESTION: 2,
    AIOperation.CODE_OPTIMIZATION: 3,
}


@dataclass(frozen=True)
class PricingTable:
    """Credit prices per operation.

    Attributes:
        estimates: Credits reserved up front for each operation
        unit_rates: Per-unit rate for ``charge_for_operation``, by operation
        default_rate: Rate for operations missing from ``unit_rates``
        default_estimate: Reservation for operations missing from ``estimates``
    """
    estimates: Mapping[AIOperation, int] = field(default_factory=lambda: dict(DEFAULT_CREDIT_COSTS))
    unit_rates: Mapping[AIOperation, float] = field(default_factory=dict)
    default_rate: float = 1.0
    default_estimate: int = 10

    def estimate(self, operation: AIOperation) -> int:
        return int(self.estimates.get(operation, self.default_estimate))

    def cost_for(self, operation: AIOperation, units: float) -> int:
        """Cost of ``units`` of work: ceiling of units x rate, at least 1."""
        rate = self.unit_rates.get(operation, self.default_rate)
        return max(1, math.ceil(units * rate))


@dataclass(frozen=True)
class CreditAccount:
    user_id: str
    balance: int

    def to_dict(self):
        return {'userId': self.user_id, 'credits': self.balance}


@dataclass(frozen=True)
class ChargeResult:
    success: bool
    charged: int


class CreditsService:
    """Lazily initialised, atomically reserved credit balances."""

    def __init__(self, store: CounterStore, starting_balance: int = DEFAULT_STARTING_CREDITS,
                 pricing: Optional[PricingTable] = None):
        self.store = store
        self.starting_balance = starting_balance
        self.pricing = pricing or PricingTable()

    @staticmethod
    def key(user_id: str) -> str:
        return f"{CREDITS_KEY_PREFIX}{user_id}"

    async def ensure(self, user_id: str) -> int:
        """Create the account with the starting balance if needed; return the balance."""
        key = self.key(user_id)
        if await self.store.set_if_absent(key, self.starting_balance):
            logger.info(f"Initialized credits for {user_id} with {self.starting_balance}")
        balance = await self.store.get(key)
        return balance if balance is not None else 0

    async def get_balance(self, user_id: str) -> int:
        return await self.ensure(user_id)

    async def get_account(self, user_id: str) -> CreditAccount:
        return CreditAccount(user_id=user_id, balance=await self.get_balance(user_id))

    async def reserve_balance(self, user_id: str, amount: int) -> Optional[int]:
        """Atomically take ``amount`` credits.

        Returns:
            Remaining balance on success, None when the balance is insufficient
        """
        if amount <= 0:
            raise ValueError(f"Reservation amount must be positive, got {amount}")
        await self.ensure(user_id)
        remaining = await self.store.decrement_if_sufficient(self.key(user_id), amount)
        if remaining is None:
            logger.info(f"Reservation of {amount} credits refused for {user_id}")
        return remaining

    async def reserve(self, user_id: str, amount: int) -> bool:
        return await self.reserve_balance(user_id, amount) is not None

    async def refund(self, user_id: str, amount: int) -> int:
        """Return ``amount`` credits unconditionally; returns the new balance."""
        if amount < 0:
            raise ValueError(f"Refund amount must not be negative, got {amount}")
        await self.ensure(user_id)
        if amount == 0:
            return await self.get_balance(user_id)
        return await self.store.increment(self.key(user_id), amount)

    async def grant(self, user_id: str, amount: int) -> int:
        """Top up a balance (purchases, promotions)."""
        balance = await self.refund(user_id, amount)
        logger.info(f"Granted {amount} credits to {user_id}; balance {balance}")
        return balance

    def estimate_for(self, operation: AIOperation) -> int:
        return self.pricing.estimate(operation)

    async def charge_for_operation(self, user_id: str, operation: AIOperation, units: float = 1) -> ChargeResult:
        cost = self.pricing.cost_for(operation, units)
        if await self.reserve(user_id, cost):
            return ChargeResult(success=True, charged=cost)
        return ChargeResult(success=False, charged=0)

    async def dump(self) -> Dict[str, int]:
        """Balances of every known account, keyed by user id."""
        counters = await self.store.scan(CREDITS_KEY_PREFIX)
        return {k[len(CREDITS_KEY_PREFIX):]: v for k, v in counters.items()}
