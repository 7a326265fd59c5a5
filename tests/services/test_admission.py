"""Tests for the rate limiter and two-phase admission."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from sitegen.constants import AdmissionReason, AIOperation
from sitegen.services.admission import AdmissionController
from sitegen.services.counter_store import InMemoryCounterStore
from sitegen.services.credits import CreditsService
from sitegen.services.rate_limiter import RateLimitConfig, SlidingWindowRateLimiter
from sitegen.utils.errors import PaymentRequiredError, TooManyRequestsError


def _controller(starting_balance=100, max_requests=100):
    store = InMemoryCounterStore()
    credits = CreditsService(store, starting_balance=starting_balance)
    limiter = SlidingWindowRateLimiter(store, RateLimitConfig(window_seconds=60, max_requests=max_requests))
    return AdmissionController(credits, limiter), credits


@pytest.mark.unit
class TestSlidingWindowRateLimiter:
    """Test sliding-window limiting."""

    def test_blocks_after_limit(self):
        limiter = SlidingWindowRateLimiter(InMemoryCounterStore(), RateLimitConfig(window_seconds=60, max_requests=2))

        async def run():
            return [await limiter.check('user:a') for _ in range(3)]

        decisions = asyncio.run(run())
        assert [d.allowed for d in decisions] == [True, True, False]
        assert decisions[-1].remaining == 0
        assert decisions[-1].limit == 2

    def test_identifiers_are_independent(self):
        limiter = SlidingWindowRateLimiter(InMemoryCounterStore(), RateLimitConfig(max_requests=1))

        async def run():
            await limiter.check('user:a')
            return await limiter.check('user:b')

        assert asyncio.run(run()).allowed is True

    def test_fails_open_on_store_error(self):
        """A broken store lets the request through and flags the decision."""
        store = InMemoryCounterStore()
        store.sliding_window_hit = AsyncMock(side_effect=ConnectionError('store down'))
        limiter = SlidingWindowRateLimiter(store)

        decision = asyncio.run(limiter.check('user:a'))

        assert decision.allowed is True
        assert decision.degraded is True
        assert limiter.get_stats()['store_failures'] == 1

    def test_key_prefix(self):
        limiter = SlidingWindowRateLimiter(InMemoryCounterStore())
        assert limiter.key('user:a') == 'ratelimit:user:a'


@pytest.mark.unit
class TestAdmissionController:
    """Test admission decisions and reservation settlement."""

    def test_admits_and_reserves_estimate(self):
        controller, credits = _controller()

        async def run():
            decision = await controller.admit('u', AIOperation.GENERATE_PAGE)
            return decision, await credits.get_balance('u')

        decision, balance = asyncio.run(run())
        assert decision.ok is True
        assert decision.reservation.amount == 10
        assert decision.remaining == 90
        assert balance == 90

    def test_rate_limit_checked_first(self):
        controller, credits = _controller(max_requests=1)

        async def run():
            await controller.admit('u')
            return await controller.admit('u'), await credits.get_balance('u')

        decision, balance = asyncio.run(run())
        assert decision.ok is False
        assert decision.reason == AdmissionReason.INSUFFICIENT_RATE_LIMIT
        assert decision.to_error().http_status == 429
        assert isinstance(decision.to_error(), TooManyRequestsError)
        assert balance == 90

    def test_insufficient_credits_no_partial_charge(self):
        controller, credits = _controller(starting_balance=5)

        async def run():
            return await controller.admit('u', AIOperation.GENERATE_PAGE), await credits.get_balance('u')

        decision, balance = asyncio.run(run())
        assert decision.ok is False
        assert decision.reason == AdmissionReason.INSUFFICIENT_CREDITS
        assert decision.to_error().http_status == 402
        assert decision.remaining == 5
        assert balance == 5
        error = decision.to_error()
        assert isinstance(error, PaymentRequiredError)
        assert error.code == 'insufficient_credits'
        assert error.details['remaining'] == 5

    def test_zero_balance_rejected(self):
        controller, _ = _controller(starting_balance=0)
        decision = asyncio.run(controller.admit('u', amount=1))
        assert decision.reason == AdmissionReason.INSUFFICIENT_CREDITS

    def test_explicit_amount_overrides_estimate(self):
        controller, _ = _controller()
        decision = asyncio.run(controller.admit('u', amount=3))
        assert decision.reservation.amount == 3
        assert decision.remaining == 97

    def test_reservation_settles_once(self):
        controller, credits = _controller()

        async def run():
            reservation = (await controller.admit('u')).reservation
            refunded = await reservation.refund()
            refunded_again = await reservation.refund()
            committed_after = await reservation.commit()
            return refunded, refunded_again, committed_after, await credits.get_balance('u')

        assert asyncio.run(run()) == (True, False, False, 100)

    def test_commit_keeps_charge(self):
        controller, credits = _controller()

        async def run():
            reservation = (await controller.admit('u')).reservation
            await reservation.commit()
            refunded = await reservation.refund()
            return refunded, await credits.get_balance('u')

        assert asyncio.run(run()) == (False, 90)

    def test_failed_refund_stays_held(self):
        controller, credits = _controller()

        async def run():
            reservation = (await controller.admit('u')).reservation
            credits.refund = AsyncMock(side_effect=ConnectionError('store down'))
            with pytest.raises(ConnectionError):
                await reservation.refund()
            return reservation.held

        assert asyncio.run(run()) is True
