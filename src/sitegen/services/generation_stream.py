"""Generation Stream Service
=========================

Drives one admitted generation and maps it onto named stream events:

    reserved{amount} -> credits{remaining} -> progress{pct} / data{html}
    -> validation{...} -> done{success}

Settlement rules for the credit reservation:

- clean artifact: commit;
- fallback document or provider error chunk: refund, ``done{success: false}``;
- exception: refund, ``error{status, message}`` then ``done{success: false}``;
- cancel event set: refund, ``aborted{}``;
- generator closed early (client went away): refund in ``finally``.

Admission rejections emit ``error`` with the ``insufficient_*`` reason and
``done{success: false}`` before any provider work starts.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from sitegen.constants import StreamEventType
from sitegen.models.generation import UserPreferences, WebsiteSnapshot
from sitegen.realtime.sse import format_sse_event
from sitegen.services.admission import AdmissionController
from sitegen.services.pipeline import GenerateWebsiteOptions, GenerationPipeline
from sitegen.utils.errors import AppError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamEvent:
    event: StreamEventType
    data: Any

    def encode(self) -> str:
        return format_sse_event(self.event.value, self.data)


class GenerationStreamService:
    """Admission, pipeline and settlement for one streamed generation."""

    def __init__(self, admission: AdmissionController, pipeline: GenerationPipeline):
        self.admission = admission
        self.pipeline = pipeline

    async def run(self, user_id: str, description: str,
                     preferences: Optional[UserPreferences] = None,
                     snapshot: Optional[WebsiteSnapshot] = None,
                     options: Optional[GenerateWebsiteOptions] = None,
                     cancel: Optional[asyncio.Event] = None) -> AsyncIterator[StreamEvent]:
        options = options or GenerateWebsiteOptions()
        decision = await self.admission.admit(user_id, options.operation)
        if not decision.ok:
            rejection = decision.to_error()
            logger.info(f"Admission rejected for {user_id}: {decision.reason.value}")
            yield StreamEvent(StreamEventType.ERROR, {
                'status': rejection.http_status,
                'message': rejection.message,
                'reason': decision.reason.value,
            })
            yield StreamEvent(StreamEventType.DONE, {'success': False, 'reason': decision.reason.value})
            return

        reservation = decision.reservation
        pipeline_events = self.pipeline.stream_website(description, preferences, snapshot, options, cancel)
        try:
            yield StreamEvent(StreamEventType.RESERVED, {'amount': reservation.amount})
            yield StreamEvent(StreamEventType.CREDITS, {'remaining': decision.remaining})

            result = None
            async for event in pipeline_events:
                if event.type == 'result':
                    result = event.result
                    continue
                yield StreamEvent(StreamEventType(event.type), event.data)

            if cancel is not None and cancel.is_set():
                await reservation.refund()
                yield StreamEvent(StreamEventType.ABORTED, {})
                return

            if result is None or result.degraded:
                await reservation.refund()
                balance = await self.admission.credits.get_balance(user_id)
                yield StreamEvent(StreamEventType.CREDITS, {'remaining': balance})
                yield StreamEvent(StreamEventType.DONE, {
                    'success': False,
                    'degraded': True,
                    'result': result.to_dict() if result else None,
                })
                return

            await reservation.commit()
            yield StreamEvent(StreamEventType.DONE, {'success': True, 'result': result.to_dict()})
        except Exception as e:
            if isinstance(e, AppError):
                status, message = e.http_status, e.message
                logger.warning(f"Generation failed for {user_id}: {message}")
            else:
                status, message = 500, 'Generation failed'
                logger.exception(f"Unexpected generation failure for {user_id}")
            await reservation.refund()
            yield StreamEvent(StreamEventType.ERROR, {'status': status, 'message': message})
            yield StreamEvent(StreamEventType.DONE, {'success': False})
        finally:
            try:
                await pipeline_events.aclose()
            finally:
                if reservation.held:
                    logger.info(f"Stream for {user_id} closed before settlement; refunding")
                    await reservation.refund()

    async def stream(self, *args, **kwargs) -> AsyncIterator[str]:
        """Same as ``run`` but encoded as server-sent event blocks."""
        events = self.run(*args, **kwargs)
        try:
            async for event in events:
                yield event.encode()
        finally:
            await events.aclose()
