"""
AI usage cost metering.

Turns token usage into an AICostLog row priced from the active pricing
ledger entry. Request paths call `submit()`, which only enqueues; a single
worker task drains the queue so metering never blocks or fails the caller.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from aiexpense.models import AICostLog
from aiexpense.providers.ai import TokenUsage
from aiexpense.repositories import AICostRepository, PricingLedger

logger = logging.getLogger(__name__)

PRICING_NOT_CONFIGURED = "pricing_not_configured"


@dataclass
class CostEvent:
    user_id: str
    operation: str
    provider: str
    model: str
    usage: TokenUsage


class CostMeter:
    """Records AI call costs through a bounded queue and one worker task."""

    def __init__(
        self,
        ledger: PricingLedger,
        cost_repo: AICostRepository,
        queue_size: int = 1000,
        timeout: float = 5.0,
    ):
        self.ledger = ledger
        self.cost_repo = cost_repo
        self.timeout = timeout
        self._queue: asyncio.Queue[CostEvent] = asyncio.Queue(maxsize=queue_size)
        self._worker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.get_running_loop().create_task(self._run())
        logger.info("Cost meter worker started")

    async def drain(self) -> None:
        """Wait until every queued event has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        """Drain pending events, then stop the worker."""
        if not self.running:
            return
        await self.drain()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Cost meter worker stopped")

    def submit(
        self,
        user_id: str,
        operation: str,
        provider: str,
        model: str,
        usage: Optional[TokenUsage],
    ) -> bool:
        """
        Queue a usage event without waiting on it.

        Returns False when the event was skipped (no usage) or dropped
        because the queue is full.
        """
        if usage is None or usage.is_empty():
            return False
        try:
            self._queue.put_nowait(CostEvent(user_id, operation, provider, model, usage))
        except asyncio.QueueFull:
            logger.warning(
                f"Cost log queue full, dropping {operation} event for user {user_id}",
                extra={"operation": operation, "provider": provider, "model": model},
            )
            return False
        return True

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await asyncio.wait_for(
                    self.record(event.user_id, event.operation, event.provider, event.model, event.usage),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                logger.error(f"Timed out recording AI cost for {event.operation} (user {event.user_id})")
            except Exception as e:
                logger.error(
                    f"Failed to record AI cost for {event.operation} (user {event.user_id}): {e}",
                    extra={"operation": event.operation, "provider": event.provider, "model": event.model},
                )
            finally:
                self._queue.task_done()

    async def record(
        self,
        user_id: str,
        operation: str,
        provider: str,
        model: str,
        usage: Optional[TokenUsage],
    ) -> Optional[AICostLog]:
        """
        Price and persist one usage event.

        Returns the stored row, or None when usage is empty or storage failed.
        Never raises on storage errors.
        """
        if usage is None or usage.is_empty():
            return None

        cost_note = None
        try:
            pricing = await self.ledger.get_active(provider, model)
        except Exception as e:
            logger.error(f"Failed to load pricing for {provider}/{model}: {e}")
            pricing = None

        if pricing:
            cost = pricing.get_cost(usage.input_tokens, usage.output_tokens)
            currency = pricing.currency
        else:
            logger.warning(
                f"No active pricing for {provider}/{model}, logging zero cost",
                extra={"provider": provider, "model": model},
            )
            cost = 0.0
            currency = "USD"
            cost_note = PRICING_NOT_CONFIGURED

        log = AICostLog(
            user_id=user_id,
            operation=operation,
            provider=provider,
            model=model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_tokens=usage.total_tokens,
            cost=cost,
            currency=currency,
            cost_note=cost_note,
        )
        try:
            return await self.cost_repo.create(log)
        except Exception as e:
            logger.error(
                f"Failed to save AI cost log for {operation}: {e}",
                extra={"user_id": user_id, "operation": operation},
            )
            return None
