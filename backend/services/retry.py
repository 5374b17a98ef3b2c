"""
Bounded exponential backoff around a store transaction.

A lost race (StoreConflict) replays the whole operation from its read step.
Delays double per attempt up to a cap, with jitter so that colliding callers
spread out. Once every attempt is spent the conflict is surfaced as a
TransientConflictError, which the API renders as a retryable 503.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from config import settings
from models.errors import StoreConflict, TransientConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    rng: Optional[random.Random] = None,
) -> float:
    """Delay before retry number `attempt` (1-based): half fixed, half jitter."""
    capped = min(max_delay, base_delay * (2 ** (attempt - 1)))
    return capped / 2 + (rng or random).uniform(0, capped / 2)


async def run_with_retry(
    session_id: str,
    operation: Callable[[], Awaitable[T]],
    *,
    label: str = "transaction",
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
) -> T:
    max_attempts = max_attempts or settings.transaction_max_attempts
    base_delay = settings.transaction_base_delay if base_delay is None else base_delay
    max_delay = settings.transaction_max_delay if max_delay is None else max_delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except StoreConflict as exc:
            if attempt >= max_attempts:
                logger.error(
                    "[%s] %s gave up after %d conflicting attempts",
                    session_id, label, attempt,
                )
                raise TransientConflictError(session_id, attempt) from exc
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "[%s] %s conflicted (attempt %d/%d) — retrying in %.3fs",
                session_id, label, attempt, max_attempts, delay,
            )
            await asyncio.sleep(delay)
    raise TransientConflictError(session_id, max_attempts)
