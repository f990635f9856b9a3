"""
Retry and best-effort helpers for host calls.

Host commands may fail or apply asynchronously. Every call goes through
``best_effort``: a raised failure is wrapped in HostOperationError, logged,
and reported back as "did not happen". Polling uses a fixed attempt cap
and fixed delay; running out of attempts is a normal outcome, not an error.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from myday.infra.exceptions import HostOperationError
from myday.infra.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry: ``attempts`` tries with ``delay_ms`` between them."""
    attempts: int = 1
    delay_ms: int = 0

    async def pause(self) -> None:
        if self.delay_ms > 0:
            await asyncio.sleep(self.delay_ms / 1000)


@dataclass(frozen=True)
class CallOutcome(Generic[T]):
    ok: bool
    value: T | None = None
    error: HostOperationError | None = None


async def best_effort(op: str, call: Callable[..., Awaitable[T]], *args: Any, **log_context: Any) -> CallOutcome[T]:
    """Await ``call(*args)``; log and swallow any failure."""
    try:
        return CallOutcome(ok=True, value=await call(*args))
    except Exception as e:
        error = HostOperationError(op, e)
        logger.warning("host_operation_failed", op=op, error=str(error), exc_info=True, **log_context)
        return CallOutcome(ok=False, error=error)


async def poll(probe: Callable[[], Awaitable[T | None]], policy: RetryPolicy) -> T | None:
    """Call ``probe`` until it returns non-None or attempts run out."""
    for attempt in range(max(1, policy.attempts)):
        result = await probe()
        if result is not None:
            return result
        if attempt + 1 < policy.attempts:
            await policy.pause()
    return None
