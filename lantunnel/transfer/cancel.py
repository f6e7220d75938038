"""
Cancellation coordinator
Races one unit of work against an external cancellation token
"""

import asyncio
from typing import Awaitable, Optional, TypeVar
import logging

from ..errors import CancellationError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class CancelToken:
    """Process-wide cancellation signal, fired once"""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled"):
        """Fire the token; later calls keep the first reason"""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        logger.debug(f"Cancellation requested: {reason}")

    async def wait(self):
        await self._event.wait()

    def raise_if_cancelled(self, step: str):
        if self.cancelled:
            raise CancellationError(step, self.reason or "cancelled")


async def race(work: Awaitable[T], token: Optional[CancelToken],
               step: str = "transfer") -> T:
    """
    Run `work` as a task and wait for it or the token, whichever comes first
    If the token wins, the task is cancelled and CancellationError is raised
    """
    task = asyncio.ensure_future(work)
    if token is None:
        return await task

    if token.cancelled:
        await _discard(task)
        raise CancellationError(step, token.reason or "cancelled")

    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter},
                                     return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        waiter.cancel()
        await _discard(task)
        raise

    # Completed work takes precedence over a token that fired at the same time
    if task in done:
        waiter.cancel()
        return task.result()

    logger.debug(f"Cancellation won the race during {step}")
    await _discard(task)
    raise CancellationError(step, token.reason or "cancelled")


async def _discard(task: asyncio.Future):
    """Cancel a task and wait until it has actually stopped"""
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
