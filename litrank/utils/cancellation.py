"""Cooperative cancellation shared by a request and all of its provider calls.

One token is created per search request and passed down through the
router, the governor and the retry loop. Once cancelled it stays
cancelled.
"""

import asyncio
from typing import Optional

import structlog

from litrank.utils.exceptions import SearchCancelled

logger = structlog.get_logger()


class CancellationToken:
    """asyncio.Event backed cancellation flag."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.info("cancellation_requested", reason=reason)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SearchCancelled(self._reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> None:
        """Sleep for `seconds` unless cancelled first.

        Raises:
            SearchCancelled: If the token fires before the sleep completes.
        """
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise SearchCancelled(self._reason or "cancelled")


async def cancellable_sleep(
    seconds: float, token: Optional[CancellationToken] = None
) -> None:
    if token is None:
        await asyncio.sleep(seconds)
    else:
        await token.sleep(seconds)
