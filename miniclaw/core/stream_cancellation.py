"""
Stream Cancellation — cooperative, one-shot stop signal for a running session.

The agent loop looks at the token before each provider call and before each
tool invocation.  A provider stream or tool that is already running is left
to finish; the loop stops at the next checkpoint instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class StreamCancelledError(Exception):
    """The run was asked to stop (see ``CancellationToken.check``)."""


class CancellationToken:
    """
    Stop flag owned by one run of one session.

    The UI side calls ``cancel(reason)``; the loop polls ``is_cancelled`` at
    its checkpoints.  A token never goes back to the uncancelled state, so a
    session creates a fresh one for every run.
    """

    def __init__(self):
        self._flag = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._flag.is_set()

    @property
    def cancel_reason(self) -> str:
        return self._reason or ""

    def cancel(self, reason: str = "Cancelled by user") -> None:
        """Set the flag.  Later calls are ignored and keep the first reason."""
        if self._reason is not None:
            return
        self._reason = reason
        self._flag.set()
        logger.info(f"Cancellation requested: {reason}")

    def check(self) -> None:
        """Raise StreamCancelledError if the flag is set."""
        if self.is_cancelled:
            raise StreamCancelledError(self.cancel_reason or "Cancelled")

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled; False if ``timeout`` seconds pass first."""
        try:
            await asyncio.wait_for(self._flag.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def to_dict(self) -> dict:
        return {"is_cancelled": self.is_cancelled, "cancel_reason": self.cancel_reason}
