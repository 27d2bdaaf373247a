"""Cooperative cancellation for in-flight calls."""

from __future__ import annotations

import asyncio
import logging

from .types import CallOutcome

logger = logging.getLogger(__name__)


class CancellationToken:
    """Caller-owned signal asking an in-flight call to stop early.

    Cancelling is not an error: the call resolves with whatever content
    arrived before the signal was observed.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class CancellationController:
    """Ties one token to one logical call.

    Checked at every suspension point (request issuance, every chunk read,
    every frame, every tool-loop round).  Tracks how many bytes were read
    so an early cancellation can be told apart from an empty answer.
    """

    def __init__(self, token: CancellationToken | None = None) -> None:
        self.token = token
        self.bytes_read = 0
        self._reported = False

    @property
    def cancelled(self) -> bool:
        if self.token is None or not self.token.cancelled:
            return False
        if not self._reported:
            self._reported = True
            logger.debug("Cancellation observed after %d bytes", self.bytes_read)
        return True

    def note_bytes(self, count: int) -> None:
        self.bytes_read += count

    def outcome(self) -> CallOutcome:
        """Outcome of a call that stopped because of this controller."""
        if self.bytes_read == 0:
            return CallOutcome.CANCELLED_EMPTY
        return CallOutcome.CANCELLED
