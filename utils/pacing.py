"""
Interruptible sleeps for request pacing and retry backoff.

The sync waits between pages (fixed pacing), after an empty page (recovery)
and between retry attempts. All of these go through one Pacer so a caller
can cut a long wait short:

    pacer = Pacer()
    await pacer.sleep(30)   # raises SleepInterrupted if pacer.interrupt() is called

An interrupt is consumed by the sleep it ends (or by the next sleep when none
is pending), so only the work in progress at that moment is abandoned.
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class SleepInterrupted(Exception):
    """A Pacer sleep was cut short by interrupt()."""


class Pacer:
    """Async sleep that can be interrupted from another task."""

    def __init__(self):
        self._interrupted = asyncio.Event()
        self.total_slept = 0.0

    @property
    def interrupt_pending(self) -> bool:
        return self._interrupted.is_set()

    def interrupt(self) -> None:
        """End the pending sleep (or the next one) with SleepInterrupted."""
        logger.info("Pacing sleep interrupted")
        self._interrupted.set()

    def _consume_interrupt(self, seconds: float) -> None:
        self._interrupted.clear()
        raise SleepInterrupted(f"Sleep of {seconds:.1f}s interrupted")

    async def sleep(self, seconds: float) -> None:
        """
        Wait for `seconds`.

        Raises:
            SleepInterrupted: interrupt() was called before or during the wait
        """
        if self._interrupted.is_set():
            self._consume_interrupt(seconds)

        if seconds <= 0:
            return

        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            await asyncio.wait_for(self._interrupted.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            self.total_slept += seconds
            return

        self.total_slept += loop.time() - started
        self._consume_interrupt(seconds)
