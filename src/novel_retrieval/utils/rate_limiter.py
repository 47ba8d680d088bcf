"""Staggered request pacing for the download worker pool."""

import asyncio


class RateLimiter:
    """Per-slot staggered delays with adaptive back-off.

    Worker ``slot`` waits ``slot * delay_seconds`` before each unit of work,
    so a pool of N workers never bursts N requests at the same instant.
    """

    _MAX_DELAY = 5.0  # Upper bound for adaptive back-off

    def __init__(self, delay_seconds: float = 0.05):
        self.delay_seconds = delay_seconds
        self._original_delay = delay_seconds
        self.backoff_count: int = 0
        self.peak_delay: float = delay_seconds

    def delay_for(self, slot: int) -> float:
        return self.delay_seconds * slot

    async def stagger(self, slot: int) -> None:
        """Sleep for this slot's share of the stagger window."""
        delay = self.delay_for(slot)
        if delay > 0:
            await asyncio.sleep(delay)

    def back_off(self) -> None:
        """Double the stagger unit (capped at _MAX_DELAY).

        Called when a 429 is encountered so all subsequent requests slow down.
        """
        base = self.delay_seconds or 0.05
        self.delay_seconds = min(base * 2, self._MAX_DELAY)
        self.backoff_count += 1
        self.peak_delay = max(self.peak_delay, self.delay_seconds)

    @property
    def is_throttled(self) -> bool:
        """Whether the current delay exceeds the originally configured value."""
        return self.delay_seconds > self._original_delay

    def ease_off(self) -> None:
        """Halve the delay back toward the original configured value."""
        self.delay_seconds = max(self.delay_seconds / 2, self._original_delay)
