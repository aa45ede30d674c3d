"""Run control for stoppable batch and profile runs."""

import asyncio
from enum import Enum


class RunState(Enum):
    """Run state enumeration."""
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    COMPLETED = "completed"


class RunController:
    """
    Tracks whether a long-running loop should keep going.

    Stop requests are honoured between iterations; ``sleep`` returns early
    as soon as a stop is requested.
    """

    def __init__(self):
        """Initialize run controller."""
        self.state = RunState.IDLE
        self._stop_event = asyncio.Event()

    def start(self):
        """Mark the run as started and clear any earlier stop request."""
        self.state = RunState.RUNNING
        self._stop_event.clear()

    def is_running(self) -> bool:
        """Check if the run is in progress."""
        return self.state == RunState.RUNNING

    def stop_requested(self) -> bool:
        """Check if a stop was requested."""
        return self._stop_event.is_set()

    def should_continue(self) -> bool:
        """Check if the loop should start another iteration."""
        return self.state == RunState.RUNNING and not self._stop_event.is_set()

    def stop(self):
        """Request the run to stop."""
        if self.state == RunState.RUNNING:
            self.state = RunState.STOPPED
        self._stop_event.set()  # Wake any pending sleep

    def complete(self):
        """Mark the run as completed."""
        if self.state == RunState.RUNNING:
            self.state = RunState.COMPLETED

    async def sleep(self, seconds: float) -> bool:
        """
        Wait for a delay unless a stop is requested first.

        Args:
            seconds: Delay in seconds

        Returns:
            True if the full delay elapsed, False if interrupted by stop()
        """
        if self._stop_event.is_set():
            return False
        if seconds <= 0:
            await asyncio.sleep(0)
            return not self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False
