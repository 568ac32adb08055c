"""
Scan scheduling for the observer.

All rescans go through ScanScheduler.trigger(reason); the scheduler owns
the debounce, burst and polling timers.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class TriggerReason:
    POLL = "poll"
    MUTATION = "mutation"
    ROUTE_CHANGE = "route-change"
    USER_ACTION = "user-action"
    MANUAL = "manual"
    VISIBLE = "visible"


class ScanScheduler:
    """
    Turns trigger reasons into scan calls.

    - poll: scan now (the poll loop also fires this every poll_interval)
    - mutation: debounced; each mutation pushes the scan back
    - route-change: one scan per burst delay
    - user-action: one scan per nudge delay
    - manual: scan now, even while paused
    - visible: scan after visible_delay

    Scans are started as independent tasks; the scan callback decides
    whether overlapping work is dropped.
    """

    def __init__(
        self,
        scan: Callable[[], Awaitable[None]],
        poll_interval: float = 2.0,
        mutation_debounce: float = 0.3,
        burst_delays: Optional[list[float]] = None,
        nudge_delays: Optional[list[float]] = None,
        visible_delay: float = 0.5,
    ):
        self.scan = scan
        self.poll_interval = poll_interval
        self.mutation_debounce = mutation_debounce
        self.burst_delays = burst_delays if burst_delays is not None else [0.8, 2.0, 4.0]
        self.nudge_delays = nudge_delays if nudge_delays is not None else [0.8, 1.8]
        self.visible_delay = visible_delay
        self.paused = False
        self._debounce: Optional[asyncio.TimerHandle] = None
        self._timers: set[asyncio.TimerHandle] = set()
        self._tasks: set[asyncio.Task] = set()
        self._poll_task: Optional[asyncio.Task] = None

    def _run_scan(self):
        task = asyncio.get_running_loop().create_task(self.scan())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _later(self, delay: float):
        loop = asyncio.get_running_loop()
        handle = None

        def fire():
            self._timers.discard(handle)
            self._run_scan()

        handle = loop.call_later(delay, fire)
        self._timers.add(handle)
        return handle

    def trigger(self, reason: str):
        """Request a scan for the given reason. Must run inside the loop."""
        if self.paused and reason not in (TriggerReason.MANUAL, TriggerReason.VISIBLE):
            return
        logger.debug("[Sync] trigger: %s", reason)

        if reason in (TriggerReason.POLL, TriggerReason.MANUAL):
            self._run_scan()
        elif reason == TriggerReason.MUTATION:
            if self._debounce is not None:
                self._debounce.cancel()
                self._timers.discard(self._debounce)
            self._debounce = self._later(self.mutation_debounce)
        elif reason == TriggerReason.ROUTE_CHANGE:
            for delay in self.burst_delays:
                self._later(delay)
        elif reason == TriggerReason.USER_ACTION:
            for delay in self.nudge_delays:
                self._later(delay)
        elif reason == TriggerReason.VISIBLE:
            self._later(self.visible_delay)
        else:
            raise ValueError(f"unknown trigger reason: {reason}")

    async def _poll_loop(self):
        while True:
            await asyncio.sleep(self.poll_interval)
            self.trigger(TriggerReason.POLL)

    def start(self):
        """Start (or resume) polling."""
        self.paused = False
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    def pause(self):
        """Stop polling; only manual and visible triggers still scan."""
        self.paused = True
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    def resume(self):
        self.start()
        self.trigger(TriggerReason.VISIBLE)

    async def stop(self):
        """Cancel every timer and wait for running scans."""
        self.pause()
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        self._debounce = None
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
