import asyncio
import contextlib
import inspect
from typing import Any, Awaitable, Callable, Optional, Set, Union

import structlog

from .dedup import SnapshotGate

log = structlog.get_logger(__name__)

Refresh = Callable[[], Union[Awaitable[Any], Any]]
Apply = Callable[[Any], Any]


class PollingSubscription:
    """One live polling loop.

    Refreshes overlap freely. Each one carries a sequence number; a result
    is applied only while the subscription is live and only if nothing newer
    has been applied already. Closing cancels the timer, while refreshes
    already in flight finish and are discarded.
    """

    def __init__(self, refresh: Refresh, interval: float, apply: Optional[Apply] = None, *,
                 gate: Optional[SnapshotGate] = None, skip_none: bool = True, name: str = "poll"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.refresh = refresh
        self.interval = interval
        self.apply = apply
        self.gate = gate
        self.skip_none = skip_none
        self.name = name
        self._live = False
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._issued = 0
        self._applied_seq = 0
        self.applied = 0
        self.unchanged = 0
        self.dropped = 0
        self.failures = 0

    @property
    def live(self) -> bool:
        return self._live

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def start(self) -> "PollingSubscription":
        if self._live:
            return self
        self._live = True
        self._timer = asyncio.get_running_loop().create_task(self._run())
        log.debug("poll.started", name=self.name, interval=self.interval)
        return self

    async def close(self) -> None:
        if not self._live and self._timer is None:
            return
        self._live = False
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        log.debug("poll.closed", name=self.name, in_flight=len(self._in_flight))

    async def __aenter__(self) -> "PollingSubscription":
        return self.start()

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def refresh_now(self) -> Optional[asyncio.Task]:
        """Fire an extra refresh outside the cadence, e.g. after a successful action."""
        if not self._live:
            return None
        return self._spawn()

    async def _run(self) -> None:
        while self._live:
            self._spawn()
            await asyncio.sleep(self.interval)

    def _spawn(self) -> asyncio.Task:
        self._issued += 1
        task = asyncio.get_running_loop().create_task(self._refresh_once(self._issued))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _refresh_once(self, seq: int) -> None:
        try:
            result = self.refresh()
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self.failures += 1
            log.warning("poll.refresh_failed", name=self.name, seq=seq, error=repr(e))
            return
        self._deliver(seq, result)

    def _deliver(self, seq: int, result: Any) -> None:
        # no await between these checks and the apply
        if not self._live:
            self.dropped += 1
            log.debug("poll.discarded_after_close", name=self.name, seq=seq)
            return
        if seq <= self._applied_seq:
            self.dropped += 1
            log.debug("poll.stale", name=self.name, seq=seq, applied=self._applied_seq)
            return
        if result is None and self.skip_none:
            return
        self._applied_seq = seq
        if self.gate is not None and not self.gate.offer(result):
            self.unchanged += 1
            return
        if self.apply is not None:
            try:
                self.apply(result)
            except Exception as e:
                self.failures += 1
                log.warning("poll.apply_failed", name=self.name, seq=seq, error=repr(e))
                return
        self.applied += 1


class PollingController:
    """Factory for polling subscriptions over one refresh operation."""

    def __init__(self, refresh: Refresh, interval: float, apply: Optional[Apply] = None, *,
                 gate: Optional[SnapshotGate] = None, skip_none: bool = True, name: str = "poll"):
        self.refresh = refresh
        self.interval = interval
        self.apply = apply
        self.gate = gate
        self.skip_none = skip_none
        self.name = name

    def subscribe(self) -> PollingSubscription:
        return PollingSubscription(self.refresh, self.interval, self.apply,
                                   gate=self.gate, skip_none=self.skip_none, name=self.name)

    def start(self) -> PollingSubscription:
        return self.subscribe().start()
