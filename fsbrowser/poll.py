import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Optional

logger = logging.getLogger(__name__)

Outcome = Literal['resolved', 'rejected', 'refreshed', 'standby']
Phase = Literal['idle', 'scheduled', 'in-flight', 'standby', 'disposed']


@dataclass(frozen=True)
class Frequency:
    """Poll frequency.

    Attributes
    ----------
    interval : float, default=10.0
        Base interval in seconds.
    backoff : float, default=2.0
        Growth factor applied after every automatic tick, 1 disables backoff.
    max : float, default=300.0
        Interval ceiling in seconds.
    """

    interval: float = 10.0
    backoff: float = 2.0
    max: float = 300.0


def next_interval(previous: float, outcome: Outcome, frequency: Frequency) -> float:
    """Compute the delay before the next automatic tick.

    Parameters
    ----------
    previous : float
        Interval used for the previous tick.
    outcome : Outcome
        ``'resolved'`` or ``'rejected'`` for automatic ticks, ``'refreshed'``
        for manual refreshes and ``'standby'`` when leaving standby.
    frequency : Frequency
        Poll frequency.

    Returns
    -------
    float
        Next interval, between ``frequency.interval`` and ``frequency.max``.
    """
    if outcome in ('refreshed', 'standby') or frequency.backoff <= 1:
        return frequency.interval
    return min(frequency.max, max(previous, frequency.interval) * frequency.backoff)


class Poll:
    """Periodic refresh scheduler with backoff and standby.

    The loop sleeps for ``interval``, calls ``factory`` and grows the interval.
    While ``visible`` is false the loop stands by without calling the factory.
    ``refresh`` calls the factory at once and restarts the schedule from the
    base interval.

    Attributes
    ----------
    factory : Callable[[], Awaitable[Any]]
        Coroutine function called on every tick.
    frequency : Frequency
        Poll frequency.
    name : str
        Name used in log messages.
    """

    def __init__(
        self,
        factory: Callable[[], Awaitable[Any]],
        frequency: Frequency = Frequency(),
        name: str = 'poll'
    ) -> None:
        self.factory = factory
        self.frequency = frequency
        self.name = name
        self.phase: Phase = 'idle'
        self.interval = frequency.interval
        self.ticks = 0
        self._refreshes = 0
        self._task: Optional[asyncio.Task[None]] = None
        self._visible = asyncio.Event()
        self._visible.set()
        self._wake = asyncio.Event()

    @property
    def is_disposed(self) -> bool:
        return self.phase == 'disposed'

    @property
    def visible(self) -> bool:
        return self._visible.is_set()

    @visible.setter
    def visible(self, value: bool) -> None:
        if value:
            self._visible.set()
        else:
            self._visible.clear()

    def start(self) -> None:
        if self._task is None and not self.is_disposed:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def refresh(self) -> None:
        if self.is_disposed:
            return
        self.interval = next_interval(self.interval, 'refreshed', self.frequency)
        self._refreshes += 1
        self._wake.set()
        self.ticks += 1
        await self.factory()

    def dispose(self) -> None:
        if self.is_disposed:
            return
        self.phase = 'disposed'
        if self._task is not None:
            self._task.cancel()

    async def stop(self) -> None:
        self.dispose()
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _run(self) -> None:
        while not self.is_disposed:
            if not self._visible.is_set():
                self.phase = 'standby'
                logger.debug("poll '%s' standing by", self.name)
                await self._visible.wait()
                self.interval = next_interval(self.interval, 'standby', self.frequency)
            self.phase = 'scheduled'
            self._wake.clear()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            else:
                continue
            if not self._visible.is_set():
                continue
            self.phase = 'in-flight'
            refreshes = self._refreshes
            outcome = await self._tick()
            # a manual refresh during the tick already reset the interval
            if refreshes == self._refreshes:
                self.interval = next_interval(self.interval, outcome, self.frequency)

    async def _tick(self) -> Outcome:
        self.ticks += 1
        try:
            await self.factory()
        except Exception:
            logger.exception("poll '%s' tick failed", self.name)
            return 'rejected'
        return 'resolved'
