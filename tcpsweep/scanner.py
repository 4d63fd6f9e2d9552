import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from .pool import ProbePool
from .probe import Outcome, ResourceExhausted
from .targets import Target, TargetEnumerator

log = logging.getLogger(__name__)


@dataclass
class ScanSession:
    """Counters for one scan. Mutated only by the scheduler."""
    total: int
    issued: int = 0
    open_count: int = 0
    closed_count: int = 0
    timed_out_count: int = 0
    cancelled: bool = False
    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None

    @property
    def resolved(self) -> int:
        return self.open_count + self.closed_count + self.timed_out_count

    @property
    def progress(self) -> float:
        return self.issued / self.total if self.total else 1.0

    @property
    def elapsed(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at


class CancellationToken:
    """
    One-shot cancel flag that can also interrupt the scheduler's interval sleep.
    Setting it more than once has no further effect.
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        self._event.set()

    async def wait(self, seconds: float) -> bool:
        """Sleeps up to `seconds`. Returns True if cancelled."""
        if not self.cancelled:
            try:
                await asyncio.wait_for(self._event.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass
        return self.cancelled


class ScanScheduler:
    """
    Single-threaded control loop over a ProbePool.

    Each iteration fills idle slots from the enumerator, sleeps for the
    polling interval, then polls every connecting slot. Once the enumerator
    is exhausted the in-flight attempts are drained until every slot is idle.
    """

    RESOURCE_BACKOFF = 10.0

    def __init__(
        self,
        enumerator: TargetEnumerator,
        pool: ProbePool,
        timeout: float,
        interval: float,
        on_open: Optional[Callable[[Target], None]] = None,
        on_progress: Optional[Callable[[int, float], None]] = None,
        on_drain: Optional[Callable[[int], None]] = None,
        backoff: float = RESOURCE_BACKOFF,
        token: Optional[CancellationToken] = None,
    ):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if interval > timeout:
            raise ValueError("Internal sleep time cannot be above timeout value.")
        self.enumerator = enumerator
        self.pool = pool
        self.timeout = timeout
        self.interval = interval
        self.on_open = on_open
        self.on_progress = on_progress
        self.on_drain = on_drain
        self.backoff = backoff
        self.token = token or CancellationToken()
        self.session = ScanSession(total=enumerator.remaining)
        self._force_drained = False

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self):
        if not self.token.cancelled:
            log.info("Cancellation requested with %d sockets in flight", self.pool.connecting_count)
        self.token.cancel()

    def fill(self) -> bool:
        """
        Starts a probe on every idle slot while targets remain.
        Returns False if socket allocation failed; the target that could not
        be started stays at the head of the enumerator.
        """
        for probe in self.pool:
            if not self.enumerator.remaining:
                break
            if not probe.idle:
                continue

            target = self.enumerator.peek()
            try:
                probe.start(target)
            except ResourceExhausted as e:
                log.warning("%s. Try with `-s < %d'. Sleeping %gs.", e, len(self.pool), self.backoff)
                return False

            self.enumerator.next()
            self.session.issued += 1
            if self.on_progress:
                self.on_progress(self.session.open_count, self.session.progress)
        return True

    def poll_all(self):
        for probe in self.pool:
            if not probe.connecting:
                continue
            target = probe.target
            outcome = probe.poll(self.timeout)
            if outcome is Outcome.OPEN:
                self.session.open_count += 1
                if self.on_open:
                    self.on_open(target)
            elif outcome is Outcome.CLOSED:
                self.session.closed_count += 1
            elif outcome is Outcome.TIMED_OUT:
                self.session.timed_out_count += 1

    async def drain(self):
        """Keeps polling until every slot is idle. Bounded by the timeout."""
        if self.pool.connecting_count and self.on_drain:
            self.on_drain(self.pool.connecting_count)
        while self.pool.connecting_count:
            if await self.token.wait(self.interval):
                return
            self.poll_all()

    def force_drain(self):
        """
        Polls each connecting slot once to catch finished handshakes, then
        releases everything without waiting for the timeout.
        """
        if self._force_drained:
            return
        self._force_drained = True
        self.poll_all()
        self.pool.release_all()

    async def _scan(self):
        while self.enumerator.remaining:
            if self.token.cancelled:
                return
            if not self.fill():
                if await self.token.wait(self.backoff):
                    return
            if await self.token.wait(self.interval):
                return
            self.poll_all()
        await self.drain()

    async def run(self) -> ScanSession:
        self.session = ScanSession(total=self.enumerator.remaining)
        log.info("Scanning %d targets with %d sockets", self.session.total, len(self.pool))
        try:
            await self._scan()
        except asyncio.CancelledError:
            self.cancel()
            raise
        finally:
            if self.token.cancelled:
                self.session.cancelled = True
                self.force_drain()
            self.pool.release_all()
            self.session.finished_at = time.monotonic()
        return self.session
