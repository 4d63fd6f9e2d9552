"""
Probe - one slot's non-blocking TCP connect attempt.

State machine:
    IDLE --start()--> CONNECTING
    CONNECTING --poll(): OPEN | CLOSED | TIMED_OUT--> IDLE
    CONNECTING --poll(): PENDING--> CONNECTING

Completion is sampled by re-issuing connect() on the same socket:
EISCONN (or 0) means the handshake finished, EINPROGRESS / EALREADY
means it is still in flight, anything else is a refusal or error.
"""
import contextlib
import errno
import logging
import socket
import time
from enum import Enum
from typing import Callable, Optional

from .targets import Target

log = logging.getLogger(__name__)

PENDING_ERRNOS = {errno.EINPROGRESS, errno.EALREADY, errno.EWOULDBLOCK, errno.EAGAIN}
CONNECTED_ERRNOS = {0, errno.EISCONN}


class ProbeState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"


class Outcome(Enum):
    PENDING = "pending"
    OPEN = "open"
    CLOSED = "closed"
    TIMED_OUT = "timed_out"


class ResourceExhausted(Exception):
    """Socket allocation failed (e.g. EMFILE). The probe stays idle."""


class Probe:
    def __init__(self, socket_factory: Callable = socket.socket, clock: Callable[[], float] = time.monotonic):
        self._socket_factory = socket_factory
        self._clock = clock
        self.sock = None
        self.state = ProbeState.IDLE
        self.target: Optional[Target] = None
        self.started_at: Optional[float] = None

    @property
    def idle(self) -> bool:
        return self.state is ProbeState.IDLE

    @property
    def connecting(self) -> bool:
        return self.state is ProbeState.CONNECTING

    def start(self, target: Target):
        """
        Opens a non-blocking socket and fires the connect without waiting.
        Raises ResourceExhausted if the socket cannot be allocated.
        """
        if not self.idle:
            raise RuntimeError(f"probe already connecting to {self.target}")

        try:
            sock = self._socket_factory(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise ResourceExhausted(f"cannot create socket: {e}") from e

        try:
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            raise ResourceExhausted(f"cannot set non-blocking socket: {e}") from e

        # Result is deliberately ignored here; poll() samples it.
        sock.connect_ex((target.host, target.port))

        self.sock = sock
        self.target = target
        self.started_at = self._clock()
        self.state = ProbeState.CONNECTING

    def poll(self, timeout: float) -> Outcome:
        if not self.connecting:
            raise RuntimeError("poll() on an idle probe")

        if self._clock() - self.started_at >= timeout:
            log.debug("%s timed out", self.target)
            self.release()
            return Outcome.TIMED_OUT

        status = self.sock.connect_ex((self.target.host, self.target.port))
        if status in CONNECTED_ERRNOS:
            self.release()
            return Outcome.OPEN
        if status in PENDING_ERRNOS:
            return Outcome.PENDING

        log.debug("%s closed (%s)", self.target, errno.errorcode.get(status, status))
        self.release()
        return Outcome.CLOSED

    def release(self):
        """Shuts down and closes the socket. No-op on an idle probe."""
        if self.sock is not None:
            # ENOTCONN is expected for attempts that never completed.
            with contextlib.suppress(OSError):
                self.sock.shutdown(socket.SHUT_RDWR)
            self.sock.close()
        self.sock = None
        self.target = None
        self.started_at = None
        self.state = ProbeState.IDLE
