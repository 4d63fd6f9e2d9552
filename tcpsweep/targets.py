"""
Target enumeration.

Walks an inclusive host range and port range in host-major order
(every port of one address before moving to the next address).
"""
import ipaddress
from dataclasses import dataclass
from typing import Iterator


class ExhaustedError(LookupError):
    """Raised by TargetEnumerator.next() once every target has been handed out."""


@dataclass(frozen=True, order=True)
class Target:
    address: int  # 32-bit, host order
    port: int

    @property
    def host(self) -> str:
        return str(ipaddress.IPv4Address(self.address))

    def __str__(self):
        return f"{self.host}:{self.port}"


class TargetEnumerator:
    """
    Lazy, restartable cursor over (address, port) pairs.
    Nothing is materialised; the position is two integers.
    """

    def __init__(self, start_host: int, end_host: int, start_port: int, end_port: int):
        if start_host > end_host:
            raise ValueError("start_host must not exceed end_host")
        if start_port > end_port:
            raise ValueError("start_port must not exceed end_port")
        self.start_host = start_host
        self.end_host = end_host
        self.start_port = start_port
        self.end_port = end_port
        self.restart()

    @property
    def total(self) -> int:
        return (self.end_host - self.start_host + 1) * (self.end_port - self.start_port + 1)

    @property
    def remaining(self) -> int:
        """Targets not yet consumed. Does not advance the cursor."""
        if self._host > self.end_host:
            return 0
        ports = self.end_port - self.start_port + 1
        hosts_left = self.end_host - self._host
        return hosts_left * ports + (self.end_port - self._port + 1)

    def restart(self):
        self._host = self.start_host
        self._port = self.start_port

    def peek(self) -> Target:
        """Returns the next target without consuming it."""
        if self._host > self.end_host:
            raise ExhaustedError("no targets remaining")
        return Target(self._host, self._port)

    def next(self) -> Target:
        target = self.peek()
        self._port += 1
        if self._port > self.end_port:
            self._port = self.start_port
            self._host += 1
        return target

    def __iter__(self) -> Iterator[Target]:
        # Independent walk; does not disturb the cursor used by the scheduler.
        for address in range(self.start_host, self.end_host + 1):
            for port in range(self.start_port, self.end_port + 1):
                yield Target(address, port)

    def __len__(self):
        return self.total
