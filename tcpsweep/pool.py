import socket
import time
from typing import Callable, Iterator, List

from .probe import Probe

MAX_PROBES = 1024


class ProbePool:
    """
    Fixed-capacity arena of Probe slots.
    Plain indexed list; the scheduler is its only driver, so no locking.
    """

    def __init__(self, capacity: int, socket_factory: Callable = socket.socket, clock: Callable[[], float] = time.monotonic):
        if not 1 <= capacity <= MAX_PROBES:
            raise ValueError(f"pool capacity must be within 1-{MAX_PROBES}")
        self.capacity = capacity
        self.slots: List[Probe] = [Probe(socket_factory, clock) for _ in range(capacity)]

    def __iter__(self) -> Iterator[Probe]:
        return iter(self.slots)

    def __len__(self):
        return self.capacity

    def __getitem__(self, index: int) -> Probe:
        return self.slots[index]

    @property
    def idle_count(self) -> int:
        return sum(1 for probe in self.slots if probe.idle)

    @property
    def connecting_count(self) -> int:
        return self.capacity - self.idle_count

    def release_all(self):
        for probe in self.slots:
            probe.release()
