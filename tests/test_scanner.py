"""
Unit tests for the scan scheduler.
Run with: pytest tests/test_scanner.py -v
"""
import asyncio
import logging

import pytest

from tcpsweep.pool import ProbePool
from tcpsweep.scanner import CancellationToken, ScanScheduler, ScanSession
from tcpsweep.targets import Target, TargetEnumerator
from tcpsweep.utils import parse_hosts

from fakes import CONNECTED, PENDING, REFUSED, FakeNetwork

BASE = parse_hosts("10.0.0.1")[0]


def make_scheduler(network, hosts=1, ports=(80, 80), concurrency=1, timeout=2.0, interval=0.01, **kwargs):
    enumerator = TargetEnumerator(BASE, BASE + hosts - 1, ports[0], ports[1])
    pool = ProbePool(concurrency, network.socket)
    opened = []
    scheduler = ScanScheduler(
        enumerator, pool, timeout=timeout, interval=interval,
        on_open=opened.append, **kwargs,
    )
    return scheduler, opened


class TestScanSession:
    """Test session counters"""

    def test_progress(self):
        """Test progress is issued over total"""
        session = ScanSession(total=4)
        assert session.progress == 0
        session.issued = 1
        assert session.progress == 0.25

    def test_resolved(self):
        """Test resolved sums every terminal outcome"""
        session = ScanSession(total=3, open_count=1, closed_count=1, timed_out_count=1)
        assert session.resolved == 3


class TestCancellationToken:
    """Test the cooperative cancel flag"""

    @pytest.mark.asyncio
    async def test_wait_times_out(self):
        """Test wait() sleeps and reports not cancelled"""
        token = CancellationToken()
        assert await token.wait(0.01) is False

    @pytest.mark.asyncio
    async def test_cancel_wakes_waiter(self):
        """Test cancel() interrupts a long wait"""
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, token.cancel)
        assert await asyncio.wait_for(token.wait(30), timeout=1.0) is True

    def test_cancel_repeatable(self):
        """Test cancelling twice is harmless"""
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.cancelled


class TestSingleTarget:
    """Scenario: 10.0.0.1/32, port 80, concurrency 1, timeout 2s"""

    @pytest.mark.asyncio
    async def test_open(self):
        """Test a mocked accept is reported open exactly once"""
        network = FakeNetwork({("10.0.0.1", 80): [PENDING, CONNECTED]})
        scheduler, opened = make_scheduler(network)

        session = await scheduler.run()

        assert session.total == 1
        assert session.issued == 1
        assert session.open_count == 1
        assert opened == [Target(BASE, 80)]
        assert network.open_sockets == []
        assert session.elapsed < 2.0

    @pytest.mark.asyncio
    async def test_closed(self):
        """Test a mocked refusal is counted closed, not open"""
        network = FakeNetwork({("10.0.0.1", 80): [PENDING, REFUSED]})
        scheduler, opened = make_scheduler(network)

        session = await scheduler.run()

        assert session.closed_count == 1
        assert session.open_count == 0
        assert opened == []

    @pytest.mark.asyncio
    async def test_timed_out(self):
        """Test a silent target times out and the scan still ends promptly"""
        network = FakeNetwork()
        scheduler, opened = make_scheduler(network, timeout=0.05)

        session = await asyncio.wait_for(scheduler.run(), timeout=1.0)

        assert session.timed_out_count == 1
        assert opened == []
        assert network.open_sockets == []
        assert scheduler.pool.idle_count == 1


class TestConcurrencyBound:
    """Scenario: 4 addresses, port 1, concurrency 2"""

    @pytest.mark.asyncio
    async def test_never_more_than_pool(self):
        """Test at most 2 attempts in flight and every target resolved"""
        slow = [PENDING, PENDING, PENDING, REFUSED]
        network = FakeNetwork({
            ("10.0.0.1", 1): slow,
            ("10.0.0.2", 1): [PENDING, CONNECTED],
            ("10.0.0.3", 1): slow,
            ("10.0.0.4", 1): [PENDING, PENDING, CONNECTED],
        })
        scheduler, opened = make_scheduler(network, hosts=4, ports=(1, 1), concurrency=2)

        session = await scheduler.run()

        assert network.max_in_flight == 2
        assert session.issued == 4
        assert session.resolved == 4
        assert session.open_count == 2
        assert session.closed_count == 2
        assert sorted(t.host for t in opened) == ["10.0.0.2", "10.0.0.4"]
        assert network.open_sockets == []

    @pytest.mark.asyncio
    async def test_issue_order(self):
        """Test targets are dispatched in enumerator order"""
        network = FakeNetwork(default=(PENDING, REFUSED))
        scheduler, _ = make_scheduler(network, hosts=2, ports=(20, 22), concurrency=3)

        await scheduler.run()

        assert network.issued == [
            ("10.0.0.1", 20), ("10.0.0.1", 21), ("10.0.0.1", 22),
            ("10.0.0.2", 20), ("10.0.0.2", 21), ("10.0.0.2", 22),
        ]

    @pytest.mark.asyncio
    async def test_progress_reported_per_dispatch(self):
        """Test the progress callback fires once per issued target"""
        updates = []
        network = FakeNetwork({("10.0.0.1", 1): [PENDING, CONNECTED]}, default=(PENDING, REFUSED))
        scheduler, _ = make_scheduler(
            network, hosts=4, ports=(1, 1), concurrency=2,
            on_progress=lambda found, fraction: updates.append((found, fraction)),
        )

        await scheduler.run()

        assert [fraction for _, fraction in updates] == [0.25, 0.5, 0.75, 1.0]
        assert updates[-1][0] == 1


class TestResourceExhaustion:
    """Test socket allocation failures back off instead of failing the scan"""

    @pytest.mark.asyncio
    async def test_backoff_and_retry(self, caplog):
        """Test the failed target is retried and nothing is skipped"""
        network = FakeNetwork(default=(PENDING, REFUSED))
        network.fail_creates = 1
        scheduler, _ = make_scheduler(network, hosts=2, ports=(1, 1), concurrency=2, backoff=0.01)

        with caplog.at_level(logging.WARNING, logger="tcpsweep.scanner"):
            session = await scheduler.run()

        assert "Too many open files" in caplog.text
        assert session.issued == 2
        assert session.resolved == 2
        assert network.issued == [("10.0.0.1", 1), ("10.0.0.2", 1)]

    def test_fill_stops_on_failure(self):
        """Test the enumerator is not advanced past a failed start"""
        network = FakeNetwork()
        scheduler, _ = make_scheduler(network, hosts=3, ports=(1, 1), concurrency=3)
        network.fail_creates = 1

        assert scheduler.fill() is False
        assert scheduler.enumerator.remaining == 3
        assert scheduler.pool.connecting_count == 0

        assert scheduler.fill() is True
        assert scheduler.pool.connecting_count == 3
        scheduler.pool.release_all()


class TestCancellation:
    """Scenario: interrupt mid-scan with 5 connecting slots"""

    @pytest.mark.asyncio
    async def test_interrupt_releases_everything(self):
        """Test the forced drain closes all 5 sockets and keeps partial results"""
        network = FakeNetwork({("10.0.0.1", 1): [PENDING, CONNECTED]})
        scheduler, opened = make_scheduler(network, hosts=10, ports=(1, 1), concurrency=5, timeout=30)

        task = asyncio.create_task(scheduler.run())
        for _ in range(200):
            await asyncio.sleep(0.005)
            if scheduler.session.open_count == 1 and scheduler.pool.connecting_count == 5:
                break
        assert scheduler.pool.connecting_count == 5

        scheduler.cancel()
        session = await asyncio.wait_for(task, timeout=1.0)

        assert session.cancelled
        assert session.open_count == 1
        assert opened == [Target(BASE, 1)]
        assert session.issued == 6
        assert scheduler.pool.idle_count == 5
        assert network.open_sockets == []
        assert all(sock.close_calls == 1 for sock in network.sockets)

    @pytest.mark.asyncio
    async def test_cancel_before_run(self):
        """Test a pre-cancelled scan issues nothing"""
        network = FakeNetwork()
        scheduler, _ = make_scheduler(network, hosts=3, ports=(1, 1), concurrency=2)
        scheduler.cancel()

        session = await scheduler.run()

        assert session.cancelled
        assert session.issued == 0
        assert network.sockets == []

    def test_force_drain_catches_completed(self):
        """Test a handshake that finished is still reported during cleanup"""
        network = FakeNetwork({("10.0.0.2", 80): [PENDING, CONNECTED]})
        scheduler, opened = make_scheduler(network, hosts=3, concurrency=3, timeout=30)
        scheduler.fill()

        scheduler.force_drain()

        assert opened == [Target(BASE + 1, 80)]
        assert scheduler.session.open_count == 1
        assert network.open_sockets == []

    def test_force_drain_idempotent(self):
        """Test draining twice does not double-close or re-report"""
        network = FakeNetwork({("10.0.0.1", 80): [PENDING, CONNECTED]})
        scheduler, opened = make_scheduler(network, hosts=2, concurrency=2, timeout=30)
        scheduler.fill()

        scheduler.force_drain()
        scheduler.force_drain()
        scheduler.pool.release_all()

        assert len(opened) == 1
        assert all(sock.close_calls == 1 for sock in network.sockets)

    @pytest.mark.asyncio
    async def test_drain_after_complete_scan_is_noop(self):
        """Test cleanup on a fully idle pool after a finished scan"""
        network = FakeNetwork(default=(PENDING, REFUSED))
        scheduler, _ = make_scheduler(network, hosts=2, concurrency=2)
        await scheduler.run()

        scheduler.force_drain()
        scheduler.force_drain()

        assert all(sock.close_calls == 1 for sock in network.sockets)


class TestSchedulerConfig:
    """Test constructor validation"""

    def test_interval_above_timeout(self):
        """Test the polling interval may not exceed the timeout"""
        with pytest.raises(ValueError):
            make_scheduler(FakeNetwork(), timeout=1.0, interval=1.5)

    def test_drain_callback(self):
        """Test the drain hook reports in-flight sockets"""
        seen = []
        network = FakeNetwork(default=(PENDING, PENDING, REFUSED))
        scheduler, _ = make_scheduler(network, hosts=2, concurrency=2, on_drain=seen.append)

        asyncio.run(scheduler.run())

        assert seen == [2]
