import asyncio
from collections import Counter

from subnet_sweep.channels import Channel, ChannelClosed
from subnet_sweep.collector import ProgressTracker, ResultCollector
from subnet_sweep.feeder import JobFeeder
from subnet_sweep.models import Address, ProbeResult
from subnet_sweep.pool import WorkerPool
from subnet_sweep.targets import iter_addresses
from tests.conftest import FailingProber, StubProber, run


def test_feeder_publishes_in_order_and_closes():
    async def scenario():
        jobs = Channel(300)
        feeder = JobFeeder(iter_addresses("10.0.0", 1, 5))
        published = await feeder.run(jobs)
        return published, jobs, [a.ip async for a in jobs]

    published, jobs, ips = run(scenario())
    assert published == 5
    assert jobs.closed
    assert ips == [f"10.0.0.{i}" for i in range(1, 6)]


def test_feeder_stops_on_cancel_with_full_channel():
    async def scenario():
        jobs = Channel(2)
        cancel = asyncio.Event()
        feeder = JobFeeder(iter_addresses("10.0.0"))
        asyncio.get_running_loop().call_later(0.02, cancel.set)
        published = await asyncio.wait_for(feeder.run(jobs, cancel), timeout=1.0)
        return published, jobs

    published, jobs = run(scenario())
    assert published == 2
    assert jobs.closed


def test_feeder_with_cancel_already_set_publishes_nothing():
    async def scenario():
        jobs = Channel(10)
        cancel = asyncio.Event()
        cancel.set()
        published = await JobFeeder(iter_addresses("10.0.0")).run(jobs, cancel)
        return published, jobs

    published, jobs = run(scenario())
    assert published == 0
    assert jobs.closed


async def run_pipeline(prober, workers, first=1, last=254, queue_size=4, cancel=None):
    jobs = Channel(queue_size, "jobs")
    results = Channel(queue_size, "results")
    pool = WorkerPool(prober, workers, probe_timeout=1.0)
    collector = ResultCollector()
    await asyncio.gather(
        JobFeeder(iter_addresses("10.0.0", first, last)).run(jobs, cancel),
        pool.run(jobs, results, cancel),
        collector.run(results),
    )
    return pool, collector, results


def test_every_address_probed_exactly_once():
    prober = StubProber(alive=["10.0.0.3", "10.0.0.99"])

    pool, collector, results = run(run_pipeline(prober, workers=7))

    counts = Counter(prober.calls)
    assert set(counts) == {f"10.0.0.{i}" for i in range(1, 255)}
    assert set(counts.values()) == {1}
    assert collector.completed == 254
    assert pool.probed == 254
    assert results.closed


def test_pool_closes_results_after_last_worker():
    async def scenario():
        jobs = Channel(1)
        results = Channel(10)
        await jobs.close()
        await WorkerPool(StubProber(), 3, 1.0).run(jobs, results)
        assert results.closed
        try:
            await results.receive()
        except ChannelClosed:
            return True
        return False

    assert run(scenario())


def test_concurrency_does_not_change_the_result():
    alive = [f"10.0.0.{i}" for i in (2, 17, 18, 100, 254)]

    _, single, _ = run(run_pipeline(StubProber(alive=alive, default_delay=0.001), workers=1))
    _, many, _ = run(run_pipeline(StubProber(alive=alive, default_delay=0.001), workers=64))

    assert {r.address.ip for r in single.reachable} == set(alive)
    assert {r.address.ip for r in many.reachable} == set(alive)


def test_prober_errors_become_unreachable_results():
    pool, collector, _ = run(run_pipeline(FailingProber(), workers=4, first=1, last=20))

    assert collector.completed == 20
    assert collector.reachable == []
    assert pool.probed == 20


def test_workers_exit_on_cancel():
    async def scenario():
        cancel = asyncio.Event()
        prober = StubProber(default_delay=0.05)
        asyncio.get_running_loop().call_later(0.12, cancel.set)
        return await asyncio.wait_for(run_pipeline(prober, workers=2, cancel=cancel), timeout=2.0)

    pool, collector, results = run(scenario())
    assert 0 < collector.completed < 254
    assert results.closed


def test_collector_progress_and_alive_hooks():
    progress_calls = []
    alive_calls = []

    async def scenario():
        results = Channel(50)
        for i in range(1, 8):
            address = Address.parse(f"10.0.0.{i}")
            await results.send(ProbeResult(address, reachable=(i % 3 == 0), latency=0.01))
        await results.close()
        collector = ResultCollector(progress=lambda done, alive: progress_calls.append((done, alive)),
                                    progress_every=3, on_alive=alive_calls.append)
        return await collector.run(results)

    reachable = run(scenario())

    assert [r.address.ip for r in reachable] == ["10.0.0.3", "10.0.0.6"]
    assert progress_calls == [(3, 1), (6, 2), (7, 2)]
    assert [r.address.ip for r in alive_calls] == ["10.0.0.3", "10.0.0.6"]


def test_collector_survives_failing_hook():
    def broken(*args):
        raise RuntimeError("terminal went away")

    async def scenario():
        results = Channel(5)
        await results.send(ProbeResult(Address.parse("10.0.0.1"), reachable=True))
        await results.close()
        return await ResultCollector(progress=broken, progress_every=1, on_alive=broken).run(results)

    assert len(run(scenario())) == 1


def test_progress_tracker_prints(capsys):
    tracker = ProgressTracker(total=10, use_color=False)
    tracker(5, 2)
    tracker.on_alive(ProbeResult(Address.parse("10.0.0.4"), reachable=True, latency=0.002, port=22))

    out = capsys.readouterr().out
    assert "Progress: 5/10 (50.0%) | Alive: 2" in out
    assert "Found: 10.0.0.4 (port 22, RTT: 2.0 ms)" in out
    assert tracker.get_stats()["completed"] == 5


def test_progress_tracker_silent_when_disabled(capsys):
    tracker = ProgressTracker(total=10, show_progress=False)
    tracker(5, 2)
    assert capsys.readouterr().out == ""


class CancelOnReturnProber(StubProber):
    """Finishes its probe and fires the cancel signal in the same step"""

    def __init__(self, cancel, **kwargs):
        super().__init__(**kwargs)
        self.cancel = cancel

    async def _probe(self, address, timeout):
        outcome = await super()._probe(address, timeout)
        self.cancel.set()
        return outcome


def test_finished_check_is_published_when_cancel_fires_on_return():
    async def scenario():
        cancel = asyncio.Event()
        prober = CancelOnReturnProber(cancel)
        jobs = Channel(4, "jobs")
        results = Channel(4, "results")
        await jobs.send(Address.parse("10.0.0.1"))
        await jobs.close()
        pool = WorkerPool(prober, 1, probe_timeout=1.0)
        collector = ResultCollector()
        await asyncio.gather(pool.run(jobs, results, cancel), collector.run(results))
        return prober, pool, collector

    prober, pool, collector = run(scenario())

    assert prober.calls == ["10.0.0.1"]
    assert collector.completed == 1
    assert pool.probed == 1
    assert pool.dropped == 0


def test_worker_blocked_on_full_results_exits_on_cancel():
    async def scenario():
        cancel = asyncio.Event()
        jobs = Channel(4, "jobs")
        results = Channel(1, "results")
        pool = WorkerPool(StubProber(), 3, probe_timeout=1.0)
        collector = ResultCollector()

        async def stalled_collector():
            # nobody reads until the scan is cancelled
            await cancel.wait()
            return await collector.run(results)

        asyncio.get_running_loop().call_later(0.05, cancel.set)
        await asyncio.wait_for(asyncio.gather(
            JobFeeder(iter_addresses("10.0.0")).run(jobs, cancel),
            pool.run(jobs, results, cancel),
            stalled_collector(),
        ), timeout=2.0)
        return jobs, results, pool, collector

    jobs, results, pool, collector = run(scenario())

    assert results.closed
    assert pool.dropped >= 1
    assert collector.completed >= 1
    # every address taken from the job channel was published or dropped, never both
    assert collector.completed + pool.dropped == jobs.received
