"""
Scan orchestrator: wires feeder, worker pool and collector into one run
"""

import asyncio
import logging
from typing import Iterable, Iterator, List, Optional, Union

from .channels import Channel
from .collector import AliveCallback, ProgressCallback, ResultCollector
from .config import ScanConfig
from .errors import ScanError
from .feeder import JobFeeder
from .models import Address, ScanReport, ScanStatus
from .pool import WorkerPool
from .prober import Prober, create_prober
from .reporter import aggregate
from .targets import iter_addresses, parse_hosts

logger = logging.getLogger(__name__)

GRACE_EXTRA = 1.0


class SubnetScanner:
    """
    Runs one scan: ``IDLE -> RUNNING -> COMPLETED | TIMED_OUT | CANCELLED``

    The feeder, the worker pool and the collector run concurrently and share
    a single cancel event. The deadline timer and ``cancel()`` both set it;
    every component then winds down at its next wait and the report is built
    from whatever was collected.
    """

    def __init__(self, config: ScanConfig, prober: Optional[Prober] = None,
                 progress: Optional[ProgressCallback] = None,
                 on_alive: Optional[AliveCallback] = None):
        self.config = config
        self.prober = prober or create_prober(config)
        self.progress = progress
        self.on_alive = on_alive
        self.status = ScanStatus.IDLE
        self.grace_period = config.probe_timeout + GRACE_EXTRA
        self._cancel = asyncio.Event()
        self._stop_reason: Optional[ScanStatus] = None

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self):
        """Stop the scan early; the run still returns a (partial) report"""
        self._stop(ScanStatus.CANCELLED)

    async def run(self) -> ScanReport:
        """Scan the configured subnet range"""
        addresses = iter_addresses(self.config.subnet, self.config.start_index,
                                   self.config.end_index)
        return await self._run(addresses, self.config.host_count)

    async def scan_hosts(self, hosts: Iterable[Union[str, Address]]) -> ScanReport:
        """Scan an explicit list of IPv4 hosts instead of the configured range"""
        addresses = parse_hosts(hosts)
        return await self._run(iter(addresses), len(addresses))

    def _stop(self, reason: ScanStatus):
        if self._cancel.is_set() or self.status.is_final:
            return
        self._stop_reason = reason
        self._cancel.set()

    def _on_deadline(self):
        if not self._cancel.is_set():
            logger.info(f"Scan deadline of {self.config.scan_deadline} s reached, "
                        f"winding down")
        self._stop(ScanStatus.TIMED_OUT)

    def _set_status(self, status: ScanStatus):
        logger.debug(f"Scan status: {self.status.value} -> {status.value}")
        self.status = status

    async def _run(self, addresses: Iterator[Address], total: int) -> ScanReport:
        if self.status is not ScanStatus.IDLE:
            raise ScanError(f"Scanner already used (status: {self.status.value})")

        loop = asyncio.get_running_loop()
        started = loop.time()
        self._set_status(ScanStatus.RUNNING)
        logger.info(f"Scanning {total} hosts with {self.config.workers} workers "
                    f"({self.prober.name} probe, timeout {self.config.probe_timeout} s)")

        jobs = Channel(self.config.queue_size, name="jobs")
        results = Channel(self.config.queue_size, name="results")
        feeder = JobFeeder(addresses)
        pool = WorkerPool(self.prober, self.config.workers, self.config.probe_timeout)
        collector = ResultCollector(progress=self.progress,
                                    progress_every=self.config.progress_every,
                                    on_alive=self.on_alive)

        deadline = loop.call_later(self.config.scan_deadline, self._on_deadline)
        tasks = [
            asyncio.ensure_future(feeder.run(jobs, self._cancel)),
            asyncio.ensure_future(pool.run(jobs, results, self._cancel)),
            asyncio.ensure_future(collector.run(results)),
        ]
        try:
            await self._supervise(tasks)
        except BaseException:
            self._set_status(ScanStatus.CANCELLED)
            raise
        finally:
            deadline.cancel()
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        elapsed = loop.time() - started
        if self._stop_reason is not None and collector.completed < total:
            status = self._stop_reason
        else:
            status = ScanStatus.COMPLETED
        self._set_status(status)

        report = aggregate(collector.reachable, status, total=total,
                           probed=collector.completed, elapsed=elapsed)
        logger.info(f"Scan {status.value}: {report.count} alive, "
                    f"{report.probed}/{total} probed in {elapsed:.2f} s "
                    f"({pool.dropped} dropped)")
        return report

    async def _supervise(self, tasks: List[asyncio.Future]):
        """Wait for every task; once cancelled, allow only the grace period"""
        everything = asyncio.gather(*tasks)
        watchdog = asyncio.ensure_future(self._grace_watchdog())
        try:
            await asyncio.wait({everything, watchdog}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watchdog.cancel()
            await asyncio.gather(watchdog, return_exceptions=True)

        if everything.done():
            everything.result()
            return

        logger.warning(f"Scan did not wind down within {self.grace_period:.1f} s, "
                       f"cancelling remaining tasks")
        everything.cancel()
        await asyncio.gather(everything, return_exceptions=True)

    async def _grace_watchdog(self):
        await self._cancel.wait()
        await asyncio.sleep(self.grace_period)


async def scan_subnet(subnet: str, prober: Optional[Prober] = None, **options) -> ScanReport:
    """
    Scan a /24 subnet with default settings

    Args:
        subnet: Prefix such as ``10.0.0``
        prober: Custom prober; built from the config when omitted
        **options: Any other ScanConfig field

    Returns:
        Sorted report of reachable hosts
    """
    config = ScanConfig(subnet=subnet, **options)
    return await SubnetScanner(config, prober=prober).run()
