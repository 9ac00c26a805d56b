"""
Worker pool: a fixed number of tasks turning addresses into probe results
"""

import asyncio
import logging
from typing import List, Optional

from .channels import Cancelled, Channel, ChannelClosed
from .errors import ScanError
from .models import Address, ProbeResult, ProbeOutcome, UNREACHABLE
from .prober import Prober

logger = logging.getLogger(__name__)


class WorkerPool:
    """Bounded pool of probing workers"""

    def __init__(self, prober: Prober, size: int, probe_timeout: float):
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self.prober = prober
        self.size = size
        self.probe_timeout = probe_timeout
        self.probed = 0
        self.dropped = 0

    async def run(self, jobs: Channel, results: Channel,
                  cancel: Optional[asyncio.Event] = None) -> int:
        """
        Start the workers, wait for all of them, then close ``results``

        Workers stop when ``jobs`` is closed and drained or when ``cancel``
        fires. ``results`` is closed exactly once, after the last worker has
        finished, so the collector always sees the end of the stream.

        Returns:
            Number of results published
        """
        try:
            try:
                workers = [asyncio.ensure_future(self._worker(i, jobs, results, cancel))
                           for i in range(self.size)]
            except RuntimeError as e:
                raise ScanError(f"Cannot start workers: {e}") from e

            logger.debug(f"Started {len(workers)} workers")
            try:
                published: List[int] = await asyncio.gather(*workers)
            except BaseException:
                for worker in workers:
                    worker.cancel()
                await asyncio.gather(*workers, return_exceptions=True)
                raise
        finally:
            await results.close()

        if self.dropped:
            logger.debug(f"{self.dropped} addresses dropped by cancellation")
        return sum(published)

    async def _worker(self, worker_id: int, jobs: Channel, results: Channel,
                      cancel: Optional[asyncio.Event]) -> int:
        published = 0
        while True:
            try:
                address = await jobs.receive(cancel)
            except (ChannelClosed, Cancelled):
                break

            if cancel is not None and cancel.is_set():
                # Taken but never probed: dropped, not retried
                self.dropped += 1
                break

            outcome = await self._probe(address, cancel)
            self.probed += 1

            # One result per probed address; only a publish that has to wait is abandoned
            try:
                await results.send(ProbeResult.from_outcome(address, outcome), cancel)
            except Cancelled:
                self.dropped += 1
                break
            published += 1

        logger.debug(f"Worker {worker_id} finished after {published} results")
        return published

    async def _probe(self, address: Address, cancel: Optional[asyncio.Event]) -> ProbeOutcome:
        try:
            return await self.prober.probe(address, self.probe_timeout, cancel)
        except Exception as e:
            logger.debug(f"Probe of {address} failed: {e!r}")
            return UNREACHABLE
