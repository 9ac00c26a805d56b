"""
Result collection and progress reporting
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from .channels import Channel
from .models import ProbeResult
from .utils import colorize

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
AliveCallback = Callable[[ProbeResult], None]


class ProgressTracker:
    """Prints scan progress lines"""

    def __init__(self, total: int, show_progress: bool = True, use_color: bool = True):
        self.total = total
        self.show_progress = show_progress
        self.use_color = use_color
        self.completed = 0
        self.alive = 0
        self.start_time = time.time()

    def __call__(self, completed: int, alive: int):
        """Progress callback for ResultCollector"""
        self.completed = completed
        self.alive = alive
        if self.show_progress:
            self._display()

    def on_alive(self, result: ProbeResult):
        if not self.show_progress:
            return
        detail = f"port {result.port}, " if result.port is not None else ""
        line = f"Found: {result.address} ({detail}RTT: {result.latency * 1000:.1f} ms)"
        print(colorize(line, "green", self.use_color), flush=True)

    def _display(self):
        stats = self.get_stats()
        print(f"Progress: {self.completed}/{self.total} ({stats['percent']:.1f}%) | "
              f"Alive: {self.alive} | "
              f"Rate: {stats['hosts_per_second']:.0f} hosts/sec", flush=True)

    def get_stats(self) -> Dict:
        """Current statistics"""
        elapsed = time.time() - self.start_time
        hosts_per_sec = self.completed / elapsed if elapsed > 0 else 0

        return {
            "total": self.total,
            "completed": self.completed,
            "alive": self.alive,
            "elapsed_seconds": elapsed,
            "hosts_per_second": hosts_per_sec,
            "percent": (self.completed / self.total * 100) if self.total > 0 else 0
        }


class ResultCollector:
    """
    Single consumer of the results channel

    Owns the reachable set: nothing else reads or writes it until ``run``
    returns, so no locking is involved.
    """

    def __init__(self, progress: Optional[ProgressCallback] = None, progress_every: int = 25,
                 on_alive: Optional[AliveCallback] = None):
        self.progress = progress
        self.progress_every = progress_every
        self.on_alive = on_alive
        self.completed = 0
        self.reachable: List[ProbeResult] = []

    async def run(self, results: Channel) -> List[ProbeResult]:
        """
        Consume results until the channel is closed

        Results arrive in no particular order. The channel is drained even
        after cancellation, so everything already published is kept.

        Returns:
            Reachable results, unordered
        """
        async for result in results:
            self._accept(result)

        if self.progress and self.progress_every > 0 and self.completed % self.progress_every:
            self._notify_progress()

        logger.debug(f"Collector done: {self.completed} results, {len(self.reachable)} reachable")
        return self.reachable

    def _accept(self, result: ProbeResult):
        self.completed += 1
        if result.reachable:
            self.reachable.append(result)
            logger.debug(f"{result.address} is reachable")
            if self.on_alive:
                self._safe_call(self.on_alive, result)

        if self.progress and self.progress_every > 0 and self.completed % self.progress_every == 0:
            self._notify_progress()

    def _notify_progress(self):
        self._safe_call(self.progress, self.completed, len(self.reachable))

    @staticmethod
    def _safe_call(callback, *args):
        # A failing display hook must not lose results
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")
