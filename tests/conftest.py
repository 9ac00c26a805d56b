import asyncio
from typing import Dict, Iterable, List

import pytest

from subnet_sweep.models import Address, ProbeOutcome, UNREACHABLE
from subnet_sweep.prober import Prober


class StubProber(Prober):
    """Deterministic prober: fixed reachable set, optional per-host delay"""

    name = "stub"

    def __init__(self, alive: Iterable[str] = (), delays: Dict[str, float] = None,
                 default_delay: float = 0.0):
        self.alive = set(alive)
        self.delays = delays or {}
        self.default_delay = default_delay
        self.calls: List[str] = []

    async def _probe(self, address: Address, timeout: float) -> ProbeOutcome:
        self.calls.append(address.ip)
        delay = self.delays.get(address.ip, self.default_delay)
        if delay:
            await asyncio.sleep(delay)
        if address.ip in self.alive:
            return ProbeOutcome(reachable=True, latency=delay or 0.001, port=80)
        return UNREACHABLE


class FailingProber(Prober):
    name = "failing"

    async def probe(self, address, timeout, cancel=None):
        raise OSError(24, "Too many open files")


@pytest.fixture
def stub_prober():
    return StubProber


def run(coro):
    return asyncio.run(coro)
