"""
Liveness probers

A prober answers one question for one address: did anything respond within
the time budget? Failing to get an answer is a normal outcome, never an
exception.
"""

import asyncio
import contextlib
import logging
import math
import platform
import re
from typing import List, Optional, Sequence

from .channels import Cancelled, until_cancelled
from .config import DEFAULT_PORTS, ProbeMethod, ScanConfig
from .models import Address, ProbeOutcome, UNREACHABLE

logger = logging.getLogger(__name__)


class Prober:
    """Base class: subclasses implement ``_probe``"""

    name = "base"

    async def probe(self, address: Address, timeout: float,
                    cancel: Optional[asyncio.Event] = None) -> ProbeOutcome:
        """
        Probe one address

        Args:
            address: Host to check
            timeout: Total time budget for every attempt together, seconds
            cancel: Shared cancel signal; when it fires the probe is abandoned

        Returns:
            Outcome; unreachable with zero latency on failure or cancellation
        """
        try:
            return await until_cancelled(self._probe(address, timeout), cancel)
        except Cancelled:
            logger.debug(f"Probe of {address} abandoned: scan cancelled")
            return UNREACHABLE

    async def _probe(self, address: Address, timeout: float) -> ProbeOutcome:
        raise NotImplementedError


class TcpProber(Prober):
    """Liveness by TCP handshake, trying ports in order until one answers"""

    name = "tcp"

    def __init__(self, ports: Sequence[int] = DEFAULT_PORTS, refused_is_alive: bool = False):
        if not ports:
            raise ValueError("TcpProber needs at least one port")
        self.ports = tuple(ports)
        # A RST still proves a host is up; off by default, only handshakes count
        self.refused_is_alive = refused_is_alive

    async def _probe(self, address: Address, timeout: float) -> ProbeOutcome:
        loop = asyncio.get_running_loop()
        start = loop.time()
        deadline = start + timeout

        for i, port in enumerate(self.ports):
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            budget = remaining / (len(self.ports) - i)
            if await self._connect(address.ip, port, budget):
                return ProbeOutcome(reachable=True, latency=loop.time() - start, port=port)

        return UNREACHABLE

    async def _connect(self, ip: str, port: int, budget: float) -> bool:
        writer = None
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(ip, port), timeout=budget)
            return True
        except ConnectionRefusedError:
            return self.refused_is_alive
        except (asyncio.TimeoutError, OSError) as e:
            # Covers filtered ports and local resource exhaustion (EMFILE and the like)
            logger.debug(f"{ip}:{port} no answer: {e!r}")
            return False
        finally:
            if writer is not None:
                writer.close()
                with contextlib.suppress(OSError):
                    await writer.wait_closed()


class PingProber(Prober):
    """Liveness by one ICMP echo through the system ``ping`` command"""

    name = "ping"

    LATENCY_PATTERNS = [
        r'time[=<](\d+\.?\d*)\s*ms',
        r'(\d+\.?\d*)\s*ms',
    ]

    def __init__(self, system: Optional[str] = None):
        self.system = (system or platform.system()).lower()

    def build_command(self, ip: str, timeout: float) -> List[str]:
        """Ping command for the current OS"""
        if self.system == 'windows':
            return ['ping', '-n', '1', '-w', str(max(1, int(timeout * 1000))), ip]
        if self.system == 'darwin':
            # BSD ping: -W is in milliseconds
            return ['ping', '-c', '1', '-W', str(max(1, int(timeout * 1000))), ip]
        return ['ping', '-c', '1', '-W', str(max(1, math.ceil(timeout))), ip]

    def extract_latency(self, output: str) -> Optional[float]:
        """Round-trip time from ping output, in seconds"""
        for pattern in self.LATENCY_PATTERNS:
            matches = re.findall(pattern, output, re.IGNORECASE)
            if matches:
                try:
                    return float(matches[-1]) / 1000
                except ValueError:
                    continue
        return None

    async def _probe(self, address: Address, timeout: float) -> ProbeOutcome:
        loop = asyncio.get_running_loop()
        start = loop.time()

        try:
            process = await asyncio.create_subprocess_exec(
                *self.build_command(address.ip, timeout),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL
            )
        except OSError as e:
            logger.debug(f"Cannot run ping for {address}: {e}")
            return UNREACHABLE

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            return UNREACHABLE
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                with contextlib.suppress(OSError):
                    await process.wait()

        if process.returncode != 0:
            return UNREACHABLE

        latency = self.extract_latency(stdout.decode('utf-8', errors='ignore'))
        if latency is None:
            latency = loop.time() - start
        return ProbeOutcome(reachable=True, latency=latency)


class HybridProber(Prober):
    """Primary check first, fallback check with whatever budget is left"""

    name = "hybrid"

    def __init__(self, primary: Optional[Prober] = None, fallback: Optional[Prober] = None,
                 primary_share: float = 0.5):
        if not 0 < primary_share < 1:
            raise ValueError("primary_share must be between 0 and 1")
        self.primary = primary or PingProber()
        self.fallback = fallback or TcpProber()
        self.primary_share = primary_share

    async def _probe(self, address: Address, timeout: float) -> ProbeOutcome:
        loop = asyncio.get_running_loop()
        start = loop.time()

        outcome = await self.primary.probe(address, timeout * self.primary_share)
        if outcome.reachable:
            return outcome

        remaining = timeout - (loop.time() - start)
        if remaining <= 0:
            return UNREACHABLE

        outcome = await self.fallback.probe(address, remaining)
        if outcome.reachable:
            return ProbeOutcome(reachable=True, latency=loop.time() - start, port=outcome.port)
        return UNREACHABLE


def create_prober(config: ScanConfig) -> Prober:
    """Prober matching the configured method"""
    if config.method is ProbeMethod.PING:
        return PingProber()
    if config.method is ProbeMethod.HYBRID:
        return HybridProber(fallback=TcpProber(config.ports))
    return TcpProber(config.ports)
