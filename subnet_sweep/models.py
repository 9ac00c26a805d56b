"""
Data models: addresses, probe results and the final report
"""

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, Tuple


class ScanStatus(Enum):
    """Lifecycle of a single scan"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_final(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.TIMED_OUT, ScanStatus.CANCELLED)


@dataclass(frozen=True, order=True)
class Address:
    """
    One IPv4 host address

    Ordering and equality go through ``key``, the 32-bit value of the address,
    so sorting a list of addresses is always numeric.
    """
    key: int
    ip: str = field(compare=False)

    @classmethod
    def parse(cls, value: str) -> "Address":
        ip = ipaddress.IPv4Address(value)
        return cls(key=int(ip), ip=str(ip))

    @property
    def last_octet(self) -> int:
        return self.key & 0xFF

    def __str__(self) -> str:
        return self.ip


@dataclass(frozen=True)
class ProbeOutcome:
    """What a prober reports for one address"""
    reachable: bool
    latency: float = 0.0
    port: Optional[int] = None


UNREACHABLE = ProbeOutcome(reachable=False)


@dataclass(frozen=True)
class ProbeResult:
    """Result of probing one address, produced once by one worker"""
    address: Address
    reachable: bool
    latency: float = 0.0
    port: Optional[int] = None

    @classmethod
    def from_outcome(cls, address: Address, outcome: ProbeOutcome) -> "ProbeResult":
        if not outcome.reachable:
            return cls(address=address, reachable=False)
        return cls(address=address, reachable=True,
                   latency=outcome.latency, port=outcome.port)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address.ip,
            "reachable": self.reachable,
            "latency_ms": round(self.latency * 1000, 2),
            "port": self.port,
        }


@dataclass(frozen=True)
class ScanReport:
    """Sorted reachable hosts plus run statistics"""
    results: Tuple[ProbeResult, ...]
    status: ScanStatus
    total: int
    probed: int
    elapsed: float

    @property
    def addresses(self) -> Tuple[Address, ...]:
        return tuple(r.address for r in self.results)

    @property
    def count(self) -> int:
        return len(self.results)

    @property
    def rate(self) -> float:
        """Probed hosts per second"""
        if self.elapsed <= 0:
            return 0.0
        return self.probed / self.elapsed

    @property
    def alive_percent(self) -> float:
        if self.probed == 0:
            return 0.0
        return self.count / self.probed * 100

    @property
    def is_partial(self) -> bool:
        return self.status is not ScanStatus.COMPLETED

    @property
    def average_latency(self) -> Optional[float]:
        latencies = [r.latency for r in self.results if r.latency > 0]
        if not latencies:
            return None
        return sum(latencies) / len(latencies)

    def to_dict(self) -> Dict[str, Any]:
        average = self.average_latency
        return {
            "summary": {
                "status": self.status.value,
                "total": self.total,
                "probed": self.probed,
                "alive": self.count,
                "alive_percent": round(self.alive_percent, 2),
                "elapsed_seconds": round(self.elapsed, 3),
                "rate_per_second": round(self.rate, 1),
                "avg_latency_ms": round(average * 1000, 2) if average is not None else None,
            },
            "alive_hosts": [r.to_dict() for r in self.results],
        }
