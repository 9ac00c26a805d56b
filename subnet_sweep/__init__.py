"""
Concurrent IPv4 subnet liveness scanner
"""

__version__ = "1.0.0"
__author__ = "IP Scanner Team"

from .config import ScanConfig, ConfigLoader, ProbeMethod, ReportFormat
from .errors import SweepError, ConfigurationError, ScanError
from .models import Address, ProbeResult, ScanReport, ScanStatus
from .prober import Prober, TcpProber, PingProber, HybridProber
from .reporter import ReportGenerator, aggregate
from .scanner import SubnetScanner, scan_subnet

__all__ = [
    'ScanConfig',
    'ConfigLoader',
    'ProbeMethod',
    'ReportFormat',
    'SweepError',
    'ConfigurationError',
    'ScanError',
    'Address',
    'ProbeResult',
    'ScanReport',
    'ScanStatus',
    'Prober',
    'TcpProber',
    'PingProber',
    'HybridProber',
    'ReportGenerator',
    'aggregate',
    'SubnetScanner',
    'scan_subnet',
]
