"""
Exceptions raised by subnet_sweep
"""


class SweepError(Exception):
    """Base class for all scanner errors"""


class ConfigurationError(SweepError, ValueError):
    """Invalid scan settings, raised before any probing starts"""


class ScanError(SweepError):
    """The scan could not be orchestrated (bad state, workers failed to start)"""
