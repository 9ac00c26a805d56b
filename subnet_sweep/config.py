"""
Scanner configuration and its loading from YAML/JSON files
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict, fields, replace as dc_replace
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import yaml

from .errors import ConfigurationError
from .targets import normalize_subnet, FIRST_HOST, LAST_HOST

logger = logging.getLogger(__name__)

DEFAULT_PORTS: Tuple[int, ...] = (22, 80, 443, 135, 139, 445, 993, 995, 8080, 8443)


def default_workers() -> int:
    """Default worker count: a multiple of the available CPUs"""
    return (os.cpu_count() or 1) * 8


class ProbeMethod(Enum):
    """How liveness is checked"""
    TCP = "tcp"
    PING = "ping"
    HYBRID = "hybrid"


class ReportFormat(Enum):
    """Report format"""
    TEXT = "text"
    JSON = "json"
    CSV = "csv"


@dataclass(frozen=True)
class ScanConfig:
    """Validated, read-only settings of one scan"""

    # Target
    subnet: str
    start_index: int = FIRST_HOST
    end_index: int = LAST_HOST

    # Timing
    probe_timeout: float = 0.5
    scan_deadline: float = 30.0

    # Concurrency
    workers: int = field(default_factory=default_workers)
    queue_size: Optional[int] = None

    # Probing
    method: ProbeMethod = ProbeMethod.TCP
    ports: Tuple[int, ...] = DEFAULT_PORTS

    # Output
    progress_every: int = 25
    report_format: ReportFormat = ReportFormat.TEXT
    output_file: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        # Frozen dataclass: normalized values are written through object.__setattr__
        object.__setattr__(self, "subnet", normalize_subnet(self.subnet))
        object.__setattr__(self, "method", _coerce_enum(ProbeMethod, self.method, "method"))
        object.__setattr__(self, "report_format",
                           _coerce_enum(ReportFormat, self.report_format, "report_format"))
        object.__setattr__(self, "ports", _coerce_ports(self.ports))
        self._validate_values()
        if self.queue_size is None:
            object.__setattr__(self, "queue_size", max(1, self.workers * 2))

    def _validate_values(self):
        """Check every field, raising ConfigurationError on the first bad one"""
        for name in ("start_index", "end_index", "workers", "progress_every"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")

        if not FIRST_HOST <= self.start_index <= LAST_HOST:
            raise ConfigurationError(
                f"start_index must be within {FIRST_HOST}..{LAST_HOST}, got {self.start_index}")
        if not FIRST_HOST <= self.end_index <= LAST_HOST:
            raise ConfigurationError(
                f"end_index must be within {FIRST_HOST}..{LAST_HOST}, got {self.end_index}")
        if self.start_index > self.end_index:
            raise ConfigurationError(
                f"start_index ({self.start_index}) must not exceed end_index ({self.end_index})")
        if self.workers < 1:
            raise ConfigurationError("workers must be at least 1")
        if self.queue_size is not None and (isinstance(self.queue_size, bool)
                                            or not isinstance(self.queue_size, int)
                                            or self.queue_size < 1):
            raise ConfigurationError("queue_size must be a positive integer")
        if not _is_positive_number(self.probe_timeout):
            raise ConfigurationError("probe_timeout must be a positive number")
        if not _is_positive_number(self.scan_deadline):
            raise ConfigurationError("scan_deadline must be a positive number")
        if self.progress_every < 0:
            raise ConfigurationError("progress_every must not be negative")
        if self.method in (ProbeMethod.TCP, ProbeMethod.HYBRID) and not self.ports:
            raise ConfigurationError(f"method '{self.method.value}' needs at least one port")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if str(self.log_level).upper() not in valid_log_levels:
            raise ConfigurationError(f"log_level must be one of: {valid_log_levels}")

    @property
    def host_count(self) -> int:
        """Number of addresses in the configured range"""
        return self.end_index - self.start_index + 1

    def replace(self, **changes) -> "ScanConfig":
        """Copy with some fields changed, validated again"""
        if "workers" in changes and "queue_size" not in changes:
            # queue_size follows the worker count unless given explicitly
            changes["queue_size"] = None
        return dc_replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form, enums as their values"""
        data = asdict(self)
        data["method"] = self.method.value
        data["report_format"] = self.report_format.value
        data["ports"] = list(self.ports)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanConfig":
        """Build from plain data, rejecting unknown keys"""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")
        if "subnet" not in data or data["subnet"] in (None, ""):
            raise ConfigurationError("subnet is required")
        try:
            return cls(**data)
        except TypeError as e:
            raise ConfigurationError(str(e)) from e


def _is_positive_number(value: Any) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float)) and value > 0


def _coerce_enum(enum_cls, value, name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(f"{name} must be one of: {choices}, got {value!r}") from None


def _coerce_ports(ports) -> Tuple[int, ...]:
    if isinstance(ports, str):
        ports = [p for p in ports.split(",") if p.strip()]
    result = []
    for port in ports:
        try:
            number = int(port)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid port: {port!r}") from None
        if not 1 <= number <= 65535:
            raise ConfigurationError(f"Port out of range: {number}")
        if number not in result:
            result.append(number)
    return tuple(result)


class ConfigLoader:
    """Merges defaults, an optional config file and command-line overrides"""

    CONFIG_FILES = [
        "subnet_sweep.yaml",
        "subnet_sweep.yml",
        "subnet_sweep.json",
        "config/subnet_sweep.yaml",
    ]

    DEFAULT_CONFIG = {
        "start_index": FIRST_HOST,
        "end_index": LAST_HOST,
        "probe_timeout": 0.5,
        "scan_deadline": 30.0,
        "method": "tcp",
        "ports": list(DEFAULT_PORTS),
        "progress_every": 25,
        "report_format": "text",
        "log_level": "INFO",
    }

    @classmethod
    def load(cls, config_path: Optional[str] = None,
             overrides: Optional[Dict[str, Any]] = None) -> ScanConfig:
        """
        Load the configuration

        Args:
            config_path: Explicit config file; when omitted the search list is tried
            overrides: Values that win over the file (None values are ignored)

        Returns:
            Validated configuration
        """
        config_dict = cls.DEFAULT_CONFIG.copy()

        found_config = cls._find_config_file(config_path)
        if found_config:
            config_dict.update(cls._load_config_file(found_config))
            logger.info(f"Loaded configuration from {found_config}")
        else:
            logger.debug("No configuration file found, using defaults")

        if overrides:
            config_dict.update({k: v for k, v in overrides.items() if v is not None})

        return ScanConfig.from_dict(config_dict)

    @classmethod
    def _find_config_file(cls, config_path: Optional[str] = None) -> Optional[Path]:
        """Find the configuration file"""
        if config_path:
            path = Path(config_path)
            if not path.is_file():
                raise ConfigurationError(f"Configuration file not found: {config_path}")
            return path

        for config_file in cls.CONFIG_FILES:
            path = Path(config_file)
            if path.is_file():
                return path

        return None

    @staticmethod
    def _load_config_file(filepath: Path) -> Dict[str, Any]:
        """Read a YAML or JSON mapping"""
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                if filepath.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read configuration file {filepath}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {filepath} must contain a mapping")
        return data
