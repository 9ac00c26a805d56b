"""
Helpers: logging setup and console output
"""

import logging
import sys
from typing import Optional, TYPE_CHECKING

from colorama import Fore, Style, init as colorama_init

if TYPE_CHECKING:
    from .config import ScanConfig

COLORS = {
    'red': Fore.RED,
    'green': Fore.GREEN,
    'yellow': Fore.YELLOW,
    'cyan': Fore.CYAN,
    'bold': Style.BRIGHT,
}


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure the root logger

    Args:
        level: Level name (DEBUG, INFO, ...)
        log_file: Also write the log to this file when given
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    date_format = '%Y-%m-%d %H:%M:%S'

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    formatter = logging.Formatter(log_format, date_format)

    # stdout carries the report, log lines go to stderr
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

    logging.getLogger('asyncio').setLevel(logging.WARNING)


def init_colors(enabled: bool = True) -> bool:
    """Enable colours when asked and stdout is a terminal"""
    enabled = enabled and sys.stdout.isatty()
    if enabled:
        colorama_init()
    return enabled


def colorize(text: str, color: str, enabled: bool = True) -> str:
    if not enabled:
        return text
    return f"{COLORS.get(color, '')}{text}{Style.RESET_ALL}"


def print_banner(use_color: bool = True):
    """Banner printed at startup"""
    banner = """
╔══════════════════════════════════════════════════════╗
║                    SUBNET SWEEP                      ║
║          Concurrent IPv4 host liveness scan          ║
╚══════════════════════════════════════════════════════╝
"""
    print(colorize(banner, "cyan", use_color))


def print_settings(config: "ScanConfig", use_color: bool = True):
    """Settings summary printed before the scan starts"""
    print(colorize("=" * 60, "cyan", use_color))
    print(colorize("SCAN SETTINGS:", "bold", use_color))
    print(f"  Range: {config.subnet}.{config.start_index}-{config.end_index} "
          f"({config.host_count} hosts)")
    print(f"  Method: {config.method.value}")
    if config.method.value != "ping":
        print(f"  Ports: {', '.join(str(p) for p in config.ports)}")
    print(f"  Workers: {config.workers}")
    print(f"  Probe timeout: {config.probe_timeout} s")
    print(f"  Scan deadline: {config.scan_deadline} s")
    print(colorize("=" * 60, "cyan", use_color))
    print()
