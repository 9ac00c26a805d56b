"""
Command-line entry point
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Dict, Any, List, Optional

from .collector import ProgressTracker
from .config import ConfigLoader, ReportFormat, ScanConfig
from .errors import ConfigurationError, SweepError
from .models import ScanReport, ScanStatus
from .reporter import ReportGenerator
from .scanner import SubnetScanner
from .utils import setup_logging, init_colors, colorize, print_banner, print_settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='subnet-sweep',
        description='Find reachable hosts in an IPv4 /24 subnet',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  subnet-sweep 10.0.0
  subnet-sweep 192.168.1.0/24 --workers 64 --timeout 0.3
  subnet-sweep 172.20.10 --method hybrid --deadline 10 --format json -o scan.json
  subnet-sweep -c subnet_sweep.yaml
        """
    )

    parser.add_argument(
        'subnet', nargs='?',
        help='Subnet prefix: 10.0.0, 10.0.0.0/24 or any host of the /24'
    )
    parser.add_argument('--start', type=int, dest='start_index',
                        help='First host index (default: 1)')
    parser.add_argument('--end', type=int, dest='end_index',
                        help='Last host index (default: 254)')
    parser.add_argument('--workers', '-w', type=int,
                        help='Concurrent workers (default: 8 x CPU count)')
    parser.add_argument('--timeout', '-t', type=float, dest='probe_timeout',
                        help='Per-host probe timeout in seconds (default: 0.5)')
    parser.add_argument('--deadline', '-d', type=float, dest='scan_deadline',
                        help='Overall scan deadline in seconds (default: 30)')
    parser.add_argument('--method', '-m', choices=['tcp', 'ping', 'hybrid'],
                        help='Liveness check (default: tcp)')
    parser.add_argument('--ports', '-p',
                        help='Comma separated TCP ports tried in order')
    parser.add_argument('--config', '-c',
                        help='YAML or JSON configuration file')
    parser.add_argument('--format', '-f', choices=['text', 'json', 'csv'], dest='report_format',
                        help='Report format (default: text)')
    parser.add_argument('--output', '-o', dest='output_file',
                        help='Also save the report to this file')
    parser.add_argument('--progress-every', type=int,
                        help='Progress line every N results, 0 disables (default: 25)')
    parser.add_argument('--details', action='store_true',
                        help='Show the answering port and RTT next to each host')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='Only print the results')
    parser.add_argument('--no-color', action='store_true',
                        help='Disable coloured output')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output (DEBUG level)')
    parser.add_argument('--log-file',
                        help='Also write the log to this file')

    return parser


def collect_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Command-line values that override the configuration file"""
    overrides = {
        'subnet': args.subnet,
        'start_index': args.start_index,
        'end_index': args.end_index,
        'workers': args.workers,
        'probe_timeout': args.probe_timeout,
        'scan_deadline': args.scan_deadline,
        'method': args.method,
        'ports': args.ports,
        'report_format': args.report_format,
        'output_file': args.output_file,
        'progress_every': args.progress_every,
        'log_file': args.log_file,
    }
    if args.verbose:
        overrides['log_level'] = 'DEBUG'
    elif args.quiet:
        overrides['log_level'] = 'WARNING'
    return overrides


async def run_scan(scanner: SubnetScanner) -> ScanReport:
    """Run the scan, turning Ctrl-C into a cooperative cancel"""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, scanner.cancel)
        installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        # No signal handlers on Windows loops or outside the main thread
        installed = False

    try:
        return await scanner.run()
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def print_report(report: ScanReport, config: ScanConfig, details: bool,
                 quiet: bool, use_color: bool) -> str:
    """Print the report to stdout and return the rendered text"""
    generator = ReportGenerator(config.report_format, details=details)
    rendered = generator.generate(report)

    if config.report_format is not ReportFormat.TEXT:
        print(rendered)
        return rendered

    if not quiet:
        print()
    for line in generator.alive_lines(report):
        print(colorize(line, "green", use_color))

    if not quiet:
        if not report.results:
            print(colorize("No alive hosts found", "yellow", use_color))
        print()
        color = "cyan" if report.status is ScanStatus.COMPLETED else "yellow"
        for line in generator.summary_lines(report):
            print(colorize(line, color, use_color))

    return rendered


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = ConfigLoader.load(args.config, collect_overrides(args))
    except ConfigurationError as e:
        parser.print_usage(sys.stderr)
        print(f"{parser.prog}: error: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level, config.log_file)
    use_color = init_colors(not args.no_color)

    # stdout carries only the report for machine-readable formats
    decorate = not args.quiet and config.report_format is ReportFormat.TEXT
    if decorate:
        print_banner(use_color)
        print_settings(config, use_color)

    tracker = ProgressTracker(
        total=config.host_count,
        show_progress=decorate and config.progress_every > 0,
        use_color=use_color
    )
    scanner = SubnetScanner(config, progress=tracker, on_alive=tracker.on_alive)

    try:
        report = asyncio.run(run_scan(scanner))
    except KeyboardInterrupt:
        print("\nScan interrupted by user", file=sys.stderr)
        return 0
    except SweepError as e:
        logger.error(f"Scan failed: {e}")
        return 1

    rendered = print_report(report, config, args.details, args.quiet, use_color)

    if config.output_file:
        ReportGenerator(config.report_format).save_report(rendered, config.output_file)

    return 0
