"""
Aggregation of collected results and report generation
"""

import csv
import io
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from . import __version__
from .config import ReportFormat
from .models import ProbeResult, ScanReport, ScanStatus

logger = logging.getLogger(__name__)


def aggregate(reachable: Iterable[ProbeResult], status: ScanStatus,
              total: int, probed: int, elapsed: float) -> ScanReport:
    """
    Build the final report from the collected reachable results

    Args:
        reachable: Reachable results in arrival order
        status: Final scan status
        total: Addresses in the scanned range
        probed: Results collected
        elapsed: Wall time of the run, seconds

    Returns:
        Report with results sorted by ascending numeric address
    """
    ordered = tuple(sorted(reachable, key=lambda r: r.address.key))
    return ScanReport(results=ordered, status=status, total=total,
                      probed=probed, elapsed=elapsed)


class ReportGenerator:
    """Renders a ScanReport as text, JSON or CSV"""

    STATUS_LABELS = {
        ScanStatus.COMPLETED: "completed",
        ScanStatus.TIMED_OUT: "deadline reached, partial results",
        ScanStatus.CANCELLED: "cancelled, partial results",
    }

    def __init__(self, report_format: ReportFormat = ReportFormat.TEXT, details: bool = False):
        self.report_format = report_format
        self.details = details

    def generate(self, report: ScanReport) -> str:
        format_methods = {
            ReportFormat.TEXT: self._generate_text,
            ReportFormat.JSON: self._generate_json,
            ReportFormat.CSV: self._generate_csv,
        }

        method = format_methods.get(self.report_format, self._generate_text)
        return method(report)

    def alive_lines(self, report: ScanReport):
        """One ``<address> is alive`` line per reachable host, in order"""
        for result in report.results:
            line = f"{result.address} is alive"
            if self.details:
                extra = [f"RTT: {result.latency * 1000:.1f} ms"]
                if result.port is not None:
                    extra.insert(0, f"port {result.port}")
                line += f" ({', '.join(extra)})"
            yield line

    def summary_lines(self, report: ScanReport):
        status = self.STATUS_LABELS.get(report.status, report.status.value)
        lines = [
            "=" * 60,
            "SCAN SUMMARY:",
            f"  Status: {status}",
            f"  Probed: {report.probed}/{report.total}",
            f"  Alive: {report.count} ({report.alive_percent:.1f}%)",
            f"  Elapsed: {report.elapsed:.2f} s",
            f"  Rate: {report.rate:.0f} hosts/sec",
        ]
        if report.average_latency is not None:
            lines.append(f"  Average RTT: {report.average_latency * 1000:.1f} ms")
        lines.append("=" * 60)
        return lines

    def _generate_text(self, report: ScanReport) -> str:
        lines = list(self.alive_lines(report))
        if not lines:
            lines.append("No alive hosts found")
        lines.append("")
        lines.extend(self.summary_lines(report))
        return "\n".join(lines)

    def _generate_json(self, report: ScanReport) -> str:
        full_report = {
            "metadata": {
                "generated_at": datetime.now().isoformat(),
                "scanner_version": __version__,
            },
            "scan_results": report.to_dict(),
        }
        return json.dumps(full_report, indent=2, ensure_ascii=False)

    def _generate_csv(self, report: ScanReport) -> str:
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(["IP Address", "Status", "Port", "Latency (ms)"])
        for result in report.results:
            writer.writerow([
                result.address.ip,
                "alive",
                result.port if result.port is not None else "",
                f"{result.latency * 1000:.2f}",
            ])
        return output.getvalue()

    def save_report(self, content: str, filepath: str) -> bool:
        """
        Save a rendered report

        Returns:
            True on success
        """
        try:
            path = Path(filepath)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                f.write(content)
            logger.info(f"Report saved to {filepath}")
            return True
        except OSError as e:
            logger.error(f"Cannot save report to {filepath}: {e}")
            return False
