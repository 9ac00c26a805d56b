import csv
import io
import json

from subnet_sweep.config import ReportFormat
from subnet_sweep.models import Address, ProbeResult, ScanStatus
from subnet_sweep.reporter import ReportGenerator, aggregate


def alive(ip, latency=0.004, port=443):
    return ProbeResult(Address.parse(ip), reachable=True, latency=latency, port=port)


def sample_report(status=ScanStatus.COMPLETED):
    results = [alive("10.0.0.200"), alive("10.0.0.5", port=None), alive("10.0.0.1", port=22)]
    return aggregate(results, status, total=254, probed=254, elapsed=2.0)


def test_aggregate_sorts_numerically():
    report = sample_report()
    assert [a.ip for a in report.addresses] == ["10.0.0.1", "10.0.0.5", "10.0.0.200"]


def test_aggregate_is_idempotent():
    report = sample_report()
    again = aggregate(report.results, report.status, report.total, report.probed, report.elapsed)
    assert again == report


def test_report_statistics():
    report = sample_report()
    assert report.count == 3
    assert report.rate == 127.0
    assert round(report.alive_percent, 2) == 1.18
    assert not report.is_partial
    assert sample_report(ScanStatus.TIMED_OUT).is_partial


def test_empty_report():
    report = aggregate([], ScanStatus.COMPLETED, total=254, probed=254, elapsed=0.0)
    assert report.addresses == ()
    assert report.rate == 0.0
    assert report.average_latency is None
    assert "No alive hosts found" in ReportGenerator().generate(report)


def test_text_report_lines():
    text = ReportGenerator().generate(sample_report())
    lines = text.splitlines()

    assert lines[:3] == ["10.0.0.1 is alive", "10.0.0.5 is alive", "10.0.0.200 is alive"]
    assert "  Alive: 3 (1.2%)" in lines
    assert "  Status: completed" in lines


def test_text_report_details():
    lines = list(ReportGenerator(details=True).alive_lines(sample_report()))
    assert lines[0] == "10.0.0.1 is alive (port 22, RTT: 4.0 ms)"
    assert lines[1] == "10.0.0.5 is alive (RTT: 4.0 ms)"


def test_partial_status_label():
    text = ReportGenerator().generate(sample_report(ScanStatus.TIMED_OUT))
    assert "deadline reached, partial results" in text


def test_json_report():
    data = json.loads(ReportGenerator(ReportFormat.JSON).generate(sample_report()))

    summary = data["scan_results"]["summary"]
    assert summary["alive"] == 3
    assert summary["status"] == "completed"
    assert [h["address"] for h in data["scan_results"]["alive_hosts"]] == [
        "10.0.0.1", "10.0.0.5", "10.0.0.200"]
    assert data["metadata"]["scanner_version"]


def test_csv_report():
    rows = list(csv.reader(io.StringIO(ReportGenerator(ReportFormat.CSV).generate(sample_report()))))
    assert rows[0] == ["IP Address", "Status", "Port", "Latency (ms)"]
    assert rows[1] == ["10.0.0.1", "alive", "22", "4.00"]
    assert rows[2][2] == ""


def test_save_report(tmp_path):
    target = tmp_path / "reports" / "scan.txt"
    assert ReportGenerator().save_report("10.0.0.1 is alive\n", str(target))
    assert target.read_text(encoding="utf-8") == "10.0.0.1 is alive\n"


def test_save_report_failure(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    assert not ReportGenerator().save_report("data", str(blocker / "scan.txt"))
