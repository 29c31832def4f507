"""Tests for report persistence and console summaries."""

import json
import os
import tempfile

import pytest

from apibench.models import (
    CellError,
    Endpoint,
    Metrics,
    Report,
    RunConfig,
    RunResult,
    Scenario,
)
from apibench.report import (
    SUMMARY_COLUMNS,
    WRITE_FAILED,
    ReportFormatError,
    ReportWriteError,
    compare_endpoints,
    format_table,
    load_report,
    report_to_dict,
    summarize,
    write_report,
)


LEGACY = Endpoint(name="Legacy Express", base_url="http://localhost:3000")
MODERN = Endpoint(name="Modern Hono", base_url="http://localhost:3001")
GET_ROOT = Scenario(name="GET /", method="GET", path="/")
POST_ITEMS = Scenario(
    name="POST /api/items",
    method="POST",
    path="/api/items",
    body='{"name": "Test Item"}',
    headers={"X-Bench-Run": "nightly"},
)


def _metrics(rps, req_2xx=1000, req_4xx=0, approximate=()):
    return Metrics(
        requests=req_2xx + req_4xx,
        rps=rps,
        req_2xx=req_2xx,
        req_4xx=req_4xx,
        bytes_read=123456,
        bytes_written=65432,
        elapsed_seconds=30.01,
        latency_mean=8.29,
        latency_p50=7.81,
        latency_p95=12.4,
        latency_p99=19.02,
        approximate=approximate,
        grammar="verbose",
    )


def _report():
    return Report(
        timestamp="2026-10-18T12:00:00Z",
        config=RunConfig(duration_seconds=30, concurrency=100),
        results=[
            RunResult(LEGACY, GET_ROOT, metrics=_metrics(10000.0)),
            RunResult(LEGACY, POST_ITEMS, metrics=_metrics(8000.0, req_2xx=900, req_4xx=100)),
            RunResult(MODERN, GET_ROOT, metrics=_metrics(25000.0, approximate=("latency_p99",))),
            RunResult(
                MODERN,
                POST_ITEMS,
                error=CellError("non-zero-exit", "bombardier exited with status 1", "boom"),
            ),
        ],
        cooldown_seconds=2.0,
        tool="bombardier",
    )


class TestWriteAndLoad:
    def test_round_trip_is_lossless(self):
        report = _report()
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "report.json")
            write_report(report, path)
            loaded = load_report(path)
        assert loaded == report

    def test_document_shape(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "report.json")
            write_report(_report(), path)
            with open(path, "r") as f:
                doc = json.load(f)
        assert doc["timestamp"] == "2026-10-18T12:00:00Z"
        assert doc["duration"] == 30
        assert doc["connections"] == 100
        assert doc["completed"] is True
        first = doc["results"][0]
        assert first["endpoint"]["name"] == "Legacy Express"
        assert first["scenario"]["name"] == "GET /"
        assert first["status"] == "ok"
        assert first["rps"] == 10000.0
        assert first["latency_p99"] == 19.02
        assert "success_rate" not in first
        failed = doc["results"][3]
        assert failed["status"] == "failed"
        assert failed["error"]["kind"] == "non-zero-exit"
        assert "rps" not in failed

    def test_creates_parent_directories(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "benchmark", "results", "api-performance.json")
            write_report(_report(), path)
            assert os.path.isfile(path)
            assert not os.path.exists(path + ".tmp")

    def test_overwrites_existing_report(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "report.json")
            with open(path, "w") as f:
                f.write("stale")
            write_report(_report(), path)
            assert load_report(path).timestamp == "2026-10-18T12:00:00Z"

    def test_write_failure_raises(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        path = str(blocker / "report.json")
        with pytest.raises(ReportWriteError) as excinfo:
            write_report(_report(), path)
        assert excinfo.value.kind == WRITE_FAILED
        assert excinfo.value.path == path

    def test_load_missing_file(self):
        with pytest.raises(ReportFormatError, match="not found"):
            load_report("/nonexistent/report.json")

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "report.json"
        path.write_text("{bad")
        with pytest.raises(ReportFormatError, match="parse"):
            load_report(str(path))

    def test_load_wrong_shape(self, tmp_path):
        path = tmp_path / "report.json"
        path.write_text(json.dumps({"results": [{"endpoint": "A"}], "timestamp": "x",
                                    "duration": 1, "connections": 1}))
        with pytest.raises(ReportFormatError, match="malformed"):
            load_report(str(path))

    def test_interrupted_flag_persisted(self):
        report = _report()
        interrupted = Report(
            timestamp=report.timestamp,
            config=report.config,
            results=report.results[:1],
            completed=False,
        )
        assert report_to_dict(interrupted)["completed"] is False


class TestSummarize:
    def test_row_per_result(self):
        rows = summarize(_report())
        assert len(rows) == 4
        assert list(rows[0].keys()) == SUMMARY_COLUMNS
        assert rows[0]["Req/s"] == "10000"
        assert rows[0]["Mean Latency (ms)"] == "8.29"
        assert rows[0]["P99 Latency (ms)"] == "19.02"
        assert rows[0]["Success Rate %"] == "100.00"

    def test_success_rate(self):
        rows = summarize(_report())
        assert rows[1]["Success Rate %"] == "90.00"

    def test_success_rate_zero_requests(self):
        report = Report(
            timestamp="t",
            config=RunConfig(1, 1),
            results=[RunResult(LEGACY, GET_ROOT, metrics=Metrics(rps=0.0))],
        )
        assert summarize(report)[0]["Success Rate %"] == "0.00"

    def test_approximate_values_marked(self):
        rows = summarize(_report())
        assert rows[2]["P99 Latency (ms)"] == "~19.02"
        assert rows[2]["Mean Latency (ms)"] == "8.29"

    def test_failed_cell_visible(self):
        rows = summarize(_report())
        assert rows[3]["Req/s"] == "FAILED (non-zero-exit)"
        assert rows[3]["Success Rate %"] == "-"


class TestCompareEndpoints:
    def test_relative_throughput(self):
        rows = compare_endpoints(_report())
        root = [r for r in rows if r["Scenario"] == "GET /"]
        assert root[0]["vs Legacy Express"] == "1.00x"
        assert root[1]["Endpoint"] == "Modern Hono"
        assert root[1]["vs Legacy Express"] == "2.50x"

    def test_failed_cell_has_no_ratio(self):
        rows = compare_endpoints(_report())
        post = [r for r in rows if r["Scenario"] == "POST /api/items"]
        assert post[1]["vs Legacy Express"] == "n/a"

    def test_single_endpoint(self):
        report = Report(
            timestamp="t",
            config=RunConfig(1, 1),
            results=[RunResult(LEGACY, GET_ROOT, metrics=_metrics(1.0))],
        )
        assert compare_endpoints(report) == []


class TestFormatTable:
    def test_renders_every_column_and_row(self):
        text = format_table(summarize(_report()), SUMMARY_COLUMNS)
        for column in ("Endpoint", "Scenario", "Req/s", "Success Rate %"):
            assert column in text
        assert "Legacy Express" in text
        assert "FAILED (non-zero-exit)" in text
        assert "~19.02" in text
        assert "\x1b[" not in text

    def test_cells_are_not_markup(self):
        rows = [{"Endpoint": "[bold]edge[/bold]", "Scenario": "GET /"}]
        text = format_table(rows)
        assert "[bold]edge[/bold]" in text

    def test_title(self):
        text = format_table(compare_endpoints(_report()), title="Throughput comparison")
        assert "Throughput comparison" in text
        assert "2.50x" in text

    def test_empty(self):
        assert format_table([]) == "No results to display."
