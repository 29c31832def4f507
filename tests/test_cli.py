"""Tests for the CLI entry point."""

import json
import os
import tempfile

from click.testing import CliRunner

from apibench import cli, scheduler
from apibench.cli import main
from apibench.runner import NON_ZERO_EXIT, NOT_FOUND, LoadToolError


FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "..", "fixtures")


def _read(name):
    with open(os.path.join(FIXTURES_DIR, name), "r", encoding="utf-8") as f:
        return f.read()


def _patch_tool(monkeypatch, runner):
    monkeypatch.setattr(cli, "check_tool", lambda binary: "/usr/local/bin/" + binary)
    monkeypatch.setattr(scheduler, "run_load_tool", runner)


def _verbose_runner(url, method, body, headers, config, tool):
    return _read("report-verbose.txt")


class TestRunCommand:
    def test_run_writes_report(self, monkeypatch):
        _patch_tool(monkeypatch, _verbose_runner)
        with tempfile.TemporaryDirectory() as tmpdir:
            out_path = os.path.join(tmpdir, "results", "api-performance.json")
            runner = CliRunner()
            result = runner.invoke(
                main, ["run", "--out", out_path, "--cooldown", "0", "--duration", "5"]
            )
            assert result.exit_code == 0, result.output
            with open(out_path, "r") as f:
                doc = json.load(f)
        assert doc["duration"] == 5
        assert doc["connections"] == 100
        assert len(doc["results"]) == 6
        assert "Benchmark Results:" in result.output
        assert "Throughput comparison:" in result.output
        assert "Modern Hono" in result.output

    def test_run_with_config_file(self, monkeypatch):
        calls = []

        def fake(url, method, body, headers, config, tool):
            calls.append((url, method, headers))
            return _read("report-verbose.txt")

        _patch_tool(monkeypatch, fake)
        config_path = os.path.join(FIXTURES_DIR, "benchmark.json")
        with tempfile.TemporaryDirectory() as tmpdir:
            out_path = os.path.join(tmpdir, "report.json")
            runner = CliRunner()
            result = runner.invoke(
                main,
                ["run", "--config", config_path, "--out", out_path, "--cooldown", "0"],
            )
            assert result.exit_code == 0, result.output
        assert calls == [("https://staging.example.com/health", "GET", {})]

    def test_failed_cell_still_exits_zero(self, monkeypatch):
        def flaky(url, method, body, headers, config, tool):
            if method == "POST" and url.startswith("http://localhost:3001"):
                raise LoadToolError(NON_ZERO_EXIT, "bombardier exited with status 1")
            return _read("report-verbose.txt")

        _patch_tool(monkeypatch, flaky)
        with tempfile.TemporaryDirectory() as tmpdir:
            out_path = os.path.join(tmpdir, "report.json")
            runner = CliRunner()
            result = runner.invoke(main, ["run", "--out", out_path, "--cooldown", "0"])
            assert result.exit_code == 0, result.output
            with open(out_path, "r") as f:
                doc = json.load(f)
        statuses = [r["status"] for r in doc["results"]]
        assert statuses.count("failed") == 1
        assert statuses[-1] == "failed"
        assert "FAILED (non-zero-exit)" in result.output
        assert "1 of 6 cell(s) failed" in result.output

    def test_missing_tool_aborts_before_any_cell(self, monkeypatch):
        calls = []
        monkeypatch.setattr(scheduler, "run_load_tool", lambda *args: calls.append(args))
        runner = CliRunner()
        result = runner.invoke(main, ["run", "--tool", "apibench-no-such-load-tool"])
        assert result.exit_code == 1
        assert "apibench-no-such-load-tool" in result.output
        assert "brew install bombardier" in result.output
        assert calls == []

    def test_tool_removed_mid_run_still_saves_report(self, monkeypatch):
        def vanishing(url, method, body, headers, config, tool):
            if url.startswith("http://localhost:3001"):
                raise LoadToolError(NOT_FOUND, "bombardier could not be started")
            return _read("report-verbose.txt")

        _patch_tool(monkeypatch, vanishing)
        with tempfile.TemporaryDirectory() as tmpdir:
            out_path = os.path.join(tmpdir, "report.json")
            runner = CliRunner()
            result = runner.invoke(main, ["run", "--out", out_path, "--cooldown", "0"])
            assert result.exit_code == 1, result.output
            with open(out_path, "r") as f:
                doc = json.load(f)
        assert doc["completed"] is False
        assert [r["status"] for r in doc["results"]] == ["ok", "ok", "ok", "failed"]
        assert doc["results"][-1]["error"]["kind"] == NOT_FOUND
        assert "brew install bombardier" in result.output

    def test_invalid_override_exits_with_error(self, monkeypatch):
        _patch_tool(monkeypatch, _verbose_runner)
        runner = CliRunner()
        result = runner.invoke(main, ["run", "--concurrency", "0"])
        assert result.exit_code == 1
        assert "concurrency" in result.output

    def test_write_failure_prints_report(self, monkeypatch):
        _patch_tool(monkeypatch, _verbose_runner)
        with tempfile.TemporaryDirectory() as tmpdir:
            blocker = os.path.join(tmpdir, "blocker")
            with open(blocker, "w") as f:
                f.write("")
            runner = CliRunner()
            result = runner.invoke(
                main,
                ["run", "--out", os.path.join(blocker, "report.json"), "--cooldown", "0"],
            )
        assert result.exit_code == 1
        assert "could not write report" in result.output
        assert '"results"' in result.output

    def test_env_var_override(self, monkeypatch):
        seen = []

        def fake(url, method, body, headers, config, tool):
            seen.append(config.concurrency)
            return _read("report-verbose.txt")

        _patch_tool(monkeypatch, fake)
        with tempfile.TemporaryDirectory() as tmpdir:
            runner = CliRunner()
            result = runner.invoke(
                main,
                ["run", "--out", os.path.join(tmpdir, "r.json")],
                env={"APIBENCH_CONCURRENCY": "7", "APIBENCH_COOLDOWN": "0"},
            )
            assert result.exit_code == 0, result.output
        assert set(seen) == {7}


class TestSummarizeCommand:
    def test_summarize_saved_report(self, monkeypatch):
        _patch_tool(monkeypatch, _verbose_runner)
        with tempfile.TemporaryDirectory() as tmpdir:
            out_path = os.path.join(tmpdir, "report.json")
            runner = CliRunner()
            runner.invoke(main, ["run", "--out", out_path, "--cooldown", "0"])
            result = runner.invoke(main, ["summarize", "--report", out_path])
        assert result.exit_code == 0
        assert "Legacy Express" in result.output
        assert "12045" in result.output
        assert "100 connections" in result.output

    def test_summarize_invalid_report(self):
        with tempfile.NamedTemporaryFile(suffix=".json", mode="w", delete=False) as f:
            json.dump([1, 2], f)
        try:
            runner = CliRunner()
            result = runner.invoke(main, ["summarize", "--report", f.name])
            assert result.exit_code == 1
            assert "results" in result.output
        finally:
            os.unlink(f.name)


class TestCheckToolCommand:
    def test_missing_tool(self):
        runner = CliRunner()
        result = runner.invoke(main, ["check-tool", "--tool", "apibench-no-such-load-tool"])
        assert result.exit_code == 1
        assert "not installed" in result.output
