"""Persist benchmark reports as JSON and render console summaries."""

import io
import json
import os
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from apibench.models import (
    METRIC_FIELDS,
    CellError,
    Endpoint,
    Metrics,
    Report,
    RunConfig,
    RunResult,
    Scenario,
)

WRITE_FAILED = "write-failed"
TABLE_WIDTH = 160

SUMMARY_COLUMNS = [
    "Endpoint",
    "Scenario",
    "Req/s",
    "Mean Latency (ms)",
    "P99 Latency (ms)",
    "Success Rate %",
]

_TEXT_COLUMNS = frozenset(["Endpoint", "Scenario"])


class ReportWriteError(Exception):
    """Raised when the report artifact cannot be written."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"could not write report to {path}: {reason}")
        self.kind = WRITE_FAILED
        self.path = path


class ReportFormatError(Exception):
    """Raised when a saved report cannot be read back."""


# -- serialization ------------------------------------------------------------


def report_to_dict(report: Report) -> Dict[str, Any]:
    return {
        "timestamp": report.timestamp,
        "duration": report.config.duration_seconds,
        "connections": report.config.concurrency,
        "cooldown": report.cooldown_seconds,
        "tool": report.tool,
        "completed": report.completed,
        "results": [_result_to_dict(r) for r in report.results],
    }


def report_to_json(report: Report) -> str:
    return json.dumps(report_to_dict(report), indent=2)


def _result_to_dict(result: RunResult) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "endpoint": {
            "name": result.endpoint.name,
            "base_url": result.endpoint.base_url,
        },
        "scenario": {
            "name": result.scenario.name,
            "method": result.scenario.method,
            "path": result.scenario.path,
            "body": result.scenario.body,
            "headers": dict(result.scenario.headers),
        },
    }
    if result.ok:
        metrics = result.metrics
        entry["status"] = "ok"
        entry["grammar"] = metrics.grammar
        for name in METRIC_FIELDS:
            entry[name] = getattr(metrics, name)
        entry["approximate"] = list(metrics.approximate)
    else:
        error = result.error or CellError("unknown", "no metrics recorded")
        entry["status"] = "failed"
        entry["error"] = {
            "kind": error.kind,
            "message": error.message,
            "output": error.output,
        }
    return entry


def write_report(report: Report, path: str) -> None:
    """Write the report as a JSON document.

    Parent directories are created as needed. The document is written to a
    temporary sibling file and renamed over ``path``, so a failed write never
    leaves a truncated artifact behind.

    Args:
        report: The report to persist.
        path: Destination file path.

    Raises:
        ReportWriteError: If any part of the write fails.
    """
    document = report_to_json(report)
    tmp_path = path + ".tmp"
    try:
        parent = os.path.dirname(path)
        if parent and not os.path.isdir(parent):
            os.makedirs(parent, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(document + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as exc:
        if os.path.isfile(tmp_path):
            os.unlink(tmp_path)
        raise ReportWriteError(path, exc.strerror or str(exc)) from exc


def load_report(path: str) -> Report:
    """Load a report previously written by write_report.

    Raises:
        ReportFormatError: If the file is missing or not a valid report.
    """
    if not os.path.isfile(path):
        raise ReportFormatError(f"report file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as exc:
        raise ReportFormatError(f"failed to parse report JSON: {exc}") from exc

    if not isinstance(raw, dict) or not isinstance(raw.get("results"), list):
        raise ReportFormatError("report must be an object with a 'results' list")

    try:
        return Report(
            timestamp=raw["timestamp"],
            config=RunConfig(
                duration_seconds=raw["duration"],
                concurrency=raw["connections"],
            ),
            results=[_result_from_dict(entry) for entry in raw["results"]],
            cooldown_seconds=raw.get("cooldown", 0.0),
            tool=raw.get("tool", ""),
            completed=raw.get("completed", True),
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise ReportFormatError(f"malformed report entry: {exc!r}") from exc


def _result_from_dict(entry: Dict[str, Any]) -> RunResult:
    endpoint = Endpoint(name=entry["endpoint"]["name"], base_url=entry["endpoint"]["base_url"])
    scenario_raw = entry["scenario"]
    scenario = Scenario(
        name=scenario_raw["name"],
        method=scenario_raw["method"],
        path=scenario_raw["path"],
        body=scenario_raw.get("body"),
        headers=dict(scenario_raw.get("headers") or {}),
    )
    if entry.get("status") == "ok":
        kwargs = {name: entry[name] for name in METRIC_FIELDS}
        metrics = Metrics(
            approximate=tuple(entry.get("approximate", [])),
            grammar=entry.get("grammar", ""),
            **kwargs,
        )
        return RunResult(endpoint=endpoint, scenario=scenario, metrics=metrics)

    error = entry["error"]
    return RunResult(
        endpoint=endpoint,
        scenario=scenario,
        error=CellError(
            kind=error["kind"],
            message=error.get("message", ""),
            output=error.get("output", ""),
        ),
    )


# -- console output -----------------------------------------------------------


def _ms(metrics: Metrics, name: str) -> str:
    prefix = "~" if metrics.is_approximate(name) else ""
    return f"{prefix}{getattr(metrics, name):.2f}"


def summarize(report: Report) -> List[Dict[str, str]]:
    """Build one display row per cell.

    The success rate is the 2xx share of observed requests and is computed
    here only; it is never written to the artifact. Approximate values are
    prefixed with ``~``.
    """
    rows = []
    for result in report.results:
        row = {
            "Endpoint": result.endpoint.name,
            "Scenario": result.scenario.name,
        }
        if result.ok:
            metrics = result.metrics
            rps = f"{metrics.rps:.0f}"
            row["Req/s"] = ("~" + rps) if metrics.is_approximate("rps") else rps
            row["Mean Latency (ms)"] = _ms(metrics, "latency_mean")
            row["P99 Latency (ms)"] = _ms(metrics, "latency_p99")
            row["Success Rate %"] = f"{metrics.success_rate * 100:.2f}"
        else:
            row["Req/s"] = f"FAILED ({result.error.kind})"
            row["Mean Latency (ms)"] = "-"
            row["P99 Latency (ms)"] = "-"
            row["Success Rate %"] = "-"
        rows.append(row)
    return rows


def compare_endpoints(report: Report) -> List[Dict[str, str]]:
    """Relative throughput of each endpoint against the first, per scenario."""
    by_cell: Dict[tuple, RunResult] = {}
    endpoints: List[str] = []
    scenarios: List[str] = []
    for result in report.results:
        by_cell[(result.endpoint.name, result.scenario.name)] = result
        if result.endpoint.name not in endpoints:
            endpoints.append(result.endpoint.name)
        if result.scenario.name not in scenarios:
            scenarios.append(result.scenario.name)

    if len(endpoints) < 2:
        return []

    baseline = endpoints[0]
    rows = []
    for scenario in scenarios:
        base = by_cell.get((baseline, scenario))
        base_rps = base.metrics.rps if base is not None and base.ok else 0.0
        for endpoint in endpoints:
            result = by_cell.get((endpoint, scenario))
            if result is None:
                continue
            if not result.ok:
                rows.append({
                    "Scenario": scenario,
                    "Endpoint": endpoint,
                    "Req/s": "-",
                    f"vs {baseline}": "n/a",
                })
                continue
            rps = result.metrics.rps
            speedup = f"{rps / base_rps:.2f}x" if base_rps > 0 else "n/a"
            rows.append({
                "Scenario": scenario,
                "Endpoint": endpoint,
                "Req/s": f"{rps:.0f}",
                f"vs {baseline}": speedup,
            })
    return rows


def build_table(
    rows: List[Dict[str, str]],
    columns: Optional[List[str]] = None,
    title: Optional[str] = None,
) -> Table:
    columns = columns or list(rows[0].keys())
    table = Table(title=title, show_header=True, header_style="bold cyan")
    for col in columns:
        table.add_column(col, justify="left" if col in _TEXT_COLUMNS else "right")
    for row in rows:
        table.add_row(*(Text(str(row.get(col, ""))) for col in columns))
    return table


def format_table(
    rows: List[Dict[str, str]],
    columns: Optional[List[str]] = None,
    title: Optional[str] = None,
) -> str:
    """Render rows as a rich table and return the plain text."""
    if not rows:
        return "No results to display."
    buffer = io.StringIO()
    console = Console(file=buffer, width=TABLE_WIDTH, no_color=True, highlight=False)
    console.print(build_table(rows, columns, title))
    return buffer.getvalue().rstrip("\n")
