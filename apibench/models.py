"""Data models for benchmark configuration, parsed metrics, and reports."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Endpoint:
    name: str
    base_url: str

    def url_for(self, path: str) -> str:
        return self.base_url.rstrip("/") + path


@dataclass(frozen=True)
class Scenario:
    name: str
    method: str
    path: str
    body: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RunConfig:
    duration_seconds: int
    concurrency: int


@dataclass(frozen=True)
class ToolSettings:
    binary: str = "bombardier"
    output_format: str = "text"  # "text" or "json"
    timeout_seconds: Optional[float] = None


@dataclass(frozen=True)
class BenchmarkConfig:
    endpoints: List[Endpoint]
    scenarios: List[Scenario]
    run: RunConfig
    cooldown_seconds: float = 2.0
    output: str = "benchmark/results/api-performance.json"
    tool: ToolSettings = field(default_factory=ToolSettings)


# Field names in the order they are reported and persisted.
METRIC_FIELDS = (
    "requests",
    "rps",
    "req_1xx",
    "req_2xx",
    "req_3xx",
    "req_4xx",
    "req_5xx",
    "bytes_read",
    "bytes_written",
    "elapsed_seconds",
    "latency_mean",
    "latency_p50",
    "latency_p95",
    "latency_p99",
)

INT_METRIC_FIELDS = frozenset(
    ["requests", "req_1xx", "req_2xx", "req_3xx", "req_4xx", "req_5xx",
     "bytes_read", "bytes_written"]
)


@dataclass(frozen=True)
class Metrics:
    """Numbers extracted from one load generator report.

    Latencies are in milliseconds. Fields the report did not carry are zero.
    Names listed in ``approximate`` were derived by a heuristic rather than
    read from the report.
    """

    requests: int = 0
    rps: float = 0.0
    req_1xx: int = 0
    req_2xx: int = 0
    req_3xx: int = 0
    req_4xx: int = 0
    req_5xx: int = 0
    bytes_read: int = 0
    bytes_written: int = 0
    elapsed_seconds: float = 0.0
    latency_mean: float = 0.0
    latency_p50: float = 0.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0
    approximate: Tuple[str, ...] = ()
    grammar: str = ""

    @property
    def status_total(self) -> int:
        return self.req_1xx + self.req_2xx + self.req_3xx + self.req_4xx + self.req_5xx

    @property
    def success_rate(self) -> float:
        """Share of 2xx responses, 0.0 when no requests were observed."""
        if self.requests <= 0:
            return 0.0
        return self.req_2xx / self.requests

    def is_approximate(self, name: str) -> bool:
        return name in self.approximate


@dataclass(frozen=True)
class CellError:
    kind: str  # "non-zero-exit", "timed-out", "unrecognized-format", "interrupted"
    message: str
    output: str = ""


@dataclass(frozen=True)
class RunResult:
    endpoint: Endpoint
    scenario: Scenario
    metrics: Optional[Metrics] = None
    error: Optional[CellError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.metrics is not None


@dataclass(frozen=True)
class Report:
    timestamp: str
    config: RunConfig
    results: List[RunResult] = field(default_factory=list)
    cooldown_seconds: float = 2.0
    tool: str = "bombardier"
    completed: bool = True

    @property
    def failures(self) -> List[RunResult]:
        return [r for r in self.results if not r.ok]
