"""Extract metrics from the load generator's report text.

Three report grammars are understood, tried in this order:

- ``json``: the structured result document (``-p r -o json``), latencies in
  microseconds.
- ``verbose``: the multi-line labelled report (``Reqs/sec:``, ``mean:``,
  ``50%:``, ``2xx - N``, ``Bytes read:``, ``Time taken for tests:`` ...).
- ``compact``: the one-line summary ``N requests in 30.01s, 93.89MB read``
  with optional ``Requests/sec:`` and ``Latency`` lines.

The first grammar that yields at least one numeric field wins. Fields a
grammar cannot find stay zero.
"""

import json
import logging
import math
import re
from typing import Callable, Dict, List, Optional, Tuple

from apibench.models import INT_METRIC_FIELDS, Metrics

LOGGER = logging.getLogger(__name__)

UNRECOGNIZED_FORMAT = "unrecognized-format"

# Multipliers applied to the mean latency when the report has no percentiles.
APPROX_P50_FACTOR = 1.0
APPROX_P95_FACTOR = 1.5
APPROX_P99_FACTOR = 2.0

_STATUS_FIELDS = ("req_1xx", "req_2xx", "req_3xx", "req_4xx", "req_5xx")
_PERCENTILE_FIELDS = (
    ("latency_p50", APPROX_P50_FACTOR),
    ("latency_p95", APPROX_P95_FACTOR),
    ("latency_p99", APPROX_P99_FACTOR),
)

_NUMBER_RE = re.compile(r"^(\d+(?:\.\d+)?)$")
_LATENCY_RE = re.compile(r"^(\d+(?:\.\d+)?)(us|µs|ms|s)?$")
_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m)?$")

_LATENCY_SCALE = {None: 1.0, "us": 0.001, "µs": 0.001, "ms": 1.0, "s": 1000.0}
_DURATION_SCALE = {None: 1.0, "ms": 0.001, "s": 1.0, "m": 60.0}
_SIZE_SCALE = {
    "B": 1,
    "KB": 1024,
    "MB": 1024 ** 2,
    "GB": 1024 ** 3,
    "TB": 1024 ** 4,
}


class OutputParseError(Exception):
    """Raised when report text matches none of the known grammars."""

    def __init__(self, message: str, kind: str = UNRECOGNIZED_FORMAT):
        super().__init__(message)
        self.kind = kind


def parse_output(text: str) -> Metrics:
    """Parse a load generator report into a Metrics record.

    Args:
        text: Raw report text, as captured from the tool's stdout.

    Returns:
        A Metrics record. ``grammar`` names the grammar that matched and
        ``approximate`` lists fields derived rather than measured.

    Raises:
        OutputParseError: If no grammar extracts a single field.
    """
    if not text or not text.strip():
        raise OutputParseError("load generator produced no output")

    for name, extract in GRAMMARS:
        fields = extract(text)
        if fields:
            LOGGER.debug("Report matched %s grammar (%d fields)", name, len(fields))
            return _build_metrics(fields, name)

    preview = text.strip().splitlines()[0][:120]
    raise OutputParseError(f"report does not match any known format: {preview!r}")


# -- value conversion ---------------------------------------------------------


def _number(token: str) -> Optional[float]:
    m = _NUMBER_RE.match(token.rstrip(","))
    return float(m.group(1)) if m else None


def _count(token: str) -> Optional[float]:
    value = _number(token)
    if value is None or not value.is_integer():
        return None
    return value


def _latency_ms(token: str) -> Optional[float]:
    m = _LATENCY_RE.match(token.rstrip(","))
    if not m:
        return None
    return float(m.group(1)) * _LATENCY_SCALE[m.group(2)]


def _duration_seconds(token: str) -> Optional[float]:
    m = _DURATION_RE.match(token.rstrip(","))
    if not m:
        return None
    return float(m.group(1)) * _DURATION_SCALE[m.group(2)]


def _json_number(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


# -- grammars -----------------------------------------------------------------


Converter = Callable[[str], Optional[float]]

_VERBOSE_PATTERNS: List[Tuple[str, "re.Pattern[str]", Converter]] = [
    ("rps", re.compile(r"Reqs/sec:\s+(\S+)"), _number),
    ("requests", re.compile(r"^\s*(\S+)\s+requests in\s+\S+\s*$", re.MULTILINE), _count),
    ("req_1xx", re.compile(r"\b1xx - ([^,\s]+)"), _count),
    ("req_2xx", re.compile(r"\b2xx - ([^,\s]+)"), _count),
    ("req_3xx", re.compile(r"\b3xx - ([^,\s]+)"), _count),
    ("req_4xx", re.compile(r"\b4xx - ([^,\s]+)"), _count),
    ("req_5xx", re.compile(r"\b5xx - ([^,\s]+)"), _count),
    ("bytes_read", re.compile(r"Bytes read:\s+(\S+)"), _count),
    ("bytes_written", re.compile(r"Bytes written:\s+(\S+)"), _count),
    ("elapsed_seconds", re.compile(r"Time taken for tests:\s+(\S+)\s+seconds"), _number),
    ("latency_mean", re.compile(r"\bmean:\s+(\S+)"), _latency_ms),
    ("latency_p50", re.compile(r"(?<![\d.])50%:\s+(\S+)"), _latency_ms),
    ("latency_p95", re.compile(r"(?<![\d.])95%:\s+(\S+)"), _latency_ms),
    ("latency_p99", re.compile(r"(?<![\d.])99%:\s+(\S+)"), _latency_ms),
]

_COMPACT_SUMMARY = re.compile(
    r"(\S+)\s+requests in\s+(\S+),\s+(\S+?)\s*(B|KB|MB|GB|TB)\s+read"
)
_COMPACT_RPS = re.compile(r"Requests/sec:\s+(\S+)")
_COMPACT_LATENCY = re.compile(r"^\s*Latency\s+(\S+)", re.MULTILINE)
_COMPACT_STATUS = re.compile(r"(\S+)\s+([1-5])xx responses")


def _search(fields: Dict[str, float], name: str, pattern, convert: Converter, text: str) -> None:
    m = pattern.search(text)
    if not m:
        return
    value = convert(m.group(1))
    if value is None:
        LOGGER.debug("Skipping non-numeric %s value %r", name, m.group(1))
        return
    fields[name] = value


def _extract_verbose(text: str) -> Dict[str, float]:
    fields: Dict[str, float] = {}
    for name, pattern, convert in _VERBOSE_PATTERNS:
        _search(fields, name, pattern, convert, text)
    return fields


def _extract_compact(text: str) -> Dict[str, float]:
    fields: Dict[str, float] = {}

    m = _COMPACT_SUMMARY.search(text)
    if m:
        requests = _count(m.group(1))
        if requests is not None:
            fields["requests"] = requests
        elapsed = _duration_seconds(m.group(2))
        if elapsed is not None:
            fields["elapsed_seconds"] = elapsed
        size = _number(m.group(3))
        if size is not None:
            fields["bytes_read"] = float(round(size * _SIZE_SCALE[m.group(4)]))

    _search(fields, "rps", _COMPACT_RPS, _number, text)
    _search(fields, "latency_mean", _COMPACT_LATENCY, _latency_ms, text)

    for m in _COMPACT_STATUS.finditer(text):
        count = _count(m.group(1))
        if count is not None:
            fields[f"req_{m.group(2)}xx"] = count
    return fields


_JSON_COUNTS = (
    ("bytesRead", "bytes_read"),
    ("bytesWritten", "bytes_written"),
    ("req1xx", "req_1xx"),
    ("req2xx", "req_2xx"),
    ("req3xx", "req_3xx"),
    ("req4xx", "req_4xx"),
    ("req5xx", "req_5xx"),
)


def _extract_json(text: str) -> Dict[str, float]:
    stripped = text.strip()
    if not stripped.startswith("{"):
        return {}
    try:
        doc = json.loads(stripped)
    except ValueError:
        return {}
    result = doc.get("result") if isinstance(doc, dict) else None
    if not isinstance(result, dict):
        return {}

    fields: Dict[str, float] = {}
    for key, name in _JSON_COUNTS:
        value = _json_number(result.get(key))
        if value is not None and value.is_integer():
            fields[name] = value

    elapsed = _json_number(result.get("timeTakenSeconds"))
    if elapsed is not None:
        fields["elapsed_seconds"] = elapsed

    rps = result.get("rps")
    if isinstance(rps, dict):
        mean = _json_number(rps.get("mean"))
        if mean is not None:
            fields["rps"] = mean

    # Latencies are reported in microseconds.
    latency = result.get("latency")
    if isinstance(latency, dict):
        mean = _json_number(latency.get("mean"))
        if mean is not None:
            fields["latency_mean"] = mean / 1000.0
        percentiles = latency.get("percentiles")
        if isinstance(percentiles, dict):
            for pct in ("50", "95", "99"):
                value = _json_number(percentiles.get(pct))
                if value is not None:
                    fields[f"latency_p{pct}"] = value / 1000.0
    return fields


GRAMMARS: List[Tuple[str, Callable[[str], Dict[str, float]]]] = [
    ("json", _extract_json),
    ("verbose", _extract_verbose),
    ("compact", _extract_compact),
]


# -- assembly -----------------------------------------------------------------


def _build_metrics(fields: Dict[str, float], grammar: str) -> Metrics:
    approximate: List[str] = []

    if all(name in fields for name in _STATUS_FIELDS):
        status_total = sum(fields[name] for name in _STATUS_FIELDS)
        reported = fields.get("requests")
        if reported is not None and reported != status_total:
            LOGGER.warning(
                "Reported request total %d disagrees with status counts %d; "
                "using status counts",
                reported,
                status_total,
            )
        fields["requests"] = status_total

    if "rps" not in fields and fields.get("requests") and fields.get("elapsed_seconds"):
        fields["rps"] = fields["requests"] / fields["elapsed_seconds"]
        approximate.append("rps")

    if "latency_mean" in fields and not any(name in fields for name, _ in _PERCENTILE_FIELDS):
        mean = fields["latency_mean"]
        for name, factor in _PERCENTILE_FIELDS:
            fields[name] = mean * factor
            approximate.append(name)

    kwargs = {}
    for name, value in fields.items():
        kwargs[name] = int(value) if name in INT_METRIC_FIELDS else float(value)
    return Metrics(approximate=tuple(approximate), grammar=grammar, **kwargs)
