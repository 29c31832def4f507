"""Load and validate benchmark configuration files (YAML or JSON)."""

import dataclasses
import json
import os
from typing import Any, List, Optional

import yaml

from apibench.matrix import DEFAULT_ENDPOINTS, DEFAULT_SCENARIOS
from apibench.models import (
    BenchmarkConfig,
    Endpoint,
    RunConfig,
    Scenario,
    ToolSettings,
)
from apibench.scheduler import DEFAULT_COOLDOWN_SECONDS

DEFAULT_DURATION_SECONDS = 30
DEFAULT_CONCURRENCY = 100
DEFAULT_OUTPUT = "benchmark/results/api-performance.json"

HTTP_METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
OUTPUT_FORMATS = ("text", "json")


class ConfigValidationError(Exception):
    """Raised when a benchmark configuration fails validation."""


def default_config() -> BenchmarkConfig:
    """The built-in two-service, three-scenario benchmark."""
    return BenchmarkConfig(
        endpoints=list(DEFAULT_ENDPOINTS),
        scenarios=list(DEFAULT_SCENARIOS),
        run=RunConfig(
            duration_seconds=DEFAULT_DURATION_SECONDS,
            concurrency=DEFAULT_CONCURRENCY,
        ),
        cooldown_seconds=DEFAULT_COOLDOWN_SECONDS,
        output=DEFAULT_OUTPUT,
        tool=ToolSettings(),
    )


def load_config(path: str) -> BenchmarkConfig:
    """Load a benchmark configuration from a YAML or JSON file.

    Sections left out of the file fall back to the built-in defaults.

    Args:
        path: Path to the configuration file.

    Returns:
        A validated BenchmarkConfig instance.

    Raises:
        ConfigValidationError: If the file is missing, unreadable, or invalid.
    """
    if not os.path.isfile(path):
        raise ConfigValidationError(f"config file not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    try:
        with open(path, "r") as f:
            if ext in (".yaml", ".yml"):
                raw = yaml.safe_load(f)
            elif ext == ".json":
                raw = json.load(f)
            else:
                raise ConfigValidationError(
                    f"unsupported file extension: {ext} (expected .yaml, .yml, or .json)"
                )
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigValidationError(f"failed to parse {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigValidationError("config must be a mapping/object at the top level")

    return _build_config(raw)


def with_overrides(
    config: BenchmarkConfig,
    duration_seconds: Optional[int] = None,
    concurrency: Optional[int] = None,
    cooldown_seconds: Optional[float] = None,
    output: Optional[str] = None,
    binary: Optional[str] = None,
) -> BenchmarkConfig:
    """Return a copy of ``config`` with the given values replaced and re-validated."""
    run = config.run
    if duration_seconds is not None:
        run = dataclasses.replace(run, duration_seconds=duration_seconds)
    if concurrency is not None:
        run = dataclasses.replace(run, concurrency=concurrency)

    tool = config.tool
    if binary is not None:
        tool = dataclasses.replace(tool, binary=binary)

    updated = dataclasses.replace(
        config,
        run=run,
        tool=tool,
        cooldown_seconds=config.cooldown_seconds if cooldown_seconds is None else cooldown_seconds,
        output=config.output if output is None else output,
    )

    errors: List[str] = []
    _check_run(updated.run.duration_seconds, updated.run.concurrency, updated.cooldown_seconds, errors)
    if not updated.tool.binary:
        errors.append("'tool.binary' must be a non-empty string")
    if not updated.output:
        errors.append("'output' must be a non-empty path")
    _raise_if(errors)
    return updated


def _raise_if(errors: List[str]) -> None:
    if errors:
        raise ConfigValidationError(
            "config validation failed:\n  - " + "\n  - ".join(errors)
        )


def _build_config(raw: dict) -> BenchmarkConfig:
    """Construct and validate a BenchmarkConfig from a raw dict."""
    errors: List[str] = []
    defaults = default_config()

    if "endpoints" in raw:
        endpoints = _parse_endpoints(raw["endpoints"], errors)
    else:
        endpoints = defaults.endpoints

    if "scenarios" in raw:
        scenarios = _parse_scenarios(raw["scenarios"], errors)
    else:
        scenarios = defaults.scenarios

    run_raw = raw.get("run", {})
    if not isinstance(run_raw, dict):
        errors.append("'run' must be a mapping")
        run_raw = {}
    duration = run_raw.get("duration_seconds", DEFAULT_DURATION_SECONDS)
    concurrency = run_raw.get("concurrency", DEFAULT_CONCURRENCY)
    cooldown = run_raw.get("cooldown_seconds", DEFAULT_COOLDOWN_SECONDS)
    _check_run(duration, concurrency, cooldown, errors)

    tool = _parse_tool(raw.get("tool", {}), errors)

    output = raw.get("output", DEFAULT_OUTPUT)
    if not output or not isinstance(output, str):
        errors.append("'output' must be a non-empty string")

    _raise_if(errors)

    return BenchmarkConfig(
        endpoints=endpoints,
        scenarios=scenarios,
        run=RunConfig(duration_seconds=duration, concurrency=concurrency),
        cooldown_seconds=float(cooldown),
        output=output,
        tool=tool,
    )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_run(duration: Any, concurrency: Any, cooldown: Any, errors: List[str]) -> None:
    if not _is_int(duration) or duration <= 0:
        errors.append("'run.duration_seconds' must be an integer > 0")
    if not _is_int(concurrency) or concurrency <= 0:
        errors.append("'run.concurrency' must be an integer > 0")
    if not _is_number(cooldown) or cooldown < 0:
        errors.append("'run.cooldown_seconds' must be a number >= 0")


def _parse_endpoints(raw: Any, errors: List[str]) -> List[Endpoint]:
    if not isinstance(raw, list) or not raw:
        errors.append("'endpoints' must be a non-empty list")
        return []
    endpoints = []
    seen = set()
    for i, ep in enumerate(raw):
        if not isinstance(ep, dict):
            errors.append(f"endpoints[{i}] must be a mapping")
            continue
        name = ep.get("name")
        base_url = ep.get("base_url")
        if not name or not isinstance(name, str):
            errors.append(f"endpoints[{i}].name is required")
            continue
        if name in seen:
            errors.append(f"endpoints[{i}].name {name!r} is duplicated")
        seen.add(name)
        if not isinstance(base_url, str) or not base_url.startswith(("http://", "https://")):
            errors.append(f"endpoints[{i}].base_url must be an http:// or https:// URL")
            continue
        endpoints.append(Endpoint(name=name, base_url=base_url))
    return endpoints


def _parse_scenarios(raw: Any, errors: List[str]) -> List[Scenario]:
    if not isinstance(raw, list) or not raw:
        errors.append("'scenarios' must be a non-empty list")
        return []
    scenarios = []
    seen = set()
    for i, sc in enumerate(raw):
        if not isinstance(sc, dict):
            errors.append(f"scenarios[{i}] must be a mapping")
            continue
        name = sc.get("name")
        if not name or not isinstance(name, str):
            errors.append(f"scenarios[{i}].name is required")
            continue
        if name in seen:
            errors.append(f"scenarios[{i}].name {name!r} is duplicated")
        seen.add(name)

        method = str(sc.get("method", "GET")).upper()
        if method not in HTTP_METHODS:
            errors.append(f"scenarios[{i}].method {method!r} is not a supported HTTP verb")

        path = sc.get("path", "")
        if not isinstance(path, str) or not path.startswith("/"):
            errors.append(f"scenarios[{i}].path must start with '/'")

        body = sc.get("body")
        if isinstance(body, (dict, list)):
            body = json.dumps(body)
        elif body is not None and not isinstance(body, str):
            errors.append(f"scenarios[{i}].body must be a string, mapping, or list")
            body = None

        headers = sc.get("headers") or {}
        if not isinstance(headers, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in headers.items()
        ):
            errors.append(f"scenarios[{i}].headers must map header names to strings")
            headers = {}

        scenarios.append(
            Scenario(name=name, method=method, path=path, body=body, headers=dict(headers))
        )
    return scenarios


def _parse_tool(raw: Any, errors: List[str]) -> ToolSettings:
    if not isinstance(raw, dict):
        errors.append("'tool' must be a mapping")
        return ToolSettings()
    binary = raw.get("binary", "bombardier")
    if not binary or not isinstance(binary, str):
        errors.append("'tool.binary' must be a non-empty string")
        binary = "bombardier"
    output_format = raw.get("format", "text")
    if output_format not in OUTPUT_FORMATS:
        errors.append(f"'tool.format' must be one of {', '.join(OUTPUT_FORMATS)}")
        output_format = "text"
    timeout = raw.get("timeout_seconds")
    if timeout is not None and (not _is_number(timeout) or timeout <= 0):
        errors.append("'tool.timeout_seconds' must be a number > 0")
        timeout = None
    return ToolSettings(binary=binary, output_format=output_format, timeout_seconds=timeout)
