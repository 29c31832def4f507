"""Run the benchmark matrix one cell at a time."""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from apibench.matrix import cells
from apibench.models import (
    CellError,
    Endpoint,
    Report,
    RunConfig,
    RunResult,
    Scenario,
    ToolSettings,
)
from apibench.parser import OutputParseError, parse_output
from apibench.runner import NOT_FOUND, LoadToolError, run_load_tool

LOGGER = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 2.0
INTERRUPTED = "interrupted"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class BenchmarkScheduler:
    """
    Drives the load generator across every (endpoint, scenario) cell.

    Cells run strictly one after another, endpoints outermost, with a
    cooldown pause before every cell but the first so the previous run's
    connections can drain. A failing cell is recorded and the matrix moves
    on. A missing load generator or an operator interrupt stops the matrix,
    but the cells finished so far are still returned in the Report.
    """

    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        tool: Optional[ToolSettings] = None,
        runner: Optional[Callable[..., str]] = None,
        parser: Optional[Callable[[str], object]] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_result: Optional[Callable[[RunResult], None]] = None,
    ):
        """
        Args:
            cooldown_seconds: Pause between consecutive cells.
            tool: Load generator settings passed through to the runner.
            runner: Replacement for run_load_tool (same signature).
            parser: Replacement for parse_output.
            sleep: Function used for the cooldown pause.
            on_result: Called with each RunResult as soon as it is recorded.
        """
        self.cooldown_seconds = cooldown_seconds
        self.tool = tool or ToolSettings()
        self._runner = runner
        self._parser = parser
        self._sleep = sleep
        self._on_result = on_result

    def execute(
        self,
        endpoints: Sequence[Endpoint],
        scenarios: Sequence[Scenario],
        config: RunConfig,
    ) -> Report:
        """Run every cell and return the Report.

        Failures are recorded on their cell. When the load generator is
        missing or the operator interrupts, the current cell is recorded as
        failed and the Report is returned early with ``completed`` False.
        """
        timestamp = utc_timestamp()
        results: List[RunResult] = []
        completed = True

        LOGGER.info(
            "Running %d cell(s): %d endpoint(s) x %d scenario(s), %ds at %d connections",
            len(endpoints) * len(scenarios),
            len(endpoints),
            len(scenarios),
            config.duration_seconds,
            config.concurrency,
        )

        for index, (endpoint, scenario) in enumerate(cells(endpoints, scenarios)):
            try:
                if index > 0 and self.cooldown_seconds > 0:
                    LOGGER.debug("Cooling down for %gs", self.cooldown_seconds)
                    self._sleep(self.cooldown_seconds)
                result = self._run_cell(endpoint, scenario, config)
            except KeyboardInterrupt:
                LOGGER.warning(
                    "Interrupted during %s - %s; stopping", endpoint.name, scenario.name
                )
                result = RunResult(
                    endpoint=endpoint,
                    scenario=scenario,
                    error=CellError(INTERRUPTED, "run interrupted by operator"),
                )
                completed = False
            except LoadToolError as exc:
                LOGGER.error("%s; stopping after %d cell(s)", exc, index)
                result = RunResult(
                    endpoint=endpoint,
                    scenario=scenario,
                    error=CellError(exc.kind, str(exc), exc.output),
                )
                completed = False

            results.append(result)
            if self._on_result is not None:
                self._on_result(result)
            if not completed:
                break

        return Report(
            timestamp=timestamp,
            config=config,
            results=results,
            cooldown_seconds=self.cooldown_seconds,
            tool=self.tool.binary,
            completed=completed,
        )

    def _run_cell(self, endpoint: Endpoint, scenario: Scenario, config: RunConfig) -> RunResult:
        runner = self._runner or run_load_tool
        parser = self._parser or parse_output
        url = endpoint.url_for(scenario.path)

        LOGGER.info("Benchmarking %s - %s...", endpoint.name, scenario.name)
        try:
            output = runner(url, scenario.method, scenario.body, scenario.headers, config, self.tool)
        except LoadToolError as exc:
            if exc.kind == NOT_FOUND:
                raise
            LOGGER.warning("%s - %s failed: %s", endpoint.name, scenario.name, exc)
            return RunResult(
                endpoint=endpoint,
                scenario=scenario,
                error=CellError(exc.kind, str(exc), exc.output),
            )

        try:
            metrics = parser(output)
        except OutputParseError as exc:
            LOGGER.warning("%s - %s: could not parse report: %s", endpoint.name, scenario.name, exc)
            return RunResult(
                endpoint=endpoint,
                scenario=scenario,
                error=CellError(exc.kind, str(exc), output),
            )

        return RunResult(endpoint=endpoint, scenario=scenario, metrics=metrics)
