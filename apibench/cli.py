"""CLI entry point for the API benchmark comparison runner."""

import logging
import sys

import click

from apibench.loader import ConfigValidationError, default_config, load_config, with_overrides
from apibench.report import (
    ReportFormatError,
    ReportWriteError,
    SUMMARY_COLUMNS,
    compare_endpoints,
    format_table,
    load_report,
    report_to_json,
    summarize,
    write_report,
)
from apibench.runner import INSTALL_HINT, NOT_FOUND, LoadToolError, check_tool
from apibench.scheduler import BenchmarkScheduler


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def _preflight(binary: str) -> None:
    try:
        path = check_tool(binary)
    except LoadToolError as exc:
        click.echo(f"\nError: {exc}. Please install it first:", err=True)
        click.echo(INSTALL_HINT, err=True)
        sys.exit(1)
    click.echo(f"Using load generator at {path}", err=True)


def _print_tables(report) -> None:
    click.echo("\nBenchmark Results:")
    click.echo(format_table(summarize(report), SUMMARY_COLUMNS))
    comparison = compare_endpoints(report)
    if comparison:
        click.echo("\nThroughput comparison:")
        click.echo(format_table(comparison))


@click.group()
def main():
    """API benchmark runner -- compare HTTP services under an external load generator."""


@main.command()
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True),
    help="Benchmark config file (YAML or JSON). Built-in defaults are used if omitted.",
)
@click.option(
    "--out",
    default=None,
    envvar="APIBENCH_OUT",
    type=click.Path(),
    help="Where to write the JSON report. Overrides the config file.",
)
@click.option(
    "--duration",
    default=None,
    envvar="APIBENCH_DURATION",
    type=int,
    help="Seconds of load per cell.",
)
@click.option(
    "--concurrency",
    default=None,
    envvar="APIBENCH_CONCURRENCY",
    type=int,
    help="Concurrent connections per cell.",
)
@click.option(
    "--cooldown",
    default=None,
    envvar="APIBENCH_COOLDOWN",
    type=float,
    help="Seconds to pause between cells.",
)
@click.option(
    "--tool",
    default=None,
    envvar="APIBENCH_TOOL",
    help="Load generator executable (default: bombardier).",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging.")
def run(config_path, out, duration, concurrency, cooldown, tool, verbose):
    """Benchmark every endpoint against every scenario and save the report."""
    _configure_logging(verbose)
    try:
        config = load_config(config_path) if config_path else default_config()
        config = with_overrides(
            config,
            duration_seconds=duration,
            concurrency=concurrency,
            cooldown_seconds=cooldown,
            output=out,
            binary=tool,
        )
    except ConfigValidationError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    _preflight(config.tool.binary)

    scheduler = BenchmarkScheduler(
        cooldown_seconds=config.cooldown_seconds,
        tool=config.tool,
    )
    report = scheduler.execute(config.endpoints, config.scenarios, config.run)

    try:
        write_report(report, config.output)
    except ReportWriteError as exc:
        click.echo(f"Error: {exc}", err=True)
        click.echo("Report contents follow so the results are not lost:", err=True)
        click.echo(report_to_json(report))
        sys.exit(1)

    _print_tables(report)
    click.echo(f"\nReport written to {config.output}")

    failed = len(report.failures)
    if failed:
        click.echo(f"Warning: {failed} of {len(report.results)} cell(s) failed", err=True)
    if not report.completed:
        missing = [r for r in report.failures if r.error.kind == NOT_FOUND]
        if missing:
            click.echo(f"\nError: {missing[0].error.message}. Please install it first:", err=True)
            click.echo(INSTALL_HINT, err=True)
            sys.exit(1)
        click.echo("Run interrupted before all cells finished", err=True)
        sys.exit(130)


@main.command("summarize")
@click.option(
    "--report",
    "report_path",
    required=True,
    type=click.Path(exists=True),
    help="Path to a JSON report written by 'apibench run'.",
)
def summarize_cmd(report_path):
    """Print the summary tables for a saved report."""
    try:
        report = load_report(report_path)
    except ReportFormatError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Report from {report.timestamp} "
               f"({report.config.duration_seconds}s, {report.config.concurrency} connections)")
    _print_tables(report)


@main.command("check-tool")
@click.option(
    "--tool",
    default="bombardier",
    envvar="APIBENCH_TOOL",
    help="Load generator executable to look for.",
)
def check_tool_cmd(tool):
    """Check that the load generator is installed."""
    _preflight(tool)


if __name__ == "__main__":
    main()
