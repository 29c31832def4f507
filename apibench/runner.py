"""Invoke the external load generator and capture its report."""

import logging
import shlex
import shutil
import subprocess
from typing import Dict, List, Optional

from apibench.models import RunConfig, ToolSettings

LOGGER = logging.getLogger(__name__)

NOT_FOUND = "not-found"
NON_ZERO_EXIT = "non-zero-exit"
TIMED_OUT = "timed-out"

# Extra seconds allowed on top of the run duration before the child is killed.
TIMEOUT_GRACE_SECONDS = 60

INSTALL_HINT = (
    "brew install bombardier  # macOS\n"
    "# or download from https://github.com/codesenberg/bombardier/releases"
)


class LoadToolError(Exception):
    """Raised when the load generator is missing, fails, or overruns."""

    def __init__(
        self,
        kind: str,
        message: str,
        output: str = "",
        returncode: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.output = output
        self.returncode = returncode


def check_tool(binary: str) -> str:
    """Resolve the load generator binary on PATH.

    Args:
        binary: Executable name or path.

    Returns:
        The resolved absolute path.

    Raises:
        LoadToolError: With kind ``not-found`` if it cannot be located.
    """
    path = shutil.which(binary)
    if path is None:
        raise LoadToolError(NOT_FOUND, f"{binary} is not installed or not on PATH")
    return path


def build_command(
    url: str,
    method: str,
    body: Optional[str],
    headers: Optional[Dict[str, str]],
    config: RunConfig,
    tool: ToolSettings,
) -> List[str]:
    """Build the argument list for one load generator run.

    No shell is involved, so bodies and header values are passed verbatim.
    """
    cmd = [
        tool.binary,
        "-c", str(config.concurrency),
        "-d", f"{config.duration_seconds}s",
        "-m", method,
        "-l",
    ]

    headers = dict(headers or {})
    if body is not None:
        cmd.extend(["-b", body])
        if not any(name.lower() == "content-type" for name in headers):
            cmd.extend(["-H", "Content-Type: application/json"])
    for name, value in headers.items():
        cmd.extend(["-H", f"{name}: {value}"])

    if tool.output_format == "json":
        cmd.extend(["-p", "r", "-o", "json"])

    cmd.append(url)
    return cmd


def run_load_tool(
    url: str,
    method: str,
    body: Optional[str],
    headers: Optional[Dict[str, str]],
    config: RunConfig,
    tool: Optional[ToolSettings] = None,
) -> str:
    """Run the load generator once and return its combined output.

    Args:
        url: Target URL.
        method: HTTP verb.
        body: Optional request body.
        headers: Optional extra request headers.
        config: Duration and concurrency for the run.
        tool: Binary, output format and timeout; defaults to ToolSettings().

    Returns:
        The captured stdout and stderr text.

    Raises:
        LoadToolError: ``not-found`` if the binary cannot be spawned,
            ``non-zero-exit`` on a failing exit status, ``timed-out`` if the
            child had to be killed.
    """
    tool = tool or ToolSettings()
    cmd = build_command(url, method, body, headers, config, tool)
    timeout = tool.timeout_seconds
    if timeout is None:
        timeout = config.duration_seconds + TIMEOUT_GRACE_SECONDS

    LOGGER.debug("Running: %s", " ".join(shlex.quote(arg) for arg in cmd))
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError as exc:
        raise LoadToolError(NOT_FOUND, f"{tool.binary} could not be started: {exc}") from exc

    try:
        output, _ = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        output, _ = proc.communicate()
        raise LoadToolError(
            TIMED_OUT,
            f"{tool.binary} did not finish within {timeout:g}s and was killed",
            output=output or "",
        )
    except KeyboardInterrupt:
        proc.kill()
        proc.communicate()
        raise

    if proc.returncode != 0:
        raise LoadToolError(
            NON_ZERO_EXIT,
            f"{tool.binary} exited with status {proc.returncode}",
            output=output or "",
            returncode=proc.returncode,
        )
    return output or ""
