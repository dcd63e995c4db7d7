"""
Wex — Execution Driver

Runs a staged workflow through the local workflow runner and captures
its combined output.

  1. Inputs are written into the staging directory as an env file
     (INPUT_<KEY>=value) and an input file (key=value); the runner picks
     both up implicitly from its working directory.
  2. The runner is invoked as `<command> [-v] <event> -W <workflow>` with
     cwd set to the staging directory. Input files with other than the
     default names are passed explicitly (--env-file, --input-file).
  3. Output is read line by line as bytes: each chunk goes into the
     capture buffer and, with live logs on, to the echo stream unchanged.

A non-zero exit is not an error here; the log still goes to assertion.
Only a runner that cannot be started raises ExecutionFault.

The runner sits behind the WorkflowRunner protocol so orchestration can be
exercised with canned logs.
"""

from __future__ import annotations

import json
import re
import shlex
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Mapping, Protocol, Sequence

from wex.errors import ConfigError, ExecutionFault, ResourceError
from wex.logging import get_logger

logger = get_logger("driver")

DEFAULT_ENV_FILE = ".env"
DEFAULT_INPUT_FILE = ".input"


@dataclass
class Execution:
    """What came back from one runner invocation."""
    log: str
    exit_code: int | None
    timed_out: bool = False
    elapsed_seconds: float = 0.0
    command: list[str] = field(default_factory=list)


class WorkflowRunner(Protocol):
    """Executes a workflow file against an event inside a working directory."""

    def build_command(self, event: str, workflow: str) -> list[str]:
        ...

    def execute(self, event: str, working_dir: Path, workflow: str) -> Execution:
        ...


# ═══════════════════════════════════════════════════════════════════
# Input files
# ═══════════════════════════════════════════════════════════════════

_NEEDS_QUOTES = re.compile(r"[\s#'\"\\$`]")


def _env_key(prefix: str, key: str) -> str:
    return prefix + re.sub(r"[\s\-]", "_", key).upper()


def _env_value(value: Any) -> str:
    text = value if isinstance(value, str) else json.dumps(value)
    if not text or not _NEEDS_QUOTES.search(text):
        return text
    escaped = (text.replace("\\", "\\\\").replace('"', '\\"')
               .replace("\n", "\\n").replace("\r", "\\r"))
    return f'"{escaped}"'


def write_env_file(
    directory: str | Path,
    inputs: Mapping[str, Any],
    filename: str = ".env",
    prefix: str = "INPUT_",
) -> Path:
    """Write `inputs` as prefixed environment assignments. Returns the file path."""
    path = Path(directory) / filename
    lines = [f"{_env_key(prefix, str(k))}={_env_value(v)}" for k, v in inputs.items()]
    path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
    return path


def write_input_file(
    directory: str | Path,
    inputs: Mapping[str, Any],
    filename: str = ".input",
) -> Path:
    """Write `inputs` under their own names for the runner's `inputs` context."""
    path = Path(directory) / filename
    lines = [f"{k}={_env_value(v)}" for k, v in inputs.items()]
    path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
    return path


# ═══════════════════════════════════════════════════════════════════
# Subprocess runner
# ═══════════════════════════════════════════════════════════════════

def _timeout_seconds(value: Any) -> float | None:
    """None or 0 means no limit; anything else must be a non-negative number of seconds."""
    if value is None or value is False:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ConfigError("runner.timeout_seconds",
                          f"expected a number of seconds, got {value!r}") from None
    if seconds < 0:
        raise ConfigError("runner.timeout_seconds", f"must not be negative, got {value!r}")
    return seconds or None


class ActRunner:
    """
    Workflow runner backed by a local `act`-compatible executable.

    Args:
        command: Runner command line, shell-split (e.g. "act" or "act --pull=false")
        verbose: Forward -v to the runner
        echo: Binary stream that receives the log live (None = capture only)
        timeout: Seconds before the runner is killed (None or 0 = no limit)
        extra_args: Appended after the workflow argument
        env_file, input_file: Names of the staged input files; forwarded
            to the runner only when they differ from what it reads by default
    """

    def __init__(
        self,
        command: str = "act",
        verbose: bool = False,
        echo: BinaryIO | None = None,
        timeout: float | None = None,
        extra_args: Sequence[str] = (),
        env_file: str = DEFAULT_ENV_FILE,
        input_file: str = DEFAULT_INPUT_FILE,
    ):
        self.command = shlex.split(command)
        if not self.command:
            raise ValueError("runner command is empty")
        self.verbose = verbose
        self.echo = echo
        self.timeout = _timeout_seconds(timeout)
        self.extra_args = [str(a) for a in extra_args]
        self.env_file = env_file
        self.input_file = input_file

    def build_command(self, event: str, workflow: str) -> list[str]:
        cmd = list(self.command)
        if self.verbose:
            cmd.append("-v")
        cmd += [event, "-W", workflow]
        if self.env_file and self.env_file != DEFAULT_ENV_FILE:
            cmd += ["--env-file", self.env_file]
        if self.input_file and self.input_file != DEFAULT_INPUT_FILE:
            cmd += ["--input-file", self.input_file]
        cmd += self.extra_args
        return cmd

    def execute(self, event: str, working_dir: Path, workflow: str) -> Execution:
        cmd = self.build_command(event, workflow)
        logger.debug("EXECUTING: `%s` in %s", " ".join(cmd), working_dir)

        t0 = time.time()
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(working_dir),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise ExecutionFault(cmd, str(e)) from e

        expired = threading.Event()

        def _on_timeout():
            expired.set()
            proc.kill()

        watchdog = None
        if self.timeout:
            watchdog = threading.Timer(self.timeout, _on_timeout)
            watchdog.daemon = True
            watchdog.start()

        captured = bytearray()
        try:
            for chunk in iter(proc.stdout.readline, b""):
                captured.extend(chunk)
                if self.echo is not None:
                    self.echo.write(chunk)
                    self.echo.flush()
            exit_code = proc.wait()
        finally:
            if watchdog is not None:
                watchdog.cancel()
            if proc.poll() is None:
                proc.kill()
                proc.wait()
            proc.stdout.close()

        elapsed = time.time() - t0
        timed_out = expired.is_set()
        if timed_out:
            logger.warning("Runner killed after %.0fs timeout: %s", self.timeout, " ".join(cmd))
        return Execution(
            log=captured.decode("utf-8", errors="replace"),
            exit_code=None if timed_out else exit_code,
            timed_out=timed_out,
            elapsed_seconds=elapsed,
            command=cmd,
        )


# ═══════════════════════════════════════════════════════════════════
# Driver
# ═══════════════════════════════════════════════════════════════════

class ExecutionDriver:
    """Stages the inputs next to the workflow, then hands off to the runner."""

    def __init__(
        self,
        runner: WorkflowRunner,
        env_file: str = DEFAULT_ENV_FILE,
        input_file: str = DEFAULT_INPUT_FILE,
        input_prefix: str = "INPUT_",
    ):
        self.runner = runner
        self.env_file = env_file
        self.input_file = input_file
        self.input_prefix = input_prefix

    def run(
        self,
        event: str,
        staging_dir: str | Path,
        inputs: Mapping[str, Any] | None,
        workflow: str,
    ) -> Execution:
        staging_dir = Path(staging_dir)
        if inputs is not None:
            try:
                env_path = write_env_file(staging_dir, inputs, self.env_file, self.input_prefix)
                if self.input_file:
                    write_input_file(staging_dir, inputs, self.input_file)
            except OSError as e:
                raise ResourceError(f"Cannot write inputs into {staging_dir}: {e}") from e
            logger.debug("Wrote %d input(s) to %s", len(inputs), env_path)
        return self.runner.execute(event, staging_dir, workflow)
