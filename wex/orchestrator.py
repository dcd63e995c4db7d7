"""
Wex — Experiment Orchestrator

Drives every experiment of a suite against its own staged copy of the
workflow and aggregates the verdict.

Per run:      load suite -> create staging root -> experiments -> report -> cleanup
Per experiment (ExperimentSession, strictly sequential):
              stage copy -> normalize trigger -> mutate steps -> execute -> assert

Failures inside one experiment (unknown step id, runner that cannot
start, timeout, assertion miss) become a failed RunResult; the loop always
runs the whole suite. Only ConfigError and ResourceError abort a run. The
staging root is removed on every exit path.

Usage:
    from wex.orchestrator import RunContext, run_suite
    from wex.driver import ActRunner

    context = RunContext(workflow_path=Path("ci.yml"), suite_path=Path("wex.yaml"))
    result = run_suite(context, load_suite(context.suite_path), ActRunner())
    print(result.summary())
    sys.exit(result.exit_code)
"""

from __future__ import annotations

import shutil
import sys
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO

from wex.assertions import DEFAULT_MARKER_PREFIX, check_log
from wex.document import load_document, save_document
from wex.driver import Execution, ExecutionDriver, WorkflowRunner
from wex.errors import ConfigError, ExecutionFault, MutationError, ResourceError
from wex.experiments import Experiment
from wex.logging import RunLogger, get_logger
from wex.mutator import PROTOCOLS, SET_OUTPUT, mutate_steps
from wex.normalizer import is_reusable, normalize

logger = get_logger("orchestrator")

STAGED_WORKFLOW_DIR = Path(".github") / "workflows"


# ═══════════════════════════════════════════════════════════════════
# Types
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RunContext:
    """Immutable paths and flags for one suite run."""
    workflow_path: Path
    suite_path: Path
    verbose: bool = False
    show_logs: bool = False
    marker_prefix: str = DEFAULT_MARKER_PREFIX
    output_protocol: str = SET_OUTPUT
    env_file: str = ".env"
    input_file: str = ".input"
    input_prefix: str = "INPUT_"

    @classmethod
    def from_settings(cls, workflow_path, suite_path, settings, verbose=False, show_logs=False) -> RunContext:
        protocol = settings.get("outputs.protocol", SET_OUTPUT)
        if protocol not in PROTOCOLS:
            raise ConfigError("outputs.protocol", f"unknown output protocol '{protocol}', expected one of {PROTOCOLS}")
        return cls(
            workflow_path=Path(workflow_path),
            suite_path=Path(suite_path),
            verbose=verbose,
            show_logs=show_logs,
            marker_prefix=settings.get("markers.prefix", DEFAULT_MARKER_PREFIX),
            output_protocol=protocol,
            env_file=settings.get("runner.env_file", ".env"),
            input_file=settings.get("runner.input_file", ".input"),
            input_prefix=settings.get("runner.input_prefix", "INPUT_"),
        )


@dataclass
class RunResult:
    """Outcome of a single experiment."""
    title: str
    event: str
    passed: bool
    checks: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    exit_code: int | None = None
    timed_out: bool = False
    elapsed_seconds: float = 0.0

    @property
    def check_count(self) -> int:
        return len(self.checks)

    @property
    def pass_count(self) -> int:
        return sum(1 for c in self.checks if c["passed"])


@dataclass
class SuiteResult:
    """Aggregate of every experiment in a run."""
    workflow: str
    suite: str
    results: list[RunResult] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.passed)

    @property
    def passed(self) -> int:
        return self.total - self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.failed == 0 else 1

    def summary(self, verbose: bool = False) -> str:
        lines = []
        lines.append(f"\n{'=' * 66}")
        lines.append(f"  WEX: {self.workflow}")
        lines.append(f"  {self.suite}  —  {self.total} experiments in {self.elapsed_seconds:.1f}s")
        lines.append(f"{'=' * 66}")

        for r in self.results:
            icon = "✓" if r.passed else "✗"
            lines.append(f"  {icon} {r.title} [{r.event}]  {r.pass_count}/{r.check_count} checks")
            if verbose or not r.passed:
                for check in r.checks:
                    ci = "  ✓" if check["passed"] else "  ✗"
                    lines.append(f"      {ci} {check['name']}: {check['detail']}")
            if r.error:
                lines.append(f"      ERROR: {r.error}")

        lines.append(f"{'─' * 66}")
        if self.failed == 0:
            lines.append(f"  ✓ {self.passed}/{self.total} experiments passed")
        else:
            lines.append(f"  ✗ {self.failed}/{self.total} experiments failed")
        lines.append(f"{'=' * 66}\n")
        return "\n".join(lines)


# ═══════════════════════════════════════════════════════════════════
# Session
# ═══════════════════════════════════════════════════════════════════

class ExperimentSession:
    """
    A private staging directory holding one experiment's copy of the workflow.

    with ExperimentSession(context, experiment, staging_root) as session:
        session.prepare()
        execution = session.execute(driver)
    """

    def __init__(self, context: RunContext, experiment: Experiment, staging_root: Path):
        self.context = context
        self.experiment = experiment
        self.staging_root = Path(staging_root)
        self.directory: Path | None = None
        self.workflow_file: Path | None = None
        self.normalized = False
        self.mutated_steps: list[str] = []

    def __enter__(self) -> ExperimentSession:
        try:
            self.directory = Path(tempfile.mkdtemp(
                prefix=f"exp{self.experiment.index:03d}-", dir=self.staging_root))
            target_dir = self.directory / STAGED_WORKFLOW_DIR
            target_dir.mkdir(parents=True)
            self.workflow_file = target_dir / self.context.workflow_path.name
            shutil.copyfile(self.context.workflow_path, self.workflow_file)
        except OSError as e:
            self.close()
            raise ResourceError(f"Cannot stage workflow for '{self.experiment.title}': {e}") from e
        logger.debug("Staged %s in %s", self.context.workflow_path, self.directory)
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self) -> None:
        if self.directory is not None:
            shutil.rmtree(self.directory, ignore_errors=True)
            self.directory = None

    @property
    def relative_workflow(self) -> str:
        return str(STAGED_WORKFLOW_DIR / self.workflow_file.name)

    def prepare(self) -> None:
        """Normalize and mutate the staged copy; it is rewritten only if something changed."""
        doc = load_document(self.workflow_file)
        if is_reusable(doc):
            normalize(doc, self.experiment.event)
            self.normalized = True
        self.mutated_steps = mutate_steps(
            doc, self.experiment.step_overrides, self.context.output_protocol)
        if self.normalized or self.mutated_steps:
            save_document(doc, self.workflow_file)

    def execute(self, driver: ExecutionDriver) -> Execution:
        return driver.run(self.experiment.event, self.directory,
                          self.experiment.inputs, self.relative_workflow)


# ═══════════════════════════════════════════════════════════════════
# Runner
# ═══════════════════════════════════════════════════════════════════

def run_experiment(
    context: RunContext,
    experiment: Experiment,
    driver: ExecutionDriver,
    staging_root: Path,
    run_log: RunLogger,
) -> RunResult:
    """Run one experiment in its own session. Only ResourceError escapes."""
    idx = experiment.index
    run_log.on_experiment_start(idx, experiment.title, experiment.event)
    t0 = time.time()

    def _failed(error: str, execution: Execution | None = None) -> RunResult:
        run_log.on_experiment_error(idx, error)
        return RunResult(
            title=experiment.title,
            event=experiment.event,
            passed=False,
            error=error,
            exit_code=execution.exit_code if execution else None,
            timed_out=execution.timed_out if execution else False,
            elapsed_seconds=time.time() - t0,
        )

    with ExperimentSession(context, experiment, staging_root) as session:
        try:
            session.prepare()
        except (MutationError, ConfigError) as e:
            return _failed(str(e))
        if session.normalized:
            run_log.on_trigger_normalized(idx, experiment.event)
        if session.mutated_steps:
            run_log.on_steps_mutated(idx, session.mutated_steps)

        run_log.on_runner_invoked(
            idx, driver.runner.build_command(experiment.event, session.relative_workflow),
            str(session.directory))
        try:
            execution = session.execute(driver)
        except ExecutionFault as e:
            return _failed(str(e))
        run_log.on_runner_finished(idx, execution.exit_code, execution.timed_out,
                                   execution.elapsed_seconds, len(execution.log))

    if execution.timed_out:
        return _failed("runner timed out", execution)

    checks = check_log(execution.log, experiment.assertions.includes,
                       experiment.assertions.excludes, context.marker_prefix)
    passed = all(c["passed"] for c in checks)
    run_log.on_assertion_result(idx, passed, checks)
    return RunResult(
        title=experiment.title,
        event=experiment.event,
        passed=passed,
        checks=checks,
        exit_code=execution.exit_code,
        elapsed_seconds=time.time() - t0,
    )


def _check_workflow(path: Path) -> None:
    doc = load_document(path)
    if not isinstance(doc, dict):
        raise ConfigError(str(path), "workflow must be a mapping")
    if "jobs" not in doc:
        raise ConfigError(str(path), "workflow declares no jobs")


def run_suite(
    context: RunContext,
    experiments: list[Experiment],
    runner: WorkflowRunner,
    run_log: RunLogger | None = None,
    progress: TextIO | None = None,
) -> SuiteResult:
    """
    Run every experiment sequentially and aggregate the results.

    Raises ConfigError if the workflow is unusable and ResourceError if
    staging fails; the staging root is removed either way.
    """
    _check_workflow(context.workflow_path)
    run_log = run_log or RunLogger(workflow=str(context.workflow_path), suite=str(context.suite_path))
    progress = progress or sys.stderr
    driver = ExecutionDriver(runner, context.env_file, context.input_file, context.input_prefix)

    result = SuiteResult(workflow=str(context.workflow_path), suite=str(context.suite_path))
    total = len(experiments)
    run_log.on_suite_start(total)
    t0 = time.time()

    try:
        staging = tempfile.TemporaryDirectory(prefix="wex-")
    except OSError as e:
        raise ResourceError(f"Cannot create staging directory: {e}") from e

    with staging as staging_root:
        logger.debug("Staging root: %s", staging_root)
        for n, experiment in enumerate(experiments, 1):
            tag = f"[{n}/{total}]"
            print(f"  {tag} ▶ {experiment.title} [{experiment.event}] ...",
                  end="\n" if context.show_logs else "", file=progress, flush=True)
            rr = run_experiment(context, experiment, driver, Path(staging_root), run_log)
            result.results.append(rr)
            icon = "✓" if rr.passed else "✗"
            suffix = f" — {rr.error}" if rr.error else f" {rr.pass_count}/{rr.check_count} checks"
            print(f" {icon}{suffix} ({rr.elapsed_seconds:.1f}s)", file=progress, flush=True)

    result.elapsed_seconds = time.time() - t0
    run_log.on_suite_end(result.total, result.failed, result.elapsed_seconds)
    return result
