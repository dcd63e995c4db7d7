"""
Wex — Command Line

Usage:
    wex -w .github/workflows/ci.yml -c wex.yaml
    wex -w ci.yml -c wex.yaml --verbose --logs
    wex -w ci.yml -c wex.yaml --list
    wex --version

Exit status: 0 when every experiment passed (an empty suite passes),
1 when any experiment failed or an argument/file was missing or invalid,
130 when interrupted.
"""

from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path
from typing import NoReturn

from wex import __version__
from wex.config_loader import load_settings
from wex.driver import ActRunner
from wex.errors import ConfigError, ResourceError
from wex.experiments import Experiment, load_suite
from wex.logging import RunLogger, configure_logging, get_logger
from wex.orchestrator import RunContext, run_suite

logger = get_logger("cli")

NAME = "Wex"

BANNER = r"""  __      __
 /  \    /  \ ____ ___  ___
 \   \/\/   // __ \\  \/  /
  \        /\  ___/ >    <
   \__/\  /  \___  >__/\_ \
        \/       \/      \/
"""


class _Parser(argparse.ArgumentParser):
    """Usage errors exit 1, like every other invalid-argument path."""

    def error(self, message):
        self.print_usage(sys.stderr)
        _fail(message)


def _fail(message: str) -> NoReturn:
    print(f"! {message}", file=sys.stderr)
    sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="wex",
        description=BANNER + "\nRun workflow experiments against a local workflow runner.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-w", "--workflow", help="Workflow to use")
    parser.add_argument("-c", "--config", help="Config file with experiments")
    parser.add_argument("--verbose", action="store_true",
                        help="Make the workflow runner log more information")
    parser.add_argument("-D", "--debug", action="store_true",
                        help="Log additional information to see what Wex is doing")
    parser.add_argument("-l", "--logs", action="store_true",
                        help="Show runner logs live while capturing them")
    parser.add_argument("--settings", help="Settings YAML (default: ./wex.yaml if present)")
    parser.add_argument("--runner", help="Runner command line (default: act)")
    parser.add_argument("--timeout", type=float, help="Seconds before a runner is killed (0 = no limit)")
    parser.add_argument("--list", action="store_true", help="List experiments and exit")
    parser.add_argument("--version", action="store_true", help="Print version")
    return parser


def _require_file(value: str | None, label: str) -> Path:
    if not value:
        _fail(f"Missing {label.lower()} argument. See --help.")
    path = Path(value)
    if not path.is_file():
        _fail(f"{label} file '{value}' does not exist.")
    return path


def _print_experiments(experiments: list[Experiment]) -> None:
    print(f"\n  {len(experiments)} experiment(s)")
    print(f"  {'─' * 56}")
    for exp in experiments:
        steps = ", ".join(exp.step_overrides) if exp.step_overrides else "—"
        print(f"  {exp.index + 1:3d}. {exp.title}")
        print(f"       event:    {exp.event}")
        print(f"       stubbed:  {steps}")
        print(f"       inputs:   {len(exp.inputs or {})}")
        print(f"       markers:  +{len(exp.assertions.includes)} -{len(exp.assertions.excludes)}")
    print()


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"{NAME} v{__version__}")
        return 0
    if not args.workflow and not args.config:
        parser.print_help()
        return 0

    workflow_path = _require_file(args.workflow, "Workflow")
    config_path = _require_file(args.config, "Config")

    try:
        settings = load_settings(path=args.settings)
    except ConfigError as e:
        _fail(str(e))
    if args.runner:
        settings.override("runner.command", args.runner)
    if args.timeout is not None:
        settings.override("runner.timeout_seconds", args.timeout)
    if args.debug:
        settings.override("logging.level", "DEBUG")
    configure_logging(level=settings.get("logging.level"), fmt=settings.get("logging.format"))
    logger.debug("Wex trying `%s` with config `%s` (settings: %s)",
                 workflow_path, config_path, settings.sources)

    try:
        experiments = load_suite(config_path)
    except ConfigError as e:
        _fail(str(e))

    if args.list:
        _print_experiments(experiments)
        return 0

    try:
        context = RunContext.from_settings(
            workflow_path, config_path, settings, verbose=args.verbose, show_logs=args.logs)
        runner = ActRunner(
            command=str(settings.get("runner.command", "act")),
            verbose=args.verbose,
            echo=sys.stdout.buffer if args.logs else None,
            timeout=settings.get("runner.timeout_seconds"),
            extra_args=settings.get("runner.extra_args") or (),
            env_file=context.env_file,
            input_file=context.input_file,
        )
    except (ConfigError, ValueError) as e:
        _fail(str(e))

    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        result = run_suite(context, experiments, runner,
                           RunLogger(workflow=str(workflow_path), suite=str(config_path)))
    except (ConfigError, ResourceError) as e:
        _fail(str(e))
    except KeyboardInterrupt:
        print("\n! Interrupted.", file=sys.stderr)
        return 130
    finally:
        signal.signal(signal.SIGTERM, previous)

    print(result.summary(verbose=args.verbose))
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
