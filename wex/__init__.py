"""
Wex — Workflow Experiments

Runs declarative experiments against a CI workflow definition: each
experiment replaces selected steps with stand-ins that emit fixed outputs,
triggers a local workflow runner with a chosen event, and checks the
runner's log for the steps that did (or did not) run.

The subprocess runner, ActRunner, lives in wex.driver.
"""

__version__ = "0.1.0"

from wex.errors import (
    WexError, ConfigError, MutationError, ExecutionFault, ResourceError,
)
from wex.experiments import Experiment, Assertions, load_suite
from wex.assertions import assert_log
from wex.normalizer import is_reusable, normalize
from wex.mutator import mutate_steps
from wex.orchestrator import RunContext, RunResult, SuiteResult, run_suite
