"""
Wex — Step Mutator

Turns selected workflow steps into stand-ins that only emit outputs.

Given overrides {step_id: {output_key: value}}, every targeted step
(searched by `id` across all jobs) loses its action reference and gets a
run body with one output statement per key, in declaration order. The
stand-in always runs under bash in the default working directory:

    - id: build                         - id: build
      uses: docker/build-push-action@v5    name: build
      with: {push: true}           ->      run: echo '::set-output name=result::5'
                                          shell: bash

Two output protocols are supported:
  set-output     echo '::set-output name=K::V'          (parsed from the log)
  github-output  echo 'K=V' >> "$GITHUB_OUTPUT"         (file-based)
"""

from __future__ import annotations

import json
import shlex
from typing import Any, Mapping

from wex.document import delete_path, find_step, get_path, set_path
from wex.errors import MutationError
from wex.logging import get_logger

logger = get_logger("mutator")

SET_OUTPUT = "set-output"
GITHUB_OUTPUT = "github-output"
PROTOCOLS = (SET_OUTPUT, GITHUB_OUTPUT)

# Keys that only make sense for an external action or for the real run body.
_STRIPPED_KEYS = ("uses", "with", "working-directory")

# Pinned on every stand-in; overrides job and workflow `defaults.run.shell`.
STUB_SHELL = "bash"

NOOP_BODY = ":"


def format_output_value(value: Any) -> str:
    """Strings verbatim; other scalars and containers as compact JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def _escape_command_value(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def render_output(key: str, value: Any, protocol: str = SET_OUTPUT) -> str:
    """One shell statement that sets output `key` to `value`."""
    text = format_output_value(value)
    if protocol == SET_OUTPUT:
        return "echo " + shlex.quote(f"::set-output name={key}::{_escape_command_value(text)}")
    if protocol == GITHUB_OUTPUT:
        if "\n" in text:
            delimiter = "WEX_EOF"
            return (f"printf '%s<<{delimiter}\\n%s\\n{delimiter}\\n' "
                    f"{shlex.quote(key)} {shlex.quote(text)} >> \"$GITHUB_OUTPUT\"")
        return "echo " + shlex.quote(f"{key}={text}") + ' >> "$GITHUB_OUTPUT"'
    raise ValueError(f"Unknown output protocol '{protocol}'. Expected one of {PROTOCOLS}")


def render_outputs(outputs: Mapping[str, Any] | None, protocol: str = SET_OUTPUT) -> str:
    """Newline-joined output statements, or the shell no-op when there are none."""
    if not outputs:
        return NOOP_BODY
    return "\n".join(render_output(str(k), v, protocol) for k, v in outputs.items())


def mutate_steps(
    doc: Any,
    overrides: Mapping[str, Mapping[str, Any] | None] | None,
    protocol: str = SET_OUTPUT,
) -> list[str]:
    """
    Rewrite every step named in `overrides` in place.

    Returns the mutated step ids. With no overrides the document is left
    untouched. Every id is resolved before anything is changed, so a
    MutationError leaves the document as it was.
    """
    if not overrides:
        return []
    if protocol not in PROTOCOLS:
        raise ValueError(f"Unknown output protocol '{protocol}'. Expected one of {PROTOCOLS}")

    targets = []
    for step_id, outputs in overrides.items():
        path = find_step(doc, step_id)
        if path is None:
            raise MutationError(step_id)
        if outputs is not None and not isinstance(outputs, Mapping):
            raise MutationError(step_id, "outputs must be a mapping of output name to value")
        targets.append((step_id, path, outputs))

    for step_id, path, outputs in targets:
        for key in _STRIPPED_KEYS:
            delete_path(doc, path + (key,))
        if get_path(doc, path + ("name",)) is None:
            set_path(doc, path + ("name",), step_id)
        set_path(doc, path + ("run",), render_outputs(outputs, protocol))
        set_path(doc, path + ("shell",), STUB_SHELL)
        logger.debug("Step '%s' now emits %d output(s)", step_id, len(outputs or {}))

    return [step_id for step_id, _, _ in targets]
