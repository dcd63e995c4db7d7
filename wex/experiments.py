"""
Wex — Experiment Suite

Loads the experiment file (YAML or JSON):

    experiments:
      - it: builds on push
        push:
          inputs:  {environment: staging}
          outputs: {build: {result: "5"}}
          test:
            includes: [build]
            excludes: [deploy]

Each entry holds a title (`it`) and exactly one event key. Validation is
done once, up front; any malformed entry aborts the load with a
ConfigError naming the entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from wex.document import load_document
from wex.errors import ConfigError
from wex.logging import get_logger

logger = get_logger("experiments")

TITLE_KEY = "it"
EVENT_BODY_KEYS = {"inputs", "outputs", "test"}
TEST_KEYS = {"includes", "excludes"}

_SCALARS = (str, int, float, bool, type(None))


@dataclass(frozen=True)
class Assertions:
    """Markers that must (includes) or must not (excludes) appear as ran."""
    includes: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()


@dataclass(frozen=True)
class Experiment:
    """One declared scenario."""
    title: str
    event: str
    inputs: dict[str, Any] | None = None
    step_overrides: dict[str, dict[str, Any]] | None = None
    assertions: Assertions = field(default_factory=Assertions)
    index: int = 0


# ═══════════════════════════════════════════════════════════════════
# Validation helpers
# ═══════════════════════════════════════════════════════════════════

def _ordered_markers(value: Any, where: str, source: str) -> tuple[str, ...]:
    """Validate a marker list; duplicates collapse, first occurrence wins."""
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigError(source, f"{where} must be a list of strings")
    markers: list[str] = []
    for item in value:
        if not isinstance(item, (str, int, float)) or isinstance(item, bool):
            raise ConfigError(source, f"{where} entries must be strings, got {item!r}")
        item = str(item)
        if item not in markers:
            markers.append(item)
    return tuple(markers)


def _scalar_mapping(value: Any, where: str, source: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(source, f"{where} must be a mapping")
    result = {}
    for key, item in value.items():
        if not isinstance(item, _SCALARS):
            raise ConfigError(source, f"{where}.{key} must be a scalar, got {type(item).__name__}")
        result[str(key)] = item
    return result


def parse_experiment(entry: Any, index: int, source: str = "") -> Experiment:
    """Validate one suite entry and build its Experiment."""
    where = f"experiments[{index}]"
    if not isinstance(entry, dict):
        raise ConfigError(source, f"{where} must be a mapping")

    title = entry.get(TITLE_KEY)
    if not isinstance(title, str) or not title.strip():
        raise ConfigError(source, f"{where} is missing its '{TITLE_KEY}' title")
    where = f"{where} ('{title}')"

    events = [k for k in entry if k != TITLE_KEY]
    if not events:
        raise ConfigError(source, f"{where} declares no event")
    if len(events) > 1:
        raise ConfigError(source, f"{where} declares more than one event: {sorted(map(str, events))}")
    event = events[0]
    if not isinstance(event, str) or not event:
        raise ConfigError(source, f"{where} has an invalid event key {event!r}")

    body = entry[event]
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise ConfigError(source, f"{where}.{event} must be a mapping")
    unknown = set(body) - EVENT_BODY_KEYS
    if unknown:
        raise ConfigError(source, f"{where}.{event} has unknown keys: {sorted(map(str, unknown))}")

    inputs = None
    if body.get("inputs") is not None:
        inputs = _scalar_mapping(body["inputs"], f"{where}.{event}.inputs", source)

    overrides = None
    if body.get("outputs") is not None:
        raw = body["outputs"]
        if not isinstance(raw, dict):
            raise ConfigError(source, f"{where}.{event}.outputs must be a mapping of step id to outputs")
        overrides = {}
        for step_id, outputs in raw.items():
            step_where = f"{where}.{event}.outputs.{step_id}"
            overrides[str(step_id)] = {} if outputs is None else _scalar_mapping(outputs, step_where, source)

    test = body.get("test")
    if test is None:
        logger.warning("%s has no test block; it passes whatever the log holds", where)
        test = {}
    if not isinstance(test, dict):
        raise ConfigError(source, f"{where}.{event}.test must be a mapping")
    unknown = set(test) - TEST_KEYS
    if unknown:
        raise ConfigError(source, f"{where}.{event}.test has unknown keys: {sorted(map(str, unknown))}")

    return Experiment(
        title=title,
        event=event,
        inputs=inputs,
        step_overrides=overrides,
        assertions=Assertions(
            includes=_ordered_markers(test.get("includes"), f"{where}.{event}.test.includes", source),
            excludes=_ordered_markers(test.get("excludes"), f"{where}.{event}.test.excludes", source),
        ),
        index=index,
    )


# ═══════════════════════════════════════════════════════════════════
# Suite loader
# ═══════════════════════════════════════════════════════════════════

def load_suite(path: str | Path) -> list[Experiment]:
    """
    Load and validate every experiment in the suite file.

    An empty suite is tolerated (it reports 0/0 and passes) but logged.
    """
    source = str(path)
    doc = load_document(path)
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ConfigError(source, "suite must be a mapping with an 'experiments' list")

    entries = doc.get("experiments")
    if entries is None:
        entries = []
    if not isinstance(entries, list):
        raise ConfigError(source, "'experiments' must be a list")

    experiments = [parse_experiment(entry, idx, source) for idx, entry in enumerate(entries)]
    if not experiments:
        logger.warning("Suite %s declares no experiments", source)
    return experiments
