"""
Wex — Document Accessor

Loads workflow and suite documents into plain mapping/sequence/scalar
trees and addresses nodes by explicit tuple paths:

    doc = load_document("ci.yml")
    get_path(doc, ("jobs", "build", "steps", 0, "run"))
    set_path(doc, ("on",), "push")
    delete_path(doc, ("jobs", "build", "steps", 0, "uses"))
    save_document(doc, staged_path)

YAML 1.1 resolves bare `on`/`off`/`yes`/`no` to booleans, which would turn
a workflow's `on:` trigger key into `True`. The loader and dumper here
only resolve `true`/`false`, so keys round-trip as the strings workflow
authors wrote.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterator

import yaml

from wex.errors import ConfigError

NodePath = tuple[Any, ...]

_BOOL_TAG = "tag:yaml.org,2002:bool"
_BOOL_RE = re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$")


def _strict_bool_resolvers(resolvers: dict) -> dict:
    return {
        first: [(tag, regexp) for tag, regexp in entries if tag != _BOOL_TAG]
        for first, entries in resolvers.items()
    }


class WorkflowLoader(yaml.SafeLoader):
    """SafeLoader that keeps `on`, `off`, `yes` and `no` as strings."""


class WorkflowDumper(yaml.SafeDumper):
    """SafeDumper matching WorkflowLoader, with block style for multi-line strings."""


for _cls in (WorkflowLoader, WorkflowDumper):
    _cls.yaml_implicit_resolvers = _strict_bool_resolvers(yaml.SafeLoader.yaml_implicit_resolvers)
    _cls.add_implicit_resolver(_BOOL_TAG, _BOOL_RE, list("tTfF"))


def _represent_str(dumper: WorkflowDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


WorkflowDumper.add_representer(str, _represent_str)


# ═══════════════════════════════════════════════════════════════════
# Load / dump
# ═══════════════════════════════════════════════════════════════════

def parse_document(text: str, source: str = "<string>") -> Any:
    """Parse YAML (or JSON) text into a document tree."""
    try:
        return yaml.load(text, Loader=WorkflowLoader)
    except yaml.YAMLError as e:
        raise ConfigError(source, f"invalid YAML: {e}") from e


def load_document(path: str | Path) -> Any:
    """Read and parse a document from disk. Raises ConfigError on any failure."""
    p = Path(path)
    if not p.is_file():
        raise ConfigError(str(p), "file does not exist")
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(str(p), f"cannot read file: {e}") from e
    return parse_document(text, source=str(p))


def dump_document(doc: Any) -> str:
    """Serialize a document tree, preserving key order."""
    return yaml.dump(
        doc,
        Dumper=WorkflowDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=4096,
    )


def save_document(doc: Any, path: str | Path) -> None:
    Path(path).write_text(dump_document(doc), encoding="utf-8")


# ═══════════════════════════════════════════════════════════════════
# Path addressing
# ═══════════════════════════════════════════════════════════════════

_MISSING = object()


def _child(node: Any, key: Any) -> Any:
    if isinstance(node, dict):
        return node.get(key, _MISSING)
    if isinstance(node, list) and isinstance(key, int) and -len(node) <= key < len(node):
        return node[key]
    return _MISSING


def get_path(doc: Any, path: NodePath, default: Any = None) -> Any:
    """Return the node at `path`, or `default` if any segment is missing."""
    current = doc
    for key in path:
        current = _child(current, key)
        if current is _MISSING:
            return default
    return current


def has_path(doc: Any, path: NodePath) -> bool:
    return get_path(doc, path, _MISSING) is not _MISSING


def set_path(doc: Any, path: NodePath, value: Any) -> None:
    """
    Set the node at `path`, creating intermediate mappings as needed.
    Sequence segments must already exist.
    """
    if not path:
        raise ValueError("cannot replace the document root")
    current = doc
    for key in path[:-1]:
        nxt = _child(current, key)
        if nxt is _MISSING:
            if not isinstance(current, dict):
                raise KeyError(f"cannot create {key!r} inside a {type(current).__name__}")
            nxt = current[key] = {}
        current = nxt
    last = path[-1]
    if isinstance(current, dict):
        current[last] = value
    elif isinstance(current, list) and isinstance(last, int):
        current[last] = value
    else:
        raise KeyError(f"cannot set {last!r} on a {type(current).__name__}")


def delete_path(doc: Any, path: NodePath) -> bool:
    """Delete the node at `path`. Returns False if it was not there."""
    if not path:
        raise ValueError("cannot delete the document root")
    parent = get_path(doc, path[:-1], _MISSING)
    last = path[-1]
    if isinstance(parent, dict) and last in parent:
        del parent[last]
        return True
    if isinstance(parent, list) and _child(parent, last) is not _MISSING:
        del parent[last]
        return True
    return False


# ═══════════════════════════════════════════════════════════════════
# Workflow-shaped queries
# ═══════════════════════════════════════════════════════════════════

def iter_steps(doc: Any) -> Iterator[tuple[NodePath, Any]]:
    """Yield (path, step) for every step of every job, in document order."""
    jobs = get_path(doc, ("jobs",))
    if not isinstance(jobs, dict):
        return
    for job_name, job in jobs.items():
        steps = job.get("steps") if isinstance(job, dict) else None
        if not isinstance(steps, list):
            continue
        for idx, step in enumerate(steps):
            yield ("jobs", job_name, "steps", idx), step


def find_step(doc: Any, step_id: str) -> NodePath | None:
    """Path of the first step whose `id` is `step_id`, searched across all jobs."""
    for path, step in iter_steps(doc):
        if isinstance(step, dict) and step.get("id") == step_id:
            return path
    return None
