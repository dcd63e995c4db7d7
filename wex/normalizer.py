"""
Wex — Workflow Normalizer

Reusable workflows are declared with a callable-only trigger:

    on:
      workflow_call:
        inputs: ...

Local runners cannot fire `workflow_call` directly, so the staged copy's
trigger is rewritten to the literal event under test (`on: pull_request`).
Only the staged copy is ever touched.
"""

from __future__ import annotations

from typing import Any

from wex.logging import get_logger

logger = get_logger("normalizer")

CALLABLE_TRIGGER = "workflow_call"
TRIGGER_KEY = "on"


def _trigger_key(doc: Any) -> Any:
    """The key holding the trigger declaration, tolerating YAML 1.1 `on: -> True`."""
    if not isinstance(doc, dict):
        return None
    if TRIGGER_KEY in doc:
        return TRIGGER_KEY
    if True in doc:
        return True
    return None


def get_trigger(doc: Any) -> Any:
    key = _trigger_key(doc)
    return None if key is None else doc[key]


def is_reusable(doc: Any) -> bool:
    """True iff the trigger is a mapping whose first declared key is `workflow_call`."""
    trigger = get_trigger(doc)
    if not isinstance(trigger, dict) or not trigger:
        return False
    return next(iter(trigger)) == CALLABLE_TRIGGER


def normalize(doc: dict, event: str) -> None:
    """
    Rewrite the trigger declaration in place to the literal `event`.

    Idempotent: the trigger lives under exactly one `on` key afterwards,
    whatever it held before, and key order is preserved.
    """
    if not isinstance(doc, dict):
        raise TypeError("workflow document must be a mapping")
    key = _trigger_key(doc)
    if key is None:
        doc[TRIGGER_KEY] = event
    elif key is True:
        # Rebuild so `on` keeps its original position in the document.
        items = [(TRIGGER_KEY if k is True else k, event if k is True else v)
                 for k, v in doc.items()]
        doc.clear()
        doc.update(items)
    else:
        doc[key] = event
    logger.debug("Trigger normalized to '%s'", event)
