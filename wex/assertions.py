"""
Wex — Log Assertions

Classifies a runner log against include/exclude markers. A marker is a
step name; it is searched as the runner's "step ran" line:

    marker "build"  ->  "⭐ Run Main build"

Pass iff every include pattern occurs and no exclude pattern occurs.
Pure functions, no I/O.
"""

from __future__ import annotations

from typing import Any, Iterable

DEFAULT_MARKER_PREFIX = "⭐ Run Main "


def marker_pattern(marker: str, prefix: str = DEFAULT_MARKER_PREFIX) -> str:
    return f"{prefix}{marker}"


def check_log(
    log: str,
    includes: Iterable[str] | None = None,
    excludes: Iterable[str] | None = None,
    prefix: str = DEFAULT_MARKER_PREFIX,
) -> list[dict[str, Any]]:
    """
    One check per marker, in declaration order:
    [{name, marker, pattern, passed, detail}]
    """
    checks = []
    for marker in includes or ():
        pattern = marker_pattern(marker, prefix)
        found = pattern in log
        checks.append({
            "name": "includes",
            "marker": marker,
            "pattern": pattern,
            "passed": found,
            "detail": f"'{marker}' ran" if found else f"'{marker}' did not run",
        })
    for marker in excludes or ():
        pattern = marker_pattern(marker, prefix)
        found = pattern in log
        checks.append({
            "name": "excludes",
            "marker": marker,
            "pattern": pattern,
            "passed": not found,
            "detail": f"'{marker}' ran but should not have" if found else f"'{marker}' did not run",
        })
    return checks


def assert_log(
    log: str,
    includes: Iterable[str] | None = None,
    excludes: Iterable[str] | None = None,
    prefix: str = DEFAULT_MARKER_PREFIX,
) -> bool:
    """AND over includes, NONE over excludes. Absent lists are vacuously satisfied."""
    return all(c["passed"] for c in check_log(log, includes, excludes, prefix))
