"""Status and reason code constants for repbuild.

These constants prevent stringly-typed outcomes and ensure client code
compares against the correct values.
"""

from enum import Enum


class Staleness(str, Enum):
    """Verdict of the staleness detector for one node."""

    STALE = "STALE"
    FRESH = "FRESH"


class StaleReason(str, Enum):
    """Why a node is considered stale."""

    OUTPUT_MISSING = "OUTPUT_MISSING"
    NO_RECORD = "NO_RECORD"
    DEPENDENCY_CHANGED = "DEPENDENCY_CHANGED"
    DEPENDENCY_MISSING = "DEPENDENCY_MISSING"
    UPSTREAM_REBUILT = "UPSTREAM_REBUILT"
    UPSTREAM_SCHEDULED = "UPSTREAM_SCHEDULED"
    FORCED = "FORCED"


class NodeStatus(str, Enum):
    """Final outcome of a node in a build run."""

    BUILT = "BUILT"
    FRESH = "FRESH"  # skipped, already up to date
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"  # skipped because an upstream node failed
    CANCELLED = "CANCELLED"
    PLANNED = "PLANNED"  # dry run: would be built
