"""repbuild: incremental, dependency-aware builds for declared file pipelines."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("repbuild")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
from repbuild.api import Project, load_project, build, clean, status, list_targets
from repbuild.codes import NodeStatus, Staleness, StaleReason
from repbuild.contracts import BuildReport, CleanReport, NodeOutcome, NodeState
from repbuild.executors import (
    CallableStageExecutor,
    StageExecutor,
    StageRequest,
    StageResult,
    SubprocessStageExecutor,
)

__all__ = [
    "__version__",
    "Project",
    "load_project",
    "build",
    "clean",
    "status",
    "list_targets",
    "NodeStatus",
    "Staleness",
    "StaleReason",
    "BuildReport",
    "CleanReport",
    "NodeOutcome",
    "NodeState",
    "StageExecutor",
    "StageRequest",
    "StageResult",
    "SubprocessStageExecutor",
    "CallableStageExecutor",
]
