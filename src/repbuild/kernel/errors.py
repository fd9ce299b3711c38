"""Error taxonomy for the build engine.

Structural errors (declaration problems, duplicate outputs, cycles, unknown
targets) abort a run before any side effect. Stage failures are contained to
the failing node's downstream closure and surface in the build report.
"""

from typing import Iterable, List, Optional


class RepbuildError(Exception):
    """Base exception for repbuild errors."""
    pass


class DeclarationError(RepbuildError, ValueError):
    """Raised when a build declaration is malformed."""
    pass


class DuplicateOutputError(RepbuildError):
    """Raised when two declared nodes claim the same output path."""
    def __init__(self, path: str, first_node: str, second_node: str):
        self.path = path
        self.first_node = first_node
        self.second_node = second_node
        super().__init__(
            f"Output '{path}' is declared by both '{first_node}' and '{second_node}'"
        )


class CycleError(RepbuildError):
    """Raised when a dependency or alias cycle is detected."""
    def __init__(self, cycle: List[str], kind: str = "dependency"):
        self.kind = kind
        # Format cycle for message (remove duplicate final node)
        if len(cycle) > 1 and cycle[0] == cycle[-1]:
            cycle_ids = cycle[:-1]
        else:
            cycle_ids = cycle
        self.cycle = list(cycle_ids)
        cycle_str = " -> ".join(cycle_ids) + f" -> {cycle_ids[0]}"
        super().__init__(f"Cycle detected in {kind} graph:\n  Cycle: {cycle_str}")


class UnknownTargetError(RepbuildError):
    """Raised when a requested target is neither a node, an output nor an alias."""
    def __init__(self, name: str, available: Optional[Iterable[str]] = None, context: str = ""):
        self.name = name
        self.available = sorted(available) if available is not None else []
        msg = f"Unknown target '{name}'"
        if context:
            msg += f" ({context})"
        if self.available:
            msg += f". Available: {', '.join(self.available)}"
        super().__init__(msg)


class UnknownAliasError(UnknownTargetError):
    """Raised when an undeclared alias name is resolved."""
    def __init__(self, name: str, available: Optional[Iterable[str]] = None):
        self.name = name
        self.available = sorted(available) if available is not None else []
        msg = f"Unknown alias '{name}'"
        if self.available:
            msg += f". Declared aliases: {', '.join(self.available)}"
        RepbuildError.__init__(self, msg)


class StageExecutionFailure(RepbuildError):
    """A stage executor invocation failed for one node."""
    def __init__(self, node_id: str, reason: str):
        self.node_id = node_id
        self.reason = reason
        super().__init__(f"Node '{node_id}' failed: {reason}")


class MissingDependencyFileError(StageExecutionFailure):
    """A declared dependency path does not exist at execution time."""
    def __init__(self, node_id: str, path: str):
        self.path = path
        super().__init__(node_id, f"missing dependency: {path}")
