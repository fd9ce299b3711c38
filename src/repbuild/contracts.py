"""Public result models for repbuild."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from repbuild.codes import NodeStatus


class NodeOutcome(BaseModel):
    """What happened to one node during a build run."""
    node_id: str
    status: NodeStatus
    reason: Optional[str] = None  # failure reason
    upstream: Optional[str] = None  # failed upstream node, for SKIPPED
    stale_reasons: List[str] = Field(default_factory=list)
    duration: Optional[float] = None  # seconds spent in the stage executor

    def describe(self) -> str:
        """Human-readable outcome, as printed in the final report."""
        if self.status == NodeStatus.BUILT:
            return "Built"
        if self.status == NodeStatus.FRESH:
            return "Skipped (already fresh)"
        if self.status == NodeStatus.FAILED:
            return f"Failed: {self.reason}"
        if self.status == NodeStatus.SKIPPED:
            return f"Skipped (upstream failure: {self.upstream})"
        if self.status == NodeStatus.PLANNED:
            return "Would build (" + ", ".join(self.stale_reasons) + ")"
        return "Cancelled"


class BuildReport(BaseModel):
    """Result of a build run, with outcomes in execution order."""
    requested: List[str]
    outcomes: List[NodeOutcome]
    cancelled: bool = False
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.cancelled and not self.ids_with(NodeStatus.FAILED) and not self.ids_with(NodeStatus.SKIPPED)

    def ids_with(self, status: NodeStatus) -> List[str]:
        return [o.node_id for o in self.outcomes if o.status == status]

    @property
    def built(self) -> List[str]:
        return self.ids_with(NodeStatus.BUILT)

    @property
    def failed(self) -> List[str]:
        return self.ids_with(NodeStatus.FAILED)

    @property
    def skipped(self) -> List[str]:
        return self.ids_with(NodeStatus.SKIPPED)

    @property
    def fresh(self) -> List[str]:
        return self.ids_with(NodeStatus.FRESH)

    def outcome(self, node_id: str) -> Optional[NodeOutcome]:
        for o in self.outcomes:
            if o.node_id == node_id:
                return o
        return None

    def summary_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for o in self.outcomes:
            counts[o.status.value] = counts.get(o.status.value, 0) + 1
        return counts

    def format_text(self) -> str:
        """Plain-text report: one line per node, then a totals line."""
        lines = []
        width = max((len(o.node_id) for o in self.outcomes), default=0)
        for o in self.outcomes:
            lines.append(f"  {o.node_id.ljust(width)}  {o.describe()}")
        counts = self.summary_counts()
        totals = ", ".join(f"{k.lower()}={v}" for k, v in sorted(counts.items()))
        header = "Build plan" if self.dry_run else "Build summary"
        if self.cancelled:
            header += " (cancelled)"
        return "\n".join([f"{header}: {totals or 'nothing to do'}"] + lines)


class CleanReport(BaseModel):
    """Result of a clean operation."""
    node_ids: List[str]
    removed: List[str] = Field(default_factory=list)  # output paths deleted
    absent: List[str] = Field(default_factory=list)  # output paths that did not exist
    records_removed: int = 0

    def format_text(self) -> str:
        lines = [f"Cleaned {len(self.node_ids)} node(s): removed {len(self.removed)} file(s)"]
        lines.extend(f"  removed {path}" for path in self.removed)
        return "\n".join(lines)


class NodeState(BaseModel):
    """Staleness of one node, as reported by `status`."""
    node_id: str
    stale: bool
    reasons: List[str] = Field(default_factory=list)
    outputs: List[str] = Field(default_factory=list)

    def describe(self) -> str:
        if not self.stale:
            return "fresh"
        return "stale: " + "; ".join(self.reasons)
