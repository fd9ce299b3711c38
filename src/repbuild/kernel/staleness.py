"""Staleness detection and build planning."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from repbuild.codes import Staleness, StaleReason

from .graph import BuildGraph
from .hash_utils import fingerprint_path
from .signatures import SignatureStore

logger = logging.getLogger(__name__)


@dataclass
class StalenessVerdict:
    """Staleness of one node, with every reason that applies."""
    node_id: str
    reasons: List[Tuple[StaleReason, Optional[str]]] = field(default_factory=list)  # (code, subject)

    @property
    def status(self) -> Staleness:
        return Staleness.STALE if self.reasons else Staleness.FRESH

    @property
    def stale(self) -> bool:
        return bool(self.reasons)

    def add(self, reason: StaleReason, subject: Optional[str] = None) -> None:
        self.reasons.append((reason, subject))

    def reason_codes(self) -> List[StaleReason]:
        return [code for code, _ in self.reasons]

    def describe(self) -> List[str]:
        return [f"{code.value}: {subject}" if subject else code.value for code, subject in self.reasons]


class StalenessDetector:
    """Decides whether a node's outputs are out of date.

    A node is stale when any declared output is missing, when it has no
    record, when any input's current fingerprint differs from the one recorded
    after its last successful run, or when an upstream node completed a build
    after this node's last build. The store is only read here.
    """

    def __init__(self, graph: BuildGraph, store: SignatureStore, root: Path):
        self.graph = graph
        self.store = store
        self.root = Path(root)
        self._fingerprints: Dict[str, Optional[str]] = {}

    def fingerprint(self, path: str) -> Optional[str]:
        """Current fingerprint of a project path, memoized for this detector."""
        if path not in self._fingerprints:
            self._fingerprints[path] = fingerprint_path(self.root / path)
        return self._fingerprints[path]

    def check(self, node_id: str) -> StalenessVerdict:
        node = self.graph.get_node(node_id)
        verdict = StalenessVerdict(node_id)

        for output in node.outputs:
            if not (self.root / output).exists():
                verdict.add(StaleReason.OUTPUT_MISSING, output)

        record = self.store.get(node_id)
        if record is None:
            verdict.add(StaleReason.NO_RECORD)
            return verdict

        for path in node.inputs:
            current = self.fingerprint(path)
            if current is None:
                verdict.add(StaleReason.DEPENDENCY_MISSING, path)
            elif path not in record.dependencies or record.dependencies[path] != current:
                verdict.add(StaleReason.DEPENDENCY_CHANGED, path)

        for upstream_id in sorted(self.graph.get_dependencies(node_id)):
            upstream = self.store.get(upstream_id)
            if upstream is not None and upstream.sequence > record.sequence:
                verdict.add(StaleReason.UPSTREAM_REBUILT, upstream_id)

        return verdict


@dataclass
class BuildPlan:
    """Nodes to consider for one run, in execution order."""
    requested: List[str]
    order: List[str]  # upstream closure of requested, topologically ordered
    to_run: Set[str]
    verdicts: Dict[str, StalenessVerdict]

    def run_order(self) -> List[str]:
        return [n for n in self.order if n in self.to_run]


def plan_build(
    graph: BuildGraph,
    detector: StalenessDetector,
    requested: Iterable[str],
    force: bool = False,
) -> BuildPlan:
    """Compute which nodes must run for the requested targets.

    The closure of the requested nodes over their dependencies is checked in
    topological order. A node also runs when any of its upstream nodes runs,
    since that rebuild will make it stale. With `force`, the requested
    nodes run even when fresh; their dependencies still run only if stale.
    """
    requested = list(requested)
    forced = set(requested) if force else set()
    order = graph.topological_order(graph.upstream_closure(requested))
    to_run: Set[str] = set()
    verdicts: Dict[str, StalenessVerdict] = {}

    for node_id in order:
        verdict = detector.check(node_id)
        if node_id in forced:
            verdict.add(StaleReason.FORCED)
        for upstream_id in sorted(graph.get_dependencies(node_id)):
            if upstream_id in to_run:
                verdict.add(StaleReason.UPSTREAM_SCHEDULED, upstream_id)
        verdicts[node_id] = verdict
        if verdict.stale:
            to_run.add(node_id)
            logger.debug("%s is stale: %s", node_id, "; ".join(verdict.describe()))
        else:
            logger.debug("%s is fresh", node_id)

    return BuildPlan(requested=requested, order=order, to_run=to_run, verdicts=verdicts)
