"""Public API for repbuild.

High-level functions that load a project and return structured results.
Callers should use these instead of wiring kernel modules together.
"""

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

from repbuild._internal.io.declaration import (
    DEFAULT_DECLARATION_NAME,
    load_declaration_from_dict,
    load_declaration_from_path,
)
from repbuild.config import BuildConfig
from repbuild.contracts import BuildReport, CleanReport, NodeOutcome, NodeState
from repbuild.codes import NodeStatus
from repbuild.executors import StageExecutor, SubprocessStageExecutor
from repbuild.kernel.aliases import AliasResolver
from repbuild.kernel.clean import clean_nodes
from repbuild.kernel.declaration import BuildDeclaration
from repbuild.kernel.graph import BuildGraph
from repbuild.kernel.scheduler import Scheduler
from repbuild.kernel.signatures import SignatureStore
from repbuild.kernel.staleness import StalenessDetector, plan_build

logger = logging.getLogger(__name__)


def _normalize_path(path: Union[str, os.PathLike, Path]) -> Path:
    """Normalize path input to Path object."""
    return Path(path) if not isinstance(path, Path) else path


@dataclass
class Project:
    """A loaded, validated project: declaration, graph, aliases and config."""
    declaration: BuildDeclaration
    config: BuildConfig
    graph: BuildGraph
    aliases: AliasResolver

    @property
    def root(self) -> Path:
        return self.config.root

    def open_store(self) -> SignatureStore:
        return SignatureStore.for_state_dir(self.config.state_dir)

    def resolve(self, targets: Optional[Sequence[str]] = None) -> List[str]:
        """Resolve target names to node ids; no targets means the default targets."""
        names = list(targets) if targets else list(self.config.default_targets)
        return self.aliases.resolve_targets(names)


def load_project(
    source: Union[str, os.PathLike, Path, Dict],
    root: Union[str, os.PathLike, Path, None] = None,
    *,
    jobs: Optional[int] = None,
    state_dir: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    ensure_dirs: bool = True,
) -> Project:
    """Load and validate a project.

    Args:
        source: Declaration file, project directory (containing
            `repbuild.json`), or a declaration dict.
        root: Project root. Defaults to the declaration file's directory
            (or the current directory for a dict).
        jobs: Worker count override.
        state_dir: Signature store directory override (root-relative).
        environ: Environment used for overrides (defaults to os.environ).
        ensure_dirs: Create output and configured directories once, after
            every structural check has passed.

    Raises:
        DeclarationError, DuplicateOutputError, CycleError, UnknownTargetError
    """
    if isinstance(source, dict):
        declaration = load_declaration_from_dict(source)
        project_root = _normalize_path(root) if root is not None else Path.cwd()
    else:
        path = _normalize_path(source)
        if path.is_dir():
            path = path / DEFAULT_DECLARATION_NAME
        declaration = load_declaration_from_path(path)
        project_root = _normalize_path(root) if root is not None else path.parent

    config = BuildConfig.from_declaration(
        declaration.config, project_root, environ=environ, jobs=jobs, state_dir=state_dir
    )
    graph = BuildGraph(declaration)
    aliases = AliasResolver(graph, declaration.aliases)
    aliases.validate()
    # Default targets must resolve before anything touches the filesystem
    aliases.resolve_targets(config.default_targets)

    if ensure_dirs:
        graph.ensure_directories(config.root, config.directories)

    return Project(declaration=declaration, config=config, graph=graph, aliases=aliases)


def build(
    project: Project,
    targets: Optional[Sequence[str]] = None,
    *,
    executor: Optional[StageExecutor] = None,
    force: bool = False,
    dry_run: bool = False,
    cancel_event: Optional[threading.Event] = None,
) -> BuildReport:
    """Bring the requested targets up to date.

    Unknown targets raise before anything runs. Stage failures do not raise;
    they are reported per node in the returned BuildReport.
    """
    node_ids = project.resolve(targets)
    store = project.open_store()
    detector = StalenessDetector(project.graph, store, project.root)
    plan = plan_build(project.graph, detector, node_ids, force=force)

    if dry_run:
        outcomes = []
        for node_id in plan.order:
            verdict = plan.verdicts[node_id]
            status = NodeStatus.PLANNED if node_id in plan.to_run else NodeStatus.FRESH
            outcomes.append(NodeOutcome(node_id=node_id, status=status, stale_reasons=verdict.describe()))
        return BuildReport(requested=node_ids, outcomes=outcomes, dry_run=True)

    if not plan.to_run:
        logger.info("All %d node(s) up to date", len(plan.order))

    scheduler = Scheduler(
        project.graph,
        store,
        executor or SubprocessStageExecutor(),
        project.config,
        cancel_event=cancel_event,
    )
    return scheduler.run(plan)


def clean(project: Project, targets: Optional[Sequence[str]] = None) -> CleanReport:
    """Delete generated outputs of the requested targets (default: every node)."""
    names = list(targets) if targets else ["all"]
    node_ids = project.aliases.resolve_targets(names)
    return clean_nodes(project.graph, project.open_store(), project.root, node_ids)


def status(project: Project, targets: Optional[Sequence[str]] = None) -> List[NodeState]:
    """Report fresh/stale for the requested targets and their dependencies."""
    node_ids = project.resolve(targets)
    detector = StalenessDetector(project.graph, project.open_store(), project.root)
    plan = plan_build(project.graph, detector, node_ids)
    return [
        NodeState(
            node_id=node_id,
            stale=plan.verdicts[node_id].stale,
            reasons=plan.verdicts[node_id].describe(),
            outputs=list(project.graph.get_node(node_id).outputs),
        )
        for node_id in plan.order
    ]


def list_targets(project: Project) -> Dict[str, Dict[str, List[str]]]:
    """Declared nodes (id -> outputs) and aliases (name -> resolved node ids)."""
    return {
        "nodes": {n.id: list(n.outputs) for n in project.graph.nodes.values()},
        "aliases": {name: project.aliases.resolve(name) for name in project.aliases.alias_names()},
    }
