"""Build dependency graph of declared nodes."""

import heapq
import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .declaration import BuildDeclaration
from .errors import CycleError, DeclarationError, DuplicateOutputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Node:
    """A resolved build node."""
    id: str
    index: int  # declaration order, used to break ties deterministically
    outputs: Tuple[str, ...]
    source: str
    source_kind: str
    dependencies: Tuple[str, ...]  # as declared
    inputs: Tuple[str, ...]  # concrete paths: file source first, then dependencies with node ids expanded
    command: Optional[Tuple[str, ...]] = None

    @property
    def source_is_file(self) -> bool:
        return self.source_kind == "file"


class BuildGraph:
    """Dependency graph for a build declaration.

    Vertices are every output path and every input path; edges run from a
    dependency to its dependent. Node-level adjacency (which node needs which
    other node) is derived from the path edges through output ownership.
    """

    def __init__(self, declaration: BuildDeclaration):
        self.declaration = declaration
        self.nodes: Dict[str, Node] = {}
        self.output_owner: Dict[str, str] = {}  # output path -> node id
        self.vertices: Set[str] = set()
        self.path_edges: Dict[str, Set[str]] = defaultdict(set)  # path -> paths produced from it
        self.edges: Dict[str, Set[str]] = defaultdict(set)  # node -> upstream nodes
        self.reverse_edges: Dict[str, Set[str]] = defaultdict(set)  # node -> downstream nodes
        self._build()

    def _build(self):
        """Build the graph: register outputs, resolve inputs, then reject cycles."""
        declared_ids = set(self.declaration.get_node_ids())

        # Register outputs first so dependencies may reference nodes declared later
        for decl in self.declaration.nodes:
            for output in decl.outputs:
                owner = self.output_owner.get(output)
                if owner is not None:
                    raise DuplicateOutputError(output, owner, decl.id)
                self.output_owner[output] = decl.id
                self.vertices.add(output)

        outputs_by_id = {decl.id: decl.outputs for decl in self.declaration.nodes}

        for index, decl in enumerate(self.declaration.nodes):
            inputs: List[str] = []
            upstream: Set[str] = set()

            def add_input(path: str):
                if path not in inputs:
                    inputs.append(path)
                owner = self.output_owner.get(path)
                if owner is not None:
                    upstream.add(owner)

            if decl.source_kind == "file":
                add_input(decl.source)

            for dep in decl.dependencies:
                if dep in declared_ids and dep not in self.output_owner:
                    # Node reference: depend on every output of that node
                    upstream.add(dep)
                    for output in outputs_by_id[dep]:
                        add_input(output)
                else:
                    add_input(dep)

            node = Node(
                id=decl.id,
                index=index,
                outputs=decl.outputs,
                source=decl.source,
                source_kind=decl.source_kind,
                dependencies=decl.dependencies,
                inputs=tuple(inputs),
                command=decl.command,
            )
            self.nodes[node.id] = node
            self.edges[node.id] = upstream
            for up in upstream:
                self.reverse_edges[up].add(node.id)

            for path in inputs:
                self.vertices.add(path)
                for output in decl.outputs:
                    self.path_edges[path].add(output)

        cycle = self._detect_cycle()
        if cycle:
            raise CycleError(cycle)

        logger.debug(
            "Built graph: %d nodes, %d vertices", len(self.nodes), len(self.vertices)
        )

    def _detect_cycle(self) -> Optional[List[str]]:
        """Detect a cycle among nodes using DFS with recursion-stack marking.

        Returns:
            The first cycle found as a list of node ids closing back on its
            start (e.g. ["a", "b", "a"]), or None if the graph is acyclic.
        """
        WHITE = 0  # Unvisited
        GRAY = 1   # Currently being visited (in recursion stack)
        BLACK = 2  # Fully visited

        color = {node_id: WHITE for node_id in self.nodes}
        path: List[str] = []

        def dfs(node_id: str) -> Optional[List[str]]:
            color[node_id] = GRAY
            path.append(node_id)
            for dependent in self._ordered(self.get_dependents(node_id)):
                if color[dependent] == WHITE:
                    found = dfs(dependent)
                    if found:
                        return found
                elif color[dependent] == GRAY:
                    cycle_start = path.index(dependent)
                    return path[cycle_start:] + [dependent]
            color[node_id] = BLACK
            path.pop()
            return None

        # Declaration order keeps the reported cycle deterministic
        for node_id in self.nodes:
            if color[node_id] == WHITE:
                found = dfs(node_id)
                if found:
                    return found
        return None

    def _ordered(self, node_ids: Iterable[str]) -> List[str]:
        return sorted(node_ids, key=lambda n: self.nodes[n].index)

    def get_node(self, node_id: str) -> Node:
        return self.nodes[node_id]

    def node_ids(self) -> List[str]:
        """All node ids in declaration order."""
        return list(self.nodes)

    def get_dependencies(self, node_id: str) -> Set[str]:
        """Get direct upstream nodes of a node."""
        return self.edges.get(node_id, set())

    def get_dependents(self, node_id: str) -> Set[str]:
        """Get nodes that depend on this node (reverse edges)."""
        return self.reverse_edges.get(node_id, set())

    def get_transitive_dependencies(self, node_id: str) -> Set[str]:
        """Get all transitive upstream nodes."""
        visited = set()
        stack = [node_id]

        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            for dep in self.get_dependencies(current):
                if dep not in visited:
                    stack.append(dep)

        visited.discard(node_id)
        return visited

    def get_transitive_dependents(self, node_id: str) -> Set[str]:
        """Get all transitive downstream nodes."""
        visited = set()
        stack = [node_id]

        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            for dependent in self.get_dependents(current):
                if dependent not in visited:
                    stack.append(dependent)

        visited.discard(node_id)
        return visited

    def upstream_closure(self, node_ids: Iterable[str]) -> Set[str]:
        """The given nodes plus everything they transitively depend on."""
        closure: Set[str] = set()
        for node_id in node_ids:
            closure.add(node_id)
            closure |= self.get_transitive_dependencies(node_id)
        return closure

    def topological_order(self, node_ids: Optional[Iterable[str]] = None) -> List[str]:
        """Order nodes so dependencies come before dependents.

        Ties are broken by declaration order. When `node_ids` is given only
        those nodes are ordered, using the edges among them.
        """
        subset = set(self.nodes) if node_ids is None else set(node_ids)
        pending = {
            n: len(self.get_dependencies(n) & subset) for n in subset
        }
        ready = [(self.nodes[n].index, n) for n, count in pending.items() if count == 0]
        heapq.heapify(ready)

        order: List[str] = []
        while ready:
            _, node_id = heapq.heappop(ready)
            order.append(node_id)
            for dependent in self.get_dependents(node_id):
                if dependent not in subset:
                    continue
                pending[dependent] -= 1
                if pending[dependent] == 0:
                    heapq.heappush(ready, (self.nodes[dependent].index, dependent))
        return order

    def owner_of(self, path: str) -> Optional[str]:
        """Node id producing the given output path, if any."""
        return self.output_owner.get(path)

    def ensure_directories(self, root: Path, extra: Iterable[str] = ()) -> List[Path]:
        """Create parent directories of every declared output, plus `extra`.

        Idempotent: existing directories are skipped. Returns the directories
        that were created.

        Raises:
            DeclarationError: If a file is in the way of a needed directory.
        """
        wanted: Dict[str, str] = {}  # directory -> what needs it
        for node in self.nodes.values():
            for output in node.outputs:
                parent = output.rsplit("/", 1)[0] if "/" in output else ""
                if parent and parent not in wanted:
                    wanted[parent] = f"output '{output}' of node '{node.id}'"
        for directory in extra:
            if directory not in wanted:
                wanted[directory] = "configured directories"

        created: List[Path] = []
        for directory, needed_by in wanted.items():
            target = Path(root) / directory
            if target.is_dir():
                continue
            try:
                target.mkdir(parents=True, exist_ok=True)
            except (FileExistsError, NotADirectoryError) as e:
                raise DeclarationError(
                    f"Cannot create directory '{directory}' for {needed_by}: "
                    f"a file is in the way ({e})"
                ) from e
            created.append(target)
            logger.debug("Created directory %s", target)
        return created
