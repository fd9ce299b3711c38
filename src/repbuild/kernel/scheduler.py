"""Scheduler: runs stale nodes in dependency order on a bounded worker pool."""

import concurrent.futures
import heapq
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from repbuild.codes import NodeStatus
from repbuild.config import BuildConfig
from repbuild.contracts import BuildReport, NodeOutcome
from repbuild.executors import StageExecutor, StageRequest

from .errors import MissingDependencyFileError, StageExecutionFailure
from .graph import BuildGraph
from .hash_utils import fingerprint_path
from .signatures import SignatureStore
from .staleness import BuildPlan

logger = logging.getLogger(__name__)

# Upper bound on how long the main thread blocks between interrupt checks
POLL_INTERVAL = 0.1


@dataclass
class _NodeRun:
    """Execution state of one planned node."""
    node_id: str
    index: int
    waiting_on: Set[str]
    status: Optional[NodeStatus] = None  # None while pending or running
    reason: Optional[str] = None
    upstream: Optional[str] = None
    duration: Optional[float] = None


class Scheduler:
    """Executes a BuildPlan.

    Ready nodes (all planned upstream nodes built) are submitted greedily, at
    most `config.jobs` at a time, lowest declaration index first. A failure
    marks every transitive dependent as skipped; independent branches keep
    going. Successful nodes are recorded in the signature store immediately.
    """

    def __init__(
        self,
        graph: BuildGraph,
        store: SignatureStore,
        executor: StageExecutor,
        config: BuildConfig,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.graph = graph
        self.store = store
        self.executor = executor
        self.config = config
        self.root = Path(config.root)
        self.cancel_event = cancel_event or threading.Event()

    def run(self, plan: BuildPlan) -> BuildReport:
        runs: Dict[str, _NodeRun] = {}
        for node_id in plan.run_order():
            runs[node_id] = _NodeRun(
                node_id=node_id,
                index=self.graph.get_node(node_id).index,
                waiting_on={u for u in self.graph.get_dependencies(node_id) if u in plan.to_run},
            )

        cancelled = False
        try:
            self._execute(runs)
        except KeyboardInterrupt:
            logger.warning("Build interrupted; waiting for running stages to finish")
            cancelled = True
        if self.cancel_event.is_set():
            cancelled = True

        for state in runs.values():
            if state.status is None:
                state.status = NodeStatus.CANCELLED

        outcomes: List[NodeOutcome] = []
        for node_id in plan.order:
            verdict = plan.verdicts[node_id]
            state = runs.get(node_id)
            if state is None:
                outcomes.append(NodeOutcome(node_id=node_id, status=NodeStatus.FRESH))
                continue
            outcomes.append(NodeOutcome(
                node_id=node_id,
                status=state.status,
                reason=state.reason,
                upstream=state.upstream,
                stale_reasons=verdict.describe(),
                duration=state.duration,
            ))
        return BuildReport(requested=plan.requested, outcomes=outcomes, cancelled=cancelled)

    def _execute(self, runs: Dict[str, _NodeRun]) -> None:
        ready: List[Tuple[int, str]] = [
            (state.index, node_id) for node_id, state in runs.items() if not state.waiting_on
        ]
        heapq.heapify(ready)
        futures: Dict[concurrent.futures.Future, str] = {}

        pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.config.jobs, thread_name_prefix="repbuild"
        )
        try:
            while True:
                while ready and len(futures) < self.config.jobs and not self.cancel_event.is_set():
                    _, node_id = heapq.heappop(ready)
                    if runs[node_id].status is not None:
                        continue
                    logger.info("Building %s", node_id)
                    futures[pool.submit(self._run_node, node_id)] = node_id

                if not futures:
                    break

                done, _ = concurrent.futures.wait(
                    futures.keys(),
                    timeout=POLL_INTERVAL,
                    return_when=concurrent.futures.FIRST_COMPLETED,
                )
                for future in done:
                    node_id = futures.pop(future)
                    state = runs[node_id]
                    status, reason, duration = future.result()
                    state.status = status
                    state.reason = reason
                    state.duration = duration

                    if status == NodeStatus.BUILT:
                        logger.info("Built %s (%.2fs)", node_id, duration or 0.0)
                        for dependent in self.graph.get_dependents(node_id):
                            dep_state = runs.get(dependent)
                            if dep_state is None or dep_state.status is not None:
                                continue
                            dep_state.waiting_on.discard(node_id)
                            if not dep_state.waiting_on:
                                heapq.heappush(ready, (dep_state.index, dependent))
                    elif status == NodeStatus.FAILED:
                        logger.error("Failed %s: %s", node_id, reason)
                        self._skip_downstream(node_id, runs)
        except KeyboardInterrupt:
            self.cancel_event.set()
            for future in futures:
                future.cancel()
            # Stages already running finish (or fail) on their own; none of
            # them records a signature once the cancel event is set.
            pool.shutdown(wait=True)
            for future, node_id in futures.items():
                if future.done() and not future.cancelled():
                    status, reason, duration = future.result()
                    runs[node_id].status = status
                    runs[node_id].reason = reason
                    runs[node_id].duration = duration
            raise
        finally:
            pool.shutdown(wait=True)

    def _skip_downstream(self, failed_id: str, runs: Dict[str, _NodeRun]) -> None:
        """Mark every pending transitive dependent of a failed node as skipped."""
        queue = deque([failed_id])
        visited = set()
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            for dependent in self.graph.get_dependents(current):
                state = runs.get(dependent)
                if state is not None and state.status is None:
                    state.status = NodeStatus.SKIPPED
                    state.upstream = failed_id
                    logger.warning("Skipping %s (upstream failure: %s)", dependent, failed_id)
                queue.append(dependent)

    def _run_node(self, node_id: str) -> Tuple[NodeStatus, Optional[str], Optional[float]]:
        """Worker body: execute one node and record it on success.

        Never raises for stage problems; every failure becomes a FAILED status
        and invalidates the node's record so partial outputs are not trusted.
        """
        node = self.graph.get_node(node_id)
        started = time.perf_counter()
        try:
            for path in node.inputs:
                if not (self.root / path).exists():
                    raise MissingDependencyFileError(node_id, path)

            request = StageRequest(
                node_id=node_id,
                source=node.source,
                inputs=tuple(self.root / p for p in node.inputs),
                outputs=tuple(self.root / p for p in node.outputs),
                command=node.command,
            )
            result = self.executor.execute(request, self.config)
            duration = time.perf_counter() - started

            if not result.ok:
                raise StageExecutionFailure(node_id, result.reason or "stage executor reported failure")
            if self.cancel_event.is_set():
                self.store.invalidate(node_id)
                return NodeStatus.CANCELLED, "cancelled before completion was recorded", duration

            for output in node.outputs:
                if not (self.root / output).exists():
                    raise StageExecutionFailure(node_id, f"declared output not produced: {output}")

            self.store.record(
                node_id,
                dependencies={p: fingerprint_path(self.root / p) for p in node.inputs},
                outputs={p: fingerprint_path(self.root / p) for p in node.outputs},
            )
            return NodeStatus.BUILT, None, duration
        except StageExecutionFailure as e:
            self.store.invalidate(node_id)
            return NodeStatus.FAILED, e.reason, time.perf_counter() - started
        except Exception as e:
            logger.debug("Stage executor raised for %s", node_id, exc_info=True)
            self.store.invalidate(node_id)
            return NodeStatus.FAILED, f"{type(e).__name__}: {e}", time.perf_counter() - started
