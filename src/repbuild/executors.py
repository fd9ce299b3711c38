"""Stage executors: the components that perform the actual work of a node.

The scheduler treats an executor as opaque. It hands over the node's source,
its input and output paths and the build configuration, and gets back a
StageResult. On success the executor must have produced every declared output.
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from pydantic import BaseModel

from repbuild.config import BuildConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageRequest:
    """One invocation of a stage executor."""
    node_id: str
    source: str
    inputs: Tuple[Path, ...]
    outputs: Tuple[Path, ...]
    command: Optional[Tuple[str, ...]] = None  # per-node override of config.command


class StageResult(BaseModel):
    """Completion signal of a stage executor."""
    ok: bool
    reason: Optional[str] = None
    returncode: Optional[int] = None

    @classmethod
    def success(cls) -> "StageResult":
        return cls(ok=True, returncode=0)

    @classmethod
    def failure(cls, reason: str, returncode: Optional[int] = None) -> "StageResult":
        return cls(ok=False, reason=reason, returncode=returncode)


class StageExecutor:
    """Interface for stage executors."""

    def execute(self, request: StageRequest, config: BuildConfig) -> StageResult:
        raise NotImplementedError


def expand_command(template: Tuple[str, ...], request: StageRequest, config: BuildConfig) -> List[str]:
    """Expand a command template into argv.

    `{inputs}` and `{outputs}` standing alone expand to one argument per path;
    `{source}`, `{root}` and `{node}` are substituted inside any argument.
    """
    argv: List[str] = []
    for arg in template:
        if arg == "{inputs}":
            argv.extend(str(p) for p in request.inputs)
            continue
        if arg == "{outputs}":
            argv.extend(str(p) for p in request.outputs)
            continue
        argv.append(
            arg.replace("{source}", request.source)
            .replace("{root}", str(config.root))
            .replace("{node}", request.node_id)
        )
    return argv


def _tail(text: str, lines: int = 5) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


class SubprocessStageExecutor(StageExecutor):
    """Runs each stage as an external process from the project root."""

    def execute(self, request: StageRequest, config: BuildConfig) -> StageResult:
        argv = expand_command(request.command or config.command, request, config)
        logger.debug("[%s] running: %s", request.node_id, " ".join(argv))
        try:
            completed = subprocess.run(
                argv,
                cwd=str(config.root),
                env=config.stage_env(),
                capture_output=True,
                text=True,
                timeout=config.timeout,
            )
        except FileNotFoundError:
            return StageResult.failure(f"command not found: {argv[0]}")
        except subprocess.TimeoutExpired:
            return StageResult.failure(f"timed out after {config.timeout}s")

        if completed.stdout:
            logger.debug("[%s] stdout:\n%s", request.node_id, completed.stdout.rstrip())
        if completed.stderr:
            logger.debug("[%s] stderr:\n%s", request.node_id, completed.stderr.rstrip())

        if completed.returncode != 0:
            reason = f"exit status {completed.returncode}"
            detail = _tail(completed.stderr or completed.stdout or "")
            if detail:
                reason += f": {detail}"
            return StageResult.failure(reason, returncode=completed.returncode)
        return StageResult.success()


StageFunction = Callable[[StageRequest], Union[None, bool, StageResult]]


class CallableStageExecutor(StageExecutor):
    """Runs each stage by calling a Python function in-process.

    The function may return None or True for success, False for a generic
    failure, or a StageResult.
    """

    def __init__(self, fn: StageFunction):
        self.fn = fn

    def execute(self, request: StageRequest, config: BuildConfig) -> StageResult:
        result = self.fn(request)
        if result is None or result is True:
            return StageResult.success()
        if result is False:
            return StageResult.failure("stage function returned False")
        return result
