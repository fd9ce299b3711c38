"""Build configuration passed explicitly to the scheduler and every stage executor."""

import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from repbuild.kernel.declaration import ConfigDecl, normalize_path
from repbuild.kernel.errors import DeclarationError


ENV_JOBS = "REPBUILD_JOBS"
ENV_STATE_DIR = "REPBUILD_STATE_DIR"


class BuildConfig(BaseModel):
    """Resolved configuration for one invocation.

    Built once from the declaration's `config` section, environment overrides
    and command-line overrides (in increasing precedence). Nothing downstream
    reads the process environment for settings.
    """
    root: Path
    state_dir: Path
    jobs: int = Field(1, ge=1)
    command: Tuple[str, ...] = ("{source}",)
    env: Dict[str, str] = Field(default_factory=dict)
    directories: Tuple[str, ...] = ()
    default_targets: Tuple[str, ...] = ("all",)
    timeout: Optional[float] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_declaration(
        cls,
        decl: ConfigDecl,
        root: Path,
        environ: Optional[Mapping[str, str]] = None,
        jobs: Optional[int] = None,
        state_dir: Optional[str] = None,
    ) -> "BuildConfig":
        environ = os.environ if environ is None else environ
        root = Path(root).resolve()

        resolved_jobs = decl.jobs
        if environ.get(ENV_JOBS):
            try:
                resolved_jobs = int(environ[ENV_JOBS])
            except ValueError:
                raise DeclarationError(f"{ENV_JOBS} must be an integer, got '{environ[ENV_JOBS]}'")
        if jobs is not None:
            resolved_jobs = jobs
        if resolved_jobs < 1:
            raise DeclarationError(f"jobs must be at least 1, got {resolved_jobs}")

        resolved_state = decl.state_dir
        if environ.get(ENV_STATE_DIR):
            resolved_state = environ[ENV_STATE_DIR]
        if state_dir is not None:
            resolved_state = state_dir
        try:
            resolved_state = normalize_path(resolved_state)
        except ValueError as e:
            raise DeclarationError(f"Invalid state directory: {e}") from e

        return cls(
            root=root,
            state_dir=root / resolved_state,
            jobs=resolved_jobs,
            command=decl.command,
            env=dict(decl.env),
            directories=decl.directories,
            default_targets=decl.default_targets,
            timeout=decl.timeout,
        )

    def stage_env(self, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Environment for a stage process: `base` plus configured additions.

        `{root}` in a configured value expands to the project root.
        """
        env = dict(os.environ if base is None else base)
        for key, value in self.env.items():
            env[key] = value.replace("{root}", str(self.root))
        return env
