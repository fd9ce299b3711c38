"""Pydantic models for build declarations with strict validation.

A declaration is the static description of a pipeline: the nodes that produce
files, the aliases that group them, and the project configuration. It is read
once per invocation and never mutated afterwards.
"""

import posixpath
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


RESERVED_ALIAS = "all"


def normalize_path(value: str) -> str:
    """Normalize a project-relative path to a canonical POSIX string.

    Rejects empty paths, absolute paths and paths that escape the project root.
    """
    if not isinstance(value, str):
        raise ValueError(f"Path must be a string, got {type(value).__name__}")
    raw = value.strip().replace("\\", "/")
    if not raw:
        raise ValueError("Path must not be empty")
    if raw.startswith("/") or (len(raw) > 1 and raw[1] == ":"):
        raise ValueError(f"Path '{value}' must be relative to the project root")
    normalized = posixpath.normpath(raw)
    if normalized == ".." or normalized.startswith("../"):
        raise ValueError(f"Path '{value}' escapes the project root")
    if normalized == ".":
        raise ValueError(f"Path '{value}' refers to the project root itself")
    return normalized


def _normalize_unique(values: Any, field: str) -> Tuple[str, ...]:
    """Normalize a list of paths and reject duplicates (stable order kept)."""
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple)):
        raise ValueError(f"{field} must be a list of paths, got {type(values).__name__}")
    normalized = [normalize_path(v) for v in values]

    seen = set()
    duplicates = set()
    for item in normalized:
        if item in seen:
            duplicates.add(item)
        seen.add(item)

    if duplicates:
        raise ValueError(f"Duplicate {field} not allowed: {sorted(duplicates)}")
    return tuple(normalized)


class NodeDecl(BaseModel):
    """A declared unit of build work.

    `id` defaults to the first output path. `dependencies` may name plain
    files, directories, other nodes' outputs or other node ids.
    """
    id: str = ""
    outputs: Tuple[str, ...] = Field(..., min_length=1, description="Ordered output paths")
    source: str
    source_kind: Literal["file", "command"] = "file"
    dependencies: Tuple[str, ...] = ()
    command: Optional[Tuple[str, ...]] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("outputs", mode="before")
    @classmethod
    def validate_outputs(cls, v: Any) -> Tuple[str, ...]:
        return _normalize_unique(v, "outputs")

    @field_validator("dependencies", mode="before")
    @classmethod
    def validate_dependencies(cls, v: Any) -> Tuple[str, ...]:
        return _normalize_unique(v, "dependencies")

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: Optional[Tuple[str, ...]]) -> Optional[Tuple[str, ...]]:
        if v is not None and len(v) == 0:
            raise ValueError("Node command must contain at least one argument")
        return v

    @model_validator(mode="after")
    def fill_defaults(self) -> "NodeDecl":
        source = self.source.strip()
        if not source:
            raise ValueError("Node source must not be empty")
        self.source = normalize_path(source) if self.source_kind == "file" else source
        self.id = self.id.strip() or self.outputs[0]
        return self


class AliasDecl(BaseModel):
    """A named group of nodes. Members may be node ids, output paths or other aliases."""
    name: str
    members: Tuple[str, ...]

    model_config = ConfigDict(extra="forbid")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Alias name must not be empty")
        if v == RESERVED_ALIAS:
            raise ValueError(f"Alias name '{RESERVED_ALIAS}' is reserved for every declared node")
        return v

    @field_validator("members")
    @classmethod
    def validate_members(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        members = tuple(m.strip() for m in v)
        if any(not m for m in members):
            raise ValueError("Alias members must not be empty")
        return members


class ConfigDecl(BaseModel):
    """The `config` section of a declaration file."""
    jobs: int = Field(1, ge=1)
    state_dir: str = ".repbuild"
    command: Tuple[str, ...] = ("{source}",)
    env: Dict[str, str] = Field(default_factory=dict)
    directories: Tuple[str, ...] = ()
    default_targets: Tuple[str, ...] = (RESERVED_ALIAS,)
    timeout: Optional[float] = Field(None, gt=0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("state_dir")
    @classmethod
    def validate_state_dir(cls, v: str) -> str:
        return normalize_path(v)

    @field_validator("directories", mode="before")
    @classmethod
    def validate_directories(cls, v: Any) -> Tuple[str, ...]:
        return _normalize_unique(v, "directories")

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        if len(v) == 0:
            raise ValueError("Command template must contain at least one argument")
        return v

    @field_validator("default_targets")
    @classmethod
    def validate_default_targets(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        if len(v) == 0:
            raise ValueError("default_targets must name at least one target")
        return v


class BuildDeclaration(BaseModel):
    """A complete build declaration."""
    schema_version: Literal["1"] = "1"
    config: ConfigDecl = Field(default_factory=ConfigDecl)
    nodes: List[NodeDecl]
    aliases: List[AliasDecl] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @field_validator("aliases", mode="before")
    @classmethod
    def coerce_alias_mapping(cls, v: Any) -> Any:
        """Accept `{"name": [members]}` as shorthand for the list form."""
        if isinstance(v, dict):
            return [{"name": name, "members": members} for name, members in v.items()]
        return v

    @model_validator(mode="after")
    def validate_namespace(self) -> "BuildDeclaration":
        node_ids = set()
        for node in self.nodes:
            if node.id in node_ids:
                raise ValueError(f"Duplicate node id: '{node.id}'")
            if node.id == RESERVED_ALIAS:
                raise ValueError(f"Node id '{RESERVED_ALIAS}' is reserved")
            node_ids.add(node.id)

        # A dependency string must name one node whether read as id or path
        output_owner = {}
        for node in self.nodes:
            for output in node.outputs:
                output_owner.setdefault(output, node.id)
        for node in self.nodes:
            owner = output_owner.get(node.id)
            if owner is not None and owner != node.id:
                raise ValueError(
                    f"Node id '{node.id}' is an output path of node '{owner}'"
                )

        alias_names = set()
        for alias in self.aliases:
            if alias.name in alias_names:
                raise ValueError(f"Duplicate alias name: '{alias.name}'")
            if alias.name in node_ids:
                raise ValueError(f"Alias '{alias.name}' collides with a node id")
            alias_names.add(alias.name)
        return self

    def get_node_ids(self) -> List[str]:
        """Node ids in declaration order."""
        return [n.id for n in self.nodes]
