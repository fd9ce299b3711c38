"""Alias resolution: map group names and requested targets to node ids."""

import posixpath
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .declaration import RESERVED_ALIAS, AliasDecl
from .errors import CycleError, UnknownAliasError, UnknownTargetError
from .graph import BuildGraph


class AliasResolver:
    """Resolves aliases (possibly nested) and target names to node ids."""

    def __init__(self, graph: BuildGraph, aliases: Sequence[AliasDecl] = ()):
        self.graph = graph
        self.aliases: Dict[str, Tuple[str, ...]] = {a.name: a.members for a in aliases}

    def is_alias(self, name: str) -> bool:
        return name == RESERVED_ALIAS or name in self.aliases

    def alias_names(self) -> List[str]:
        return [RESERVED_ALIAS] + list(self.aliases)

    def validate(self) -> None:
        """Resolve every declared alias once, surfacing cycles and unknown members."""
        for name in self.aliases:
            self.resolve(name)

    def resolve(self, name: str) -> List[str]:
        """Resolve an alias to its ordered, de-duplicated node ids.

        Raises:
            UnknownAliasError: If `name` is not a declared alias.
            CycleError: If the alias definitions reference each other in a loop.
            UnknownTargetError: If a member names nothing known.
        """
        if name == RESERVED_ALIAS:
            return self.graph.node_ids()
        if name not in self.aliases:
            raise UnknownAliasError(name, available=self.alias_names())
        result: List[str] = []
        self._expand(name, [], result)
        return result

    def _expand(self, name: str, chain: List[str], result: List[str]) -> None:
        chain.append(name)
        for member in self.aliases[name]:
            if member == RESERVED_ALIAS:
                node_ids = self.graph.node_ids()
            elif member in self.aliases:
                if member in chain:
                    cycle_start = chain.index(member)
                    raise CycleError(chain[cycle_start:] + [member], kind="alias")
                self._expand(member, chain, result)
                continue
            else:
                node_id = self._lookup_node(member)
                if node_id is None:
                    raise UnknownTargetError(
                        member,
                        context=f"member of alias '{name}'",
                    )
                node_ids = [node_id]
            for node_id in node_ids:
                if node_id not in result:
                    result.append(node_id)
        chain.pop()

    def _lookup_node(self, name: str) -> Optional[str]:
        """Find a node by id, or by one of its output paths."""
        if name in self.graph.nodes:
            return name
        owner = self.graph.owner_of(name)
        if owner is not None:
            return owner
        normalized = posixpath.normpath(name.replace("\\", "/"))
        if normalized in self.graph.nodes:
            return normalized
        return self.graph.owner_of(normalized)

    def resolve_targets(self, names: Iterable[str]) -> List[str]:
        """Resolve requested target names (aliases, node ids or output paths).

        The result is ordered by first appearance and de-duplicated, so
        requesting an alias is equivalent to requesting its expanded members.
        """
        result: List[str] = []
        for name in names:
            if self.is_alias(name):
                node_ids = self.resolve(name)
            else:
                node_id = self._lookup_node(name)
                if node_id is None:
                    raise UnknownTargetError(
                        name,
                        available=self.alias_names() + self.graph.node_ids(),
                    )
                node_ids = [node_id]
            for node_id in node_ids:
                if node_id not in result:
                    result.append(node_id)
        return result
