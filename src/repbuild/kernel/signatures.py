"""Persistent signature store: the only memory carried between builds."""

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from repbuild._internal.canonical_json import canonical_dumps

logger = logging.getLogger(__name__)


SIGNATURES_FILENAME = "signatures.json"


class NodeRecord(BaseModel):
    """Fingerprints captured after a node's last successful run."""
    sequence: int = Field(..., ge=1, description="Completion order of the run that produced this record")
    dependencies: Dict[str, Optional[str]]  # input path -> fingerprint
    outputs: Dict[str, Optional[str]]  # output path -> fingerprint

    model_config = ConfigDict(extra="forbid", frozen=True)


class SignatureFile(BaseModel):
    """On-disk layout of the signature store."""
    format: Literal["repbuild.signatures"] = "repbuild.signatures"
    version: Literal["1"] = "1"
    sequence: int = 0
    nodes: Dict[str, NodeRecord] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class SignatureStore:
    """Thread-safe, file-backed mapping of node id -> NodeRecord.

    Every mutation is serialized through one lock and flushed atomically, so
    two branches finishing together never lose an update and work completed
    before an interruption survives it.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data = self._load()

    @classmethod
    def for_state_dir(cls, state_dir: Path) -> "SignatureStore":
        return cls(Path(state_dir) / SIGNATURES_FILENAME)

    def _load(self) -> SignatureFile:
        if not self.path.exists():
            return SignatureFile()
        try:
            return SignatureFile.model_validate_json(self.path.read_bytes())
        except ValidationError as e:
            # Start empty: every node becomes stale.
            logger.warning(
                "Ignoring unreadable signature store %s (all nodes will be rebuilt): %s",
                self.path,
                e.errors()[0]["msg"] if e.errors() else e,
            )
            return SignatureFile()

    @property
    def sequence(self) -> int:
        """The completion counter of the most recent recorded run."""
        return self._data.sequence

    def get(self, node_id: str) -> Optional[NodeRecord]:
        """Look up a node's record. Never mutates the store."""
        return self._data.nodes.get(node_id)

    def node_ids(self) -> List[str]:
        return sorted(self._data.nodes)

    def record(
        self,
        node_id: str,
        dependencies: Dict[str, Optional[str]],
        outputs: Dict[str, Optional[str]],
    ) -> NodeRecord:
        """Record a successful run and persist it."""
        with self._lock:
            self._data.sequence += 1
            record = NodeRecord(
                sequence=self._data.sequence,
                dependencies=dict(dependencies),
                outputs=dict(outputs),
            )
            self._data.nodes[node_id] = record
            self._flush_locked()
        return record

    def invalidate(self, node_id: str) -> bool:
        """Forget a node's record so the node is stale on the next run."""
        return self.remove([node_id]) > 0

    def remove(self, node_ids: Iterable[str]) -> int:
        """Remove records for the given nodes. Returns how many were removed."""
        with self._lock:
            removed = 0
            for node_id in node_ids:
                if self._data.nodes.pop(node_id, None) is not None:
                    removed += 1
            if removed:
                self._flush_locked()
        return removed

    def _flush_locked(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = canonical_dumps(self._data.model_dump(mode="json")) + "\n"
        fd, tmp_name = tempfile.mkstemp(
            prefix=".signatures-", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
