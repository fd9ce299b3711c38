"""Pytest configuration and shared fixtures.

No sys.path hacks - tests import from the installed repbuild package.
"""

import hashlib
import json
import threading
import time

import pytest

from repbuild.api import load_project
from repbuild.executors import StageExecutor, StageRequest, StageResult


class RecordingExecutor(StageExecutor):
    """In-process executor that writes every output and records each call.

    Output content is derived from the node id and the bytes of its file
    inputs, so changing an input changes what gets written downstream.
    """

    def __init__(self, fail=(), delay=0.0, skip_outputs=()):
        self.fail = set(fail)
        self.delay = delay
        self.skip_outputs = set(skip_outputs)
        self.calls = []
        self.events = []  # ("start"|"end", node_id) in wall-clock order
        self._lock = threading.Lock()

    def execute(self, request: StageRequest, config) -> StageResult:
        with self._lock:
            self.calls.append(request.node_id)
            self.events.append(("start", request.node_id))
        try:
            if self.delay:
                time.sleep(self.delay)
            if request.node_id in self.fail:
                return StageResult.failure(f"{request.node_id} exploded", returncode=1)
            digest = []
            for path in request.inputs:
                if path.is_file():
                    digest.append(path.read_text(encoding="utf-8"))
            for output in request.outputs:
                if request.node_id in self.skip_outputs:
                    continue
                output.parent.mkdir(parents=True, exist_ok=True)
                content_hash = hashlib.sha256('|'.join(digest).encode("utf-8")).hexdigest()
                output.write_text(f"{request.node_id}:{content_hash}\n", encoding="utf-8")
            return StageResult.success()
        finally:
            with self._lock:
                self.events.append(("end", request.node_id))

    def position(self, kind, node_id):
        return self.events.index((kind, node_id))


@pytest.fixture
def recorder():
    return RecordingExecutor()


@pytest.fixture
def make_project(tmp_path):
    """Factory: write files and a declaration under tmp_path, then load it.

    Usage: make_project(nodes=[...], aliases=[...], files={"raw.csv": "1"}, config={...})
    """

    def _make(nodes, aliases=None, files=None, config=None, **load_kwargs):
        for rel, content in (files or {}).items():
            target = tmp_path / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        declaration = {"schema_version": "1", "nodes": nodes}
        if aliases is not None:
            declaration["aliases"] = aliases
        if config is not None:
            declaration["config"] = config
        (tmp_path / "repbuild.json").write_text(json.dumps(declaration), encoding="utf-8")
        load_kwargs.setdefault("environ", {})
        return load_project(tmp_path, **load_kwargs)

    return _make


def chain_nodes():
    """A -> B -> C, each stage with its own script."""
    return [
        {"id": "A", "outputs": ["out/a.txt"], "source": "scripts/a.py", "dependencies": ["data/raw.csv"]},
        {"id": "B", "outputs": ["out/b.txt"], "source": "scripts/b.py", "dependencies": ["out/a.txt"]},
        {"id": "C", "outputs": ["out/c.txt"], "source": "scripts/c.py", "dependencies": ["B"]},
    ]


CHAIN_FILES = {
    "data/raw.csv": "x,y\n1,2\n",
    "scripts/a.py": "a",
    "scripts/b.py": "b",
    "scripts/c.py": "c",
}


@pytest.fixture
def chain_project(make_project):
    return make_project(chain_nodes(), files=CHAIN_FILES)
