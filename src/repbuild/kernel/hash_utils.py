"""Fingerprint utilities for staleness detection.

Rules:
- Regular files are fingerprinted by content (SHA256 of their bytes), so a
  touch without modification never triggers a rebuild.
- Directories are fingerprinted by metadata: SHA256 of the canonical JSON of
  their sorted child entries (relative path, kind, size, mtime_ns).
- Missing paths have no fingerprint (None).

Fingerprints carry an algorithm prefix ("sha256:" / "dir-sha256:") so a file
replaced by a directory of the same name never compares equal.
"""

import hashlib
import os
from pathlib import Path
from typing import List, Optional, Union

from repbuild._internal.canonical_json import canonical_dumps


CHUNK_SIZE = 1024 * 1024

FILE_PREFIX = "sha256:"
DIRECTORY_PREFIX = "dir-sha256:"


def fingerprint_file(path: Union[str, Path]) -> str:
    """Compute the content fingerprint of a regular file (chunked read)."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return f"{FILE_PREFIX}{h.hexdigest()}"


def _directory_entries(root: Path) -> List[List[object]]:
    """Sorted metadata entries for everything below `root`."""
    entries: List[List[object]] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        rel_dir = Path(dirpath).relative_to(root)
        for name in dirnames:
            rel = (rel_dir / name).as_posix()
            entries.append([rel, "d", 0, 0])
        for name in sorted(filenames):
            full = Path(dirpath) / name
            rel = (rel_dir / name).as_posix()
            try:
                st = full.stat()
            except FileNotFoundError:
                # Dangling symlink or file removed mid-walk
                entries.append([rel, "missing", 0, 0])
                continue
            entries.append([rel, "f", st.st_size, st.st_mtime_ns])
    entries.sort(key=lambda e: e[0])
    return entries


def fingerprint_directory(path: Union[str, Path]) -> str:
    """Compute the aggregate metadata fingerprint of a directory tree."""
    canonical_str = canonical_dumps(_directory_entries(Path(path)))
    digest = hashlib.sha256(canonical_str.encode("utf-8")).hexdigest()
    return f"{DIRECTORY_PREFIX}{digest}"


def fingerprint_path(path: Union[str, Path]) -> Optional[str]:
    """Fingerprint a file or directory; None if the path does not exist."""
    p = Path(path)
    if p.is_dir():
        return fingerprint_directory(p)
    if p.is_file():
        return fingerprint_file(p)
    return None
