"""Clean operation: remove generated outputs and forget their signatures.

Only declared outputs are deleted. Parent directories are always left in
place, since they were ensured at load time and the next build needs them.
"""

import logging
import shutil
from pathlib import Path
from typing import Iterable

from repbuild.contracts import CleanReport

from .graph import BuildGraph
from .signatures import SignatureStore

logger = logging.getLogger(__name__)


def clean_nodes(
    graph: BuildGraph,
    store: SignatureStore,
    root: Path,
    node_ids: Iterable[str],
) -> CleanReport:
    """Delete the outputs of the given nodes and remove their store records.

    Deleting an output that does not exist is not an error.
    """
    node_ids = list(node_ids)
    report = CleanReport(node_ids=node_ids)

    for node_id in node_ids:
        node = graph.get_node(node_id)
        for output in node.outputs:
            target = Path(root) / output
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            elif target.exists() or target.is_symlink():
                target.unlink()
            else:
                report.absent.append(output)
                continue
            report.removed.append(output)
            logger.info("Removed %s", output)

    report.records_removed = store.remove(node_ids)
    return report
