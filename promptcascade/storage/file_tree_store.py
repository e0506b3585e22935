"""
File Tree Store - prompt tree persisted as a single JSON document.

Layout::

    {
      "nodes": [ {PromptNode, optionally with nested "children"}, ... ]
    }

Nested trees are accepted on load; the file is always rewritten flat
(one entry per node, linked by ``parent_id``) using an atomic replace.
"""

import asyncio
import json
import logging
from pathlib import Path

from promptcascade.schemas.prompt_node import PromptNode
from promptcascade.storage.tree_store import InMemoryTreeStore
from promptcascade.utils.io import atomic_write

logger = logging.getLogger(__name__)


class FileTreeStore(InMemoryTreeStore):
    """JSON-file backed TreeStore. Every mutation rewrites the file."""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            logger.info("Tree file %s does not exist yet; starting empty", self.path)
            return
        data = json.loads(self.path.read_text(encoding="utf-8"))
        entries = data.get("nodes", []) if isinstance(data, dict) else data
        nested = [PromptNode.model_validate(entry) for entry in entries]
        # Flat entries carry parent_id; nested children get it from add_tree
        for node in nested:
            self.add_tree(node, parent_id=node.parent_id)
        logger.debug("Loaded %d nodes from %s", len(self._nodes), self.path)

    async def _persist(self) -> None:
        nodes = [node.model_dump(mode="json", exclude={"children"}) for node in self.snapshot()]
        content = json.dumps({"nodes": nodes}, indent=2, ensure_ascii=False)

        def _write() -> None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with atomic_write(self.path) as f:
                f.write(content)

        await asyncio.to_thread(_write)
