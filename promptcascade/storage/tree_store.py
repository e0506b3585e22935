"""
Tree Store - persistence boundary for the prompt tree.

The engine reads and writes nodes only through ``TreeStore``. Reads
return copies, so a node handed to the engine never aliases stored state.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any

from promptcascade.schemas.prompt_node import PromptNode

logger = logging.getLogger(__name__)


class TreeStore(ABC):
    """Abstract prompt tree storage."""

    @abstractmethod
    async def get_subtree(self, root_id: str) -> PromptNode | None:
        """Load ``root_id`` with its descendants nested in ``children`` (ordered)."""

    @abstractmethod
    async def get_node(self, node_id: str) -> PromptNode | None:
        """Load a single node, without children."""

    @abstractmethod
    async def list_children(self, parent_id: str | None) -> list[PromptNode]:
        """Direct children of ``parent_id`` (top-level nodes for None), ordered."""

    @abstractmethod
    async def create_node(self, parent_id: str | None, fields: dict[str, Any]) -> PromptNode:
        """Create a node as the last child of ``parent_id`` and return it."""

    @abstractmethod
    async def update_node(self, node_id: str, fields: dict[str, Any]) -> PromptNode:
        """Apply ``fields`` to a node and return the updated node.

        Raises:
            KeyError: if the node does not exist.
        """


class InMemoryTreeStore(TreeStore):
    """Dict-backed store, used by tests and as the base of FileTreeStore."""

    def __init__(self, roots: list[PromptNode] | None = None):
        self._nodes: dict[str, PromptNode] = {}
        self._lock = asyncio.Lock()
        for root in roots or []:
            self.add_tree(root)

    # -------------------------------------------------------------------
    # Sync helpers
    # -------------------------------------------------------------------

    def add_tree(self, root: PromptNode, parent_id: str | None = None) -> None:
        """Insert a nested tree, flattening children into parent references."""
        if parent_id is not None:
            root = root.model_copy(update={"parent_id": parent_id})
        children = root.children
        self._nodes[root.id] = root.model_copy(update={"children": []}, deep=True)
        for position, child in enumerate(children):
            if child.position == 0 and position:
                child = child.model_copy(update={"position": position})
            self.add_tree(child, parent_id=root.id)

    def snapshot(self) -> list[PromptNode]:
        """Every stored node, flat, ordered by parent then position."""
        return [node.model_copy(deep=True) for node in self._ordered(self._nodes.values())]

    def _children_of(self, parent_id: str | None) -> list[PromptNode]:
        return self._ordered(n for n in self._nodes.values() if n.parent_id == parent_id)

    @staticmethod
    def _ordered(nodes) -> list[PromptNode]:
        return sorted(nodes, key=lambda n: (n.parent_id or "", n.position))

    def _build(self, node_id: str) -> PromptNode:
        node = self._nodes[node_id]
        children = [self._build(child.id) for child in self._children_of(node_id)]
        return node.model_copy(update={"children": children}, deep=True)

    # -------------------------------------------------------------------
    # TreeStore
    # -------------------------------------------------------------------

    async def get_subtree(self, root_id: str) -> PromptNode | None:
        if root_id not in self._nodes:
            return None
        return self._build(root_id)

    async def get_node(self, node_id: str) -> PromptNode | None:
        node = self._nodes.get(node_id)
        return node.model_copy(deep=True) if node is not None else None

    async def list_children(self, parent_id: str | None) -> list[PromptNode]:
        return [child.model_copy(deep=True) for child in self._children_of(parent_id)]

    async def create_node(self, parent_id: str | None, fields: dict[str, Any]) -> PromptNode:
        async with self._lock:
            if parent_id is not None and parent_id not in self._nodes:
                raise KeyError(parent_id)
            siblings = self._children_of(parent_id)
            position = siblings[-1].position + 1 if siblings else 0
            data = {**fields, "parent_id": parent_id, "position": position, "children": []}
            data.setdefault("id", uuid.uuid4().hex)
            node = PromptNode.model_validate(data)
            self._nodes[node.id] = node
            await self._persist()
        logger.debug("Created node %s under %s", node.id, parent_id)
        return node.model_copy(deep=True)

    async def update_node(self, node_id: str, fields: dict[str, Any]) -> PromptNode:
        async with self._lock:
            current = self._nodes[node_id]
            data = {**current.model_dump(), **fields, "id": node_id, "children": []}
            node = PromptNode.model_validate(data)
            self._nodes[node_id] = node
            await self._persist()
        return node.model_copy(deep=True)

    async def _persist(self) -> None:
        """Hook for durable subclasses; called with the lock held."""
