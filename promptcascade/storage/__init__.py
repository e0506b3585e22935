"""Storage backends for the prompt tree."""

from promptcascade.storage.file_tree_store import FileTreeStore
from promptcascade.storage.tree_store import InMemoryTreeStore, TreeStore

__all__ = ["TreeStore", "InMemoryTreeStore", "FileTreeStore"]
