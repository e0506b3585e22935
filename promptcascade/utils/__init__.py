"""Utility helpers."""

from promptcascade.utils.io import atomic_write

__all__ = ["atomic_write"]
