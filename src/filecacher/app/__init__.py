"""Application layer for FileCacher."""

from .context import AppContext

__all__ = ["AppContext"]
