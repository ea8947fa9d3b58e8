"""
Sources — Capability interface and dispatch table for source kinds.
"""

from .base import Source
from .git import GitSource
from .registry import SourceRegistry

__all__ = [
    "Source",
    "GitSource",
    "SourceRegistry",
]
