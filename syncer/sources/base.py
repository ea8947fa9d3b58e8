"""
Source Base Class — Capability interface for every source kind.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict

from ..config.models import SyncConfiguration
from ..engine.reconcile import TickResult


class Source(ABC):
    """
    Abstract base class for all source kinds.

    The driver calls configure() once, initialize() once, then update()
    on every poll interval. Implementations raise SyncerError subclasses
    and never terminate the process themselves.
    """

    @property
    @abstractmethod
    def kind(self) -> str:
        """The source kind identifier (e.g., 'git')."""
        pass

    @abstractmethod
    def configure(self, config: SyncConfiguration) -> None:
        """Resolve anything derived from the configuration (e.g. credentials)."""
        pass

    @abstractmethod
    def initialize(self, config: SyncConfiguration) -> TickResult:
        """Bring the destination up for the first time in this process."""
        pass

    @abstractmethod
    def update(self, config: SyncConfiguration) -> TickResult:
        """Reconcile the destination with the source once."""
        pass

    def describe(self, config: SyncConfiguration) -> Dict[str, Any]:
        """Kind-specific settings for the startup banner."""
        return {}
