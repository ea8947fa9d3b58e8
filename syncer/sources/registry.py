"""
Source Registry — Lookup source implementations by kind.

The dispatch table is built once at startup; adding a source kind means
registering one more factory here.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List

from ..config.models import SyncConfiguration
from ..errors import ConfigurationError
from .base import Source
from .git import GitSource

logger = logging.getLogger(__name__)


class SourceRegistry:
    """Registry of source factories keyed by source kind."""

    def __init__(self) -> None:
        self._factories: Dict[str, Callable[[], Source]] = {}
        self.register("git", GitSource)

    def register(self, kind: str, factory: Callable[[], Source]) -> None:
        """Register a factory for a source kind."""
        self._factories[kind] = factory
        logger.debug(f"Registered source kind: {kind}")

    def kinds(self) -> List[str]:
        return sorted(self._factories)

    def create(self, config: SyncConfiguration) -> Source:
        """
        Create the source for this configuration.

        Raises:
            ConfigurationError: If the source kind is not supported
        """
        kind = config.source_kind
        factory = self._factories.get(kind)
        if factory is None:
            raise ConfigurationError(
                f"unhandled source type for {config.source} "
                f"(supported: {', '.join(self.kinds())})",
                field="SYNCER_SOURCE",
            )
        return factory()
