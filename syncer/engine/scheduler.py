"""
Scheduler — Drive source updates on a fixed interval.

Ticks run one at a time on the calling thread. The wait for the next
tick starts when the previous one finishes, so a slow tick delays the
schedule instead of queueing a burst of catch-up ticks.

Non-fatal errors (drift with resetting disabled) are logged and retried
on the next tick. Fatal errors propagate to the caller, which owns the
decision to terminate.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from ..config.models import SyncConfiguration
from ..errors import SyncerError
from ..observability.metrics import MetricsRegistry, metrics
from ..sources.base import Source
from .reconcile import TickResult

logger = logging.getLogger(__name__)


def record_result(result: TickResult, registry: MetricsRegistry = metrics) -> None:
    """Count a successful reconciliation."""
    action = result.action.value if result.action else "none"
    registry.increment("ticks_total", labels={"action": action})
    registry.timing("tick_duration_seconds", result.duration_ms / 1000)
    registry.set_gauge("last_success_timestamp_seconds", time.time())


class Scheduler:
    """Runs ``source.update(config)`` every ``config.poll_interval``."""

    def __init__(
        self,
        source: Source,
        config: SyncConfiguration,
        registry: Optional[MetricsRegistry] = None,
    ):
        self.source = source
        self.config = config
        self.registry = registry or metrics
        self.interval = config.poll_interval.total_seconds()
        self._stop = threading.Event()

    def run_once(self) -> Optional[TickResult]:
        """
        Run a single update.

        Returns:
            The TickResult, or None if a non-fatal error was swallowed

        Raises:
            SyncerError: If the error is fatal
        """
        try:
            result = self.source.update(self.config)
        except SyncerError as e:
            self.registry.increment("tick_errors_total", labels={"error": type(e).__name__})
            if e.fatal:
                raise
            logger.warning(f"Update skipped (will retry next tick): {e}")
            return None

        record_result(result, self.registry)
        return result

    def run(self) -> None:
        """Tick until stop() is called or a fatal error is raised."""
        logger.info(f"Scheduler started (every {self.interval:g}s)")
        while not self._stop.wait(timeout=self.interval):
            logger.info("Updating...")
            self.run_once()
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()
