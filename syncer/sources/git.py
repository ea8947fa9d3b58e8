"""
Git Source — Mirror a branch or tag of a git repository.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..config.models import SOURCE_KIND_GIT, SyncConfiguration
from ..engine.reconcile import ReconciliationEngine, TickResult
from ..git.credentials import SshCredential, resolve_credential
from ..git.runner import GitRunner
from .base import Source

logger = logging.getLogger(__name__)


class GitSource(Source):
    """Git implementation of the source capability interface."""

    def __init__(self) -> None:
        self.credential: Optional[SshCredential] = None
        self._engine: Optional[ReconciliationEngine] = None

    @property
    def kind(self) -> str:
        return SOURCE_KIND_GIT

    def configure(self, config: SyncConfiguration) -> None:
        settings = config.credential
        if settings is not None:
            passphrase = settings.passphrase.get_secret_value() if settings.passphrase else None
            self.credential = resolve_credential(settings.key_path, passphrase)

        env = self.credential.environment() if self.credential else None
        self._engine = ReconciliationEngine(GitRunner(timeout=config.git_timeout, env=env))

    @property
    def engine(self) -> ReconciliationEngine:
        if self._engine is None:
            raise RuntimeError("GitSource.configure() must be called first")
        return self._engine

    def initialize(self, config: SyncConfiguration) -> TickResult:
        return self.engine.initialize(config)

    def update(self, config: SyncConfiguration) -> TickResult:
        return self.engine.tick(config)

    def describe(self, config: SyncConfiguration) -> Dict[str, Any]:
        resolved = config.resolved_reference
        return {
            "Git upstream": config.upstream,
            f"Git {resolved.kind}": resolved.name,
            "Reset on changes": config.reset_on_drift,
            "SSH key filename": str(self.credential.key_path) if self.credential else "",
        }
