"""
Errors — Exception taxonomy for the syncer.

Every error carries a ``fatal`` flag. Internal code only raises; the
top-level driver (``syncer.main``) decides whether to retry on the next
tick or to terminate the process.

## Usage

    from syncer.errors import SyncerError

    try:
        source.update(config)
    except SyncerError as e:
        if e.fatal:
            raise
        logger.warning(f"Tick failed (will retry): {e}")
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SyncerError(Exception):
    """Base class for all syncer errors."""

    fatal: bool = True

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.field = field
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class ConfigurationError(SyncerError):
    """A required setting is missing or malformed."""


class CredentialError(SyncerError):
    """The SSH key could not be resolved."""


class KeyExpansionError(CredentialError):
    """The home directory in the key path could not be expanded."""


class KeyNotFoundError(CredentialError):
    """The key path does not exist on disk."""


class ConfigMismatchError(SyncerError):
    """The destination is not empty and is not a clone of the source."""


class DriftError(SyncerError):
    """The working tree has local changes and resetting is disabled."""

    fatal = False


class UpdateError(SyncerError):
    """Fetching or fast-forwarding the mirror failed."""


class CloneError(SyncerError):
    """The initial or self-healing clone failed."""
