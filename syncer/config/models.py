"""
Configuration Models — Pydantic schema for the sync configuration.

A SyncConfiguration is built once at startup and is read-only for the
rest of the process lifetime. Every engine operation receives it as an
argument.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from ..git.reference import ReferenceSpec, ResolvedReference, resolve_reference

SOURCE_KIND_GIT = "git"
SOURCE_KIND_UNSUPPORTED = "unsupported"


def determine_source_kind(source: str) -> str:
    """Work out the source kind from the source URL."""
    if source.startswith("git@") or source.startswith("ssh://"):
        return SOURCE_KIND_GIT
    if source.startswith(("https://", "http://", "file://")) and source.endswith(".git"):
        return SOURCE_KIND_GIT
    return SOURCE_KIND_UNSUPPORTED


class SshKeySettings(BaseModel):
    """SSH key settings as configured (not yet expanded or checked)."""

    model_config = ConfigDict(frozen=True)

    key_path: str
    passphrase: Optional[SecretStr] = None


class SyncConfiguration(BaseModel):
    """Everything the engine needs to reconcile one destination."""

    model_config = ConfigDict(frozen=True)

    source: str
    destination: Path
    poll_interval: timedelta = timedelta(hours=1)
    reference: ReferenceSpec = Field(default_factory=ReferenceSpec)
    upstream: str = "origin"
    reset_on_drift: bool = True
    credential: Optional[SshKeySettings] = None

    # Operational knobs
    git_timeout: float = 300.0
    clone_depth: int = 0
    http_port: int = 3000

    @field_validator("source", "upstream")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("destination", mode="before")
    @classmethod
    def _absolute_destination(cls, value: Any) -> Path:
        if value is None or not str(value).strip():
            raise ValueError("must not be empty")
        return Path(str(value).strip()).expanduser().absolute()

    @field_validator("poll_interval")
    @classmethod
    def _positive_interval(cls, value: timedelta) -> timedelta:
        if value.total_seconds() <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("git_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("clone_depth")
    @classmethod
    def _non_negative_depth(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @property
    def source_kind(self) -> str:
        return determine_source_kind(self.source)

    @property
    def resolved_reference(self) -> ResolvedReference:
        return resolve_reference(self.reference)

    def to_display_dict(self) -> Dict[str, Any]:
        """Configuration summary safe for logs and CLI output."""
        resolved = self.resolved_reference
        return {
            "type": self.source_kind,
            "source": self.source,
            "destination": str(self.destination),
            "poll_interval_seconds": self.poll_interval.total_seconds(),
            "upstream": self.upstream,
            resolved.kind: resolved.name,
            "reset_on_drift": self.reset_on_drift,
            "ssh_key": self.credential.key_path if self.credential else None,
            "ssh_key_passphrase": (
                "********" if self.credential and self.credential.passphrase else None
            ),
            "git_timeout_seconds": self.git_timeout,
            "clone_depth": self.clone_depth,
            "http_port": self.http_port,
        }
