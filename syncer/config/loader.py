"""
Config Loader — Build a SyncConfiguration from SYNCER_* environment variables.

## Environment Variables

- SYNCER_SOURCE (required): remote repository URL
- SYNCER_DEST (required): local mirror directory
- SYNCER_UPDATE_INTERVAL: poll interval, Go-style duration (default: 1h)
- SYNCER_GIT_BRANCH / SYNCER_GIT_TAG: reference (default: branch main)
- SYNCER_GIT_UPSTREAM: remote name (default: origin)
- SYNCER_GIT_RESET_ON_CHANGES: discard local changes (default: true)
- SYNCER_SSH_KEY_FILENAME / SYNCER_SSH_KEY_PASSWORD: SSH key auth
- SYNCER_GIT_TIMEOUT: per git command timeout, duration or bare seconds
  (default: 300s)
- SYNCER_GIT_DEPTH: shallow clone depth, 0 = full history (default: 0)
- SYNCER_HTTP_PORT or NOMAD_PORT_http: liveness port (default: 3000)

## Usage

    from syncer.config.loader import load_settings

    config = load_settings()  # raises ConfigurationError
"""

from __future__ import annotations

import logging
import os
import re
from datetime import timedelta
from typing import Mapping, Optional

from pydantic import ValidationError

from ..errors import ConfigurationError
from ..git.reference import ReferenceSpec
from .models import SshKeySettings, SyncConfiguration

logger = logging.getLogger(__name__)

TRUTHY = ("true", "yes", "on", "1")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """
    Parse a Go-style duration such as "1h", "30s", "1h30m" or "250ms".

    As in Go, every number needs a unit; only a bare "0" is accepted
    without one.

    Raises:
        ValueError: If the string is not a valid duration
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    if text == "0":
        return timedelta(0)
    if re.fullmatch(r"\d+(?:\.\d*)?|\.\d+", text):
        raise ValueError(f"missing unit in duration {value!r}")

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration {value!r}")

    return timedelta(seconds=sign * total)


def env_string(env: Mapping[str, str], name: str, default: str = "") -> str:
    """Read a string, falling back to the default when unset or empty."""
    value = env.get(name, "")
    if not value:
        return default
    return value


def env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    """Read a boolean. Truths: true, yes, on, 1. Anything else is false."""
    value = env_string(env, name).strip().lower()
    if not value:
        return default
    return value in TRUTHY


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env_string(env, name).strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"not an integer: {raw!r}", field=name)


def _env_duration(env: Mapping[str, str], name: str, default: str, bare_seconds: bool = False) -> timedelta:
    raw = env_string(env, name, default).strip()
    if bare_seconds and re.fullmatch(r"\d+(?:\.\d*)?", raw):
        raw += "s"
    try:
        return parse_duration(raw)
    except (ValueError, OverflowError) as e:
        raise ConfigurationError(str(e), field=name)


def load_settings(environ: Optional[Mapping[str, str]] = None) -> SyncConfiguration:
    """
    Load and validate the sync configuration.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        A frozen SyncConfiguration

    Raises:
        ConfigurationError: If a setting is missing or malformed
    """
    env = os.environ if environ is None else environ

    source = env_string(env, "SYNCER_SOURCE").strip()
    if not source:
        raise ConfigurationError("a source repository is required", field="SYNCER_SOURCE")

    dest = env_string(env, "SYNCER_DEST").strip()
    if not dest:
        raise ConfigurationError("a destination directory is required", field="SYNCER_DEST")

    branch = env_string(env, "SYNCER_GIT_BRANCH").strip() or None
    tag = env_string(env, "SYNCER_GIT_TAG").strip() or None
    reference = ReferenceSpec(branch=branch, tag=tag)
    if reference.is_ambiguous:
        logger.warning(
            f"Both SYNCER_GIT_BRANCH ({branch}) and SYNCER_GIT_TAG ({tag}) are set; "
            f"following tag {tag}"
        )

    credential = None
    key_path = env_string(env, "SYNCER_SSH_KEY_FILENAME").strip()
    if key_path:
        passphrase = env_string(env, "SYNCER_SSH_KEY_PASSWORD")
        credential = SshKeySettings(key_path=key_path, passphrase=passphrase or None)

    port_var = "SYNCER_HTTP_PORT" if env_string(env, "SYNCER_HTTP_PORT") else "NOMAD_PORT_http"
    http_port = _env_int(env, port_var, 3000)

    try:
        return SyncConfiguration(
            source=source,
            destination=dest,
            poll_interval=_env_duration(env, "SYNCER_UPDATE_INTERVAL", "1h"),
            reference=reference,
            upstream=env_string(env, "SYNCER_GIT_UPSTREAM", "origin"),
            reset_on_drift=env_bool(env, "SYNCER_GIT_RESET_ON_CHANGES", True),
            credential=credential,
            git_timeout=_env_duration(env, "SYNCER_GIT_TIMEOUT", "300s", bare_seconds=True).total_seconds(),
            clone_depth=_env_int(env, "SYNCER_GIT_DEPTH", 0),
            http_port=http_port,
        )
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigurationError(
            first.get("msg", "invalid value"),
            field=location or None,
            details={"errors": e.errors(include_url=False)},
        )
