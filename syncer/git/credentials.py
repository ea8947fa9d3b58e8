"""
Credential Provider — Resolve the optional SSH key used for git transport.

Resolution happens once at configuration time. The key file itself is
only checked for existence here; ssh reads the key bytes when git
connects.

## Usage

    from syncer.git.credentials import resolve_credential

    credential = resolve_credential("~/.ssh/deploy_key", "secret")
    runner = GitRunner(env=credential.environment() if credential else None)
"""

from __future__ import annotations

import atexit
import logging
import os
import shlex
import shutil
import stat
import tempfile
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from ..errors import KeyExpansionError, KeyNotFoundError

logger = logging.getLogger(__name__)

PASSPHRASE_ENV = "SYNCER_ASKPASS_PASSPHRASE"

_ASKPASS_SCRIPT = f"""#!/bin/sh
printf '%s\\n' "${PASSPHRASE_ENV}"
"""


@lru_cache(maxsize=None)
def _askpass_helper() -> Path:
    """Write the askpass helper once per process. It never contains the secret."""
    directory = Path(tempfile.mkdtemp(prefix="syncer-askpass-"))
    atexit.register(shutil.rmtree, directory, True)
    script = directory / "askpass.sh"
    script.write_text(_ASKPASS_SCRIPT, encoding="utf-8")
    script.chmod(stat.S_IRWXU)
    return script


@dataclass(frozen=True)
class SshCredential:
    """A private key on disk plus its optional passphrase."""

    key_path: Path
    passphrase: Optional[str] = field(default=None, repr=False)

    def ssh_command(self) -> str:
        parts = ["ssh", "-i", shlex.quote(str(self.key_path)), "-o", "IdentitiesOnly=yes"]
        if not self.passphrase:
            # Nothing can answer a prompt, so never wait for one
            parts += ["-o", "BatchMode=yes"]
        return " ".join(parts)

    def environment(self) -> Dict[str, str]:
        """Environment overlay that makes git use this key."""
        env = {"GIT_SSH_COMMAND": self.ssh_command()}
        if self.passphrase:
            env.update({
                "SSH_ASKPASS": str(_askpass_helper()),
                "SSH_ASKPASS_REQUIRE": "force",
                "DISPLAY": os.environ.get("DISPLAY", "syncer:0"),
                PASSPHRASE_ENV: self.passphrase,
            })
        return env


def expand_key_path(key_path: str) -> Path:
    """
    Expand a leading home-directory marker and make the path absolute.

    Raises:
        KeyExpansionError: If the home directory cannot be expanded
    """
    expanded = os.path.expanduser(key_path)
    if expanded.startswith("~"):
        raise KeyExpansionError(
            f"cannot perform home directory expansion on the SSH key filename: {key_path}",
            field="SYNCER_SSH_KEY_FILENAME",
        )
    return Path(expanded).absolute()


def resolve_credential(
    key_path: Optional[str],
    passphrase: Optional[str] = None,
) -> Optional[SshCredential]:
    """
    Resolve an SSH credential.

    Returns:
        SshCredential, or None when no key is configured (ambient ssh
        config and agent are used)

    Raises:
        KeyExpansionError: If the home directory cannot be expanded
        KeyNotFoundError: If the key file does not exist
    """
    if not key_path:
        logger.debug("No SSH key configured, using ambient credentials")
        return None

    path = expand_key_path(key_path)
    if not path.is_file():
        raise KeyNotFoundError(
            f"SSH key filename does not exist: {path}",
            field="SYNCER_SSH_KEY_FILENAME",
        )

    logger.info(f"Using SSH key {path}{' (with passphrase)' if passphrase else ''}")
    return SshCredential(key_path=path, passphrase=passphrase or None)
