"""
Git Runner — Run git subprocesses with a timeout and a prepared environment.

Every clone, fetch, merge and reset goes through GitRunner so that a
hung transport can never stall reconciliation for longer than the
configured timeout.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)


class GitCommandError(Exception):
    """A git command exited non-zero."""

    def __init__(self, args: List[str], returncode: int, stderr: str = "", stdout: str = ""):
        self.args_list = args
        self.returncode = returncode
        self.stderr = stderr.strip()
        self.stdout = stdout.strip()
        detail = self.stderr or self.stdout or f"exit status {returncode}"
        super().__init__(f"git {' '.join(args)} failed: {detail}")


class GitTimeoutError(GitCommandError):
    """A git command did not finish within the timeout."""

    def __init__(self, args: List[str], timeout: float):
        self.timeout = timeout
        super().__init__(args, -1, stderr=f"timed out after {timeout:g}s")


class GitRunner:
    """
    Runs git commands.

    Args:
        timeout: Seconds allowed per command
        env: Extra environment variables (e.g. from an SshCredential)
    """

    def __init__(self, timeout: float = 300.0, env: Optional[Mapping[str, str]] = None):
        self.timeout = timeout
        self._env: Dict[str, str] = os.environ.copy()
        # Fail fast instead of prompting on a terminal nobody is watching
        self._env["GIT_TERMINAL_PROMPT"] = "0"
        self._env.setdefault("GIT_ASKPASS", "echo")
        if env:
            self._env.update(env)

    def run(
        self,
        *args: str,
        cwd: Optional[Path] = None,
        check: bool = True,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """
        Run ``git <args>``.

        Raises:
            GitTimeoutError: If the command exceeds the timeout
            GitCommandError: If check is set and the command exits non-zero,
                or git cannot be started at all
        """
        cmd = ["git"] + list(args)
        limit = timeout or self.timeout
        logger.debug(f"$ {' '.join(cmd)} (cwd={cwd})")
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                timeout=limit,
                env=self._env,
            )
        except subprocess.TimeoutExpired:
            raise GitTimeoutError(list(args), limit)
        except OSError as e:
            # Missing git binary or an unusable cwd
            raise GitCommandError(list(args), -1, stderr=str(e))

        if check and result.returncode != 0:
            raise GitCommandError(list(args), result.returncode, result.stderr, result.stdout)
        return result

    def output(self, *args: str, cwd: Optional[Path] = None) -> Optional[str]:
        """Run a git command and return stripped stdout, or None on failure."""
        result = self.run(*args, cwd=cwd, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip()
