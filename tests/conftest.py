"""
Shared fixtures for syncer tests.

Engine tests run real git against throwaway repositories under tmp_path.
The upstream is a plain working repository whose directory name ends in
``.git`` so that its ``file://`` URL is recognised as a git source.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict

import pytest

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(repo: Path, *args: str) -> str:
    """Run git in repo and return stripped stdout."""
    result = subprocess.run(
        ["git", "-C", str(repo)] + list(args),
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


class Upstream:
    """A bare repository standing in for the remote, fed from a work clone."""

    def __init__(self, path: Path, work: Path):
        self.path = path
        self.work = work
        self.url = path.as_uri()

    def commit(self, files: Dict[str, str], message: str = "update") -> str:
        for name, content in files.items():
            target = self.work / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        git(self.work, "add", "-A")
        git(self.work, "commit", "-q", "-m", message)
        git(self.work, "push", "-q", "origin", "main")
        return self.head()

    def head(self, ref: str = "HEAD") -> str:
        return git(self.path, "rev-parse", ref)

    def tag(self, name: str, force: bool = False) -> None:
        git(self.work, "tag", *(["-f", name] if force else [name]))
        git(self.work, "push", "-q", *(["-f"] if force else []), "origin", f"refs/tags/{name}")

    def amend(self, files: Dict[str, str]) -> str:
        """Rewrite the tip of main (a force-push upstream)."""
        for name, content in files.items():
            (self.work / name).write_text(content)
        git(self.work, "commit", "-q", "-a", "--amend", "-m", "rewritten")
        git(self.work, "push", "-q", "-f", "origin", "main")
        return self.head()


def make_upstream(path: Path) -> Upstream:
    path.mkdir(parents=True)
    git(path, "init", "-q", "--bare")
    git(path, "symbolic-ref", "HEAD", "refs/heads/main")

    work = path.parent / f"{path.stem}-work"
    work.mkdir()
    git(work, "init", "-q")
    git(work, "symbolic-ref", "HEAD", "refs/heads/main")
    git(work, "remote", "add", "origin", str(path))
    upstream = Upstream(path, work)
    upstream.commit({"README.md": "hello\n"}, "initial")
    return upstream


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's SYNCER_* settings and git identity out of tests."""
    for name in list(os.environ):
        if name.startswith("SYNCER_") or name in ("NOMAD_PORT_http", "LOG_LEVEL", "LOG_FORMAT"):
            monkeypatch.delenv(name, raising=False)

    monkeypatch.setenv("GIT_AUTHOR_NAME", "Syncer Tests")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "tests@syncer.invalid")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Syncer Tests")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "tests@syncer.invalid")
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")


@pytest.fixture
def upstream(tmp_path: Path) -> Upstream:
    """A repository on branch main with one commit."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    return make_upstream(tmp_path / "upstream.git")


@pytest.fixture
def dest(tmp_path: Path) -> Path:
    """Destination path for the mirror (not created)."""
    return tmp_path / "mirror"
