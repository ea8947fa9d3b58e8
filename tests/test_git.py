"""
Tests for syncer.git

GitRunner is tested with subprocess mocked. Credential resolution and
the .git/config scan use only the filesystem.
"""

import os
import subprocess
from pathlib import Path
from unittest import mock

import pytest

from syncer.errors import KeyExpansionError, KeyNotFoundError
from syncer.git.credentials import PASSPHRASE_ENV, SshCredential, resolve_credential
from syncer.git.inspector import RepositoryInspector, RepositoryState, is_empty, recorded_origin
from syncer.git.runner import GitCommandError, GitRunner, GitTimeoutError


def _mock_git_result(returncode: int = 0, stdout: str = "", stderr: str = ""):
    """Create a mock subprocess.CompletedProcess."""
    return subprocess.CompletedProcess(
        args=["git"], returncode=returncode, stdout=stdout, stderr=stderr,
    )


def _write_git_config(repo: Path, text: str) -> None:
    (repo / ".git").mkdir(parents=True)
    (repo / ".git" / "config").write_text(text)


# ---------------------------------------------------------------------------
# GitRunner
# ---------------------------------------------------------------------------

class TestGitRunner:
    """Subprocess wrapper: timeout, env, error mapping."""

    @mock.patch("syncer.git.runner.subprocess.run")
    def test_passes_timeout_cwd_and_env(self, mock_run, tmp_path):
        mock_run.return_value = _mock_git_result(stdout="ok\n")
        runner = GitRunner(timeout=12, env={"GIT_SSH_COMMAND": "ssh -i key"})

        runner.run("status", cwd=tmp_path)

        cmd = mock_run.call_args[0][0]
        kwargs = mock_run.call_args[1]
        assert cmd == ["git", "status"]
        assert kwargs["cwd"] == str(tmp_path)
        assert kwargs["timeout"] == 12
        assert kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"
        assert kwargs["env"]["GIT_SSH_COMMAND"] == "ssh -i key"

    @mock.patch("syncer.git.runner.subprocess.run")
    def test_per_call_timeout_override(self, mock_run):
        mock_run.return_value = _mock_git_result()
        GitRunner(timeout=12).run("fetch", timeout=3)
        assert mock_run.call_args[1]["timeout"] == 3

    @mock.patch("syncer.git.runner.subprocess.run")
    def test_nonzero_raises(self, mock_run):
        mock_run.return_value = _mock_git_result(returncode=128, stderr="fatal: not a git repository\n")

        with pytest.raises(GitCommandError) as exc:
            GitRunner().run("status")

        assert exc.value.returncode == 128
        assert exc.value.stderr == "fatal: not a git repository"
        assert "git status failed" in str(exc.value)

    @mock.patch("syncer.git.runner.subprocess.run")
    def test_nonzero_without_check(self, mock_run):
        mock_run.return_value = _mock_git_result(returncode=1)
        result = GitRunner().run("diff", "--quiet", check=False)
        assert result.returncode == 1

    @mock.patch("syncer.git.runner.subprocess.run")
    def test_timeout_raises(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd=["git", "fetch"], timeout=5)

        with pytest.raises(GitTimeoutError) as exc:
            GitRunner(timeout=5).run("fetch", "origin")

        assert isinstance(exc.value, GitCommandError)
        assert exc.value.timeout == 5
        assert "timed out" in str(exc.value)

    @mock.patch("syncer.git.runner.subprocess.run")
    def test_unusable_cwd_raises(self, mock_run, tmp_path):
        mock_run.side_effect = NotADirectoryError(20, "Not a directory", str(tmp_path / "file"))

        with pytest.raises(GitCommandError) as exc:
            GitRunner().run("status", cwd=tmp_path / "file")

        assert exc.value.returncode == -1
        assert "Not a directory" in exc.value.stderr

    @mock.patch("syncer.git.runner.subprocess.run")
    def test_output(self, mock_run):
        mock_run.return_value = _mock_git_result(stdout="abc123\n")
        assert GitRunner().output("rev-parse", "HEAD") == "abc123"

    @mock.patch("syncer.git.runner.subprocess.run")
    def test_output_failure_is_none(self, mock_run):
        mock_run.return_value = _mock_git_result(returncode=1)
        assert GitRunner().output("rev-parse", "HEAD") is None


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class TestResolveCredential:
    """Optional SSH key → SshCredential."""

    def test_no_key(self):
        assert resolve_credential("") is None
        assert resolve_credential(None) is None

    def test_missing_key(self, tmp_path):
        with pytest.raises(KeyNotFoundError) as exc:
            resolve_credential(str(tmp_path / "missing"))
        assert exc.value.field == "SYNCER_SSH_KEY_FILENAME"
        assert exc.value.fatal

    def test_unknown_user_home(self):
        with pytest.raises(KeyExpansionError):
            resolve_credential("~no-such-user-for-syncer-tests/.ssh/id")

    def test_home_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        key = tmp_path / ".ssh" / "deploy"
        key.parent.mkdir()
        key.write_text("KEY")

        credential = resolve_credential("~/.ssh/deploy")

        assert credential.key_path == key
        assert credential.passphrase is None

    def test_existing_key(self, tmp_path):
        key = tmp_path / "deploy"
        key.write_text("KEY")

        credential = resolve_credential(str(key), "secret")

        assert credential.key_path == key
        assert credential.passphrase == "secret"
        assert "secret" not in repr(credential)


class TestSshCredential:
    """Environment overlay handed to git."""

    def test_without_passphrase(self, tmp_path):
        credential = SshCredential(key_path=tmp_path / "deploy")
        env = credential.environment()

        assert env == {
            "GIT_SSH_COMMAND": f"ssh -i {tmp_path / 'deploy'} -o IdentitiesOnly=yes -o BatchMode=yes",
        }

    def test_quotes_key_path(self, tmp_path):
        credential = SshCredential(key_path=tmp_path / "my key")
        assert f"'{tmp_path / 'my key'}'" in credential.ssh_command()

    def test_with_passphrase(self, tmp_path):
        credential = SshCredential(key_path=tmp_path / "deploy", passphrase="s3cret")
        env = credential.environment()

        assert "BatchMode" not in env["GIT_SSH_COMMAND"]
        assert env["SSH_ASKPASS_REQUIRE"] == "force"
        assert env[PASSPHRASE_ENV] == "s3cret"

        helper = Path(env["SSH_ASKPASS"])
        assert helper.is_file()
        assert os.access(helper, os.X_OK)
        assert "s3cret" not in helper.read_text()


# ---------------------------------------------------------------------------
# Inspector
# ---------------------------------------------------------------------------

class TestIsEmpty:
    """Empty, missing and populated destinations."""

    def test_missing(self, tmp_path):
        assert is_empty(tmp_path / "nope")

    def test_empty(self, tmp_path):
        assert is_empty(tmp_path)

    def test_hidden_file_counts(self, tmp_path):
        (tmp_path / ".keep").write_text("")
        assert not is_empty(tmp_path)


class TestRecordedOrigin:
    """Text scan of .git/config."""

    def test_origin_url(self, tmp_path):
        _write_git_config(tmp_path, (
            "[core]\n"
            "\trepositoryformatversion = 0\n"
            '[remote "origin"]\n'
            "\turl = git@example.com:team/site.git   \n"
            "\tfetch = +refs/heads/main:refs/remotes/origin/main\n"
        ))
        assert recorded_origin(tmp_path) == "git@example.com:team/site.git"

    def test_other_remote_ignored(self, tmp_path):
        _write_git_config(tmp_path, (
            '[remote "fork"]\n'
            "\turl = git@example.com:me/site.git\n"
            '[remote "origin"]\n'
            "\turl = git@example.com:team/site.git\n"
        ))
        assert recorded_origin(tmp_path) == "git@example.com:team/site.git"
        assert recorded_origin(tmp_path, "fork") == "git@example.com:me/site.git"

    def test_first_url_wins(self, tmp_path):
        _write_git_config(tmp_path, (
            '[remote "origin"]\n'
            "\turl = https://one.example/site.git\n"
            "\turl = https://two.example/site.git\n"
        ))
        assert recorded_origin(tmp_path) == "https://one.example/site.git"

    def test_section_without_url(self, tmp_path):
        _write_git_config(tmp_path, (
            '[remote "origin"]\n'
            "\tfetch = +refs/heads/*:refs/remotes/origin/*\n"
            '[branch "main"]\n'
            "\turl = not-a-remote\n"
        ))
        assert recorded_origin(tmp_path) is None

    def test_no_config(self, tmp_path):
        assert recorded_origin(tmp_path) is None


class TestRepositoryInspector:
    """inspect() short-circuits on empty destinations."""

    def test_empty_destination_runs_no_git(self, tmp_path):
        runner = mock.Mock(spec=GitRunner)
        state = RepositoryInspector(runner).inspect(tmp_path, "git@h:r.git")

        assert state == RepositoryState(exists=False)
        runner.run.assert_not_called()

    def test_plain_directory(self, tmp_path):
        (tmp_path / "index.html").write_text("<html>")
        runner = mock.Mock(spec=GitRunner)

        state = RepositoryInspector(runner).inspect(tmp_path, "git@h:r.git")

        assert state.exists
        assert not state.has_metadata
        assert state.recorded_origin is None
        assert not state.is_valid_clone
        assert state.is_clean is None
        runner.run.assert_not_called()

    def test_valid_clone_checks_cleanliness(self, tmp_path):
        _write_git_config(tmp_path, '[remote "origin"]\n\turl = git@h:r.git\n')
        runner = mock.Mock(spec=GitRunner)
        runner.run.side_effect = [
            _mock_git_result(stdout="abc123\n"),        # rev-parse HEAD
            _mock_git_result(stdout=" M index.html\n"),  # status --porcelain
        ]

        state = RepositoryInspector(runner).inspect(tmp_path, "git@h:r.git")

        assert state.is_valid_clone
        assert state.is_clean is False
        assert state.to_dict()["recorded_origin"] == "git@h:r.git"
