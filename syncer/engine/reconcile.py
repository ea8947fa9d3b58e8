"""
Reconciliation Engine — Decide and apply the corrective action for a mirror.

Each call inspects the destination from scratch, classifies it, and
then clones, resets, fast-forwards or self-heals it.

## States

- UNINITIALIZED: destination is empty → clone
- VALID_MIRROR: clean clone of the source → fetch + fast-forward
- DRIFTED: clone with local changes → hard reset (or DriftError)
- CONFIG_MISMATCH: not a clone of the source → ConfigMismatchError
- MISSING_METADATA: ``.git`` is gone or corrupt → re-clone (tick only)

## Design Principles

- **No clone over a clone**: initialize() delegates to tick() when a
  matching clone is already present
- **Hands off foreign data**: a mismatched destination is never touched
- **Staged changes**: a failed merge rolls back to the pre-tick HEAD and
  a self-heal clone is staged inside the destination before it replaces
  anything

## Usage

    engine = ReconciliationEngine(GitRunner(timeout=config.git_timeout))

    engine.initialize(config)     # once, at startup
    result = engine.tick(config)  # every poll interval
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from ..config.models import SyncConfiguration
from ..errors import (
    CloneError,
    ConfigMismatchError,
    ConfigurationError,
    DriftError,
    UpdateError,
)
from ..git.inspector import METADATA_DIR, RepositoryInspector, RepositoryState
from ..git.runner import GitCommandError, GitRunner

logger = logging.getLogger(__name__)

HEAL_PREFIX = ".syncer-heal-"


class MirrorState(str, Enum):
    """Logical state of the destination, derived from a RepositoryState."""
    UNINITIALIZED = "uninitialized"
    VALID_MIRROR = "valid-mirror"
    DRIFTED = "drifted"
    CONFIG_MISMATCH = "config-mismatch"
    MISSING_METADATA = "missing-metadata"


class SyncAction(str, Enum):
    """Something the engine did to the destination."""
    CLONED = "cloned"
    HEALED = "healed"
    RESET = "reset"
    UPDATED = "updated"
    UP_TO_DATE = "up-to-date"


def classify(state: RepositoryState, source: str) -> MirrorState:
    """Map an inspected RepositoryState to a MirrorState."""
    if not state.exists:
        return MirrorState.UNINITIALIZED
    if state.recorded_origin is not None and state.recorded_origin != source:
        return MirrorState.CONFIG_MISMATCH
    if not state.has_metadata:
        return MirrorState.MISSING_METADATA
    if not state.is_valid_clone:
        return MirrorState.CONFIG_MISMATCH
    if not state.is_clean:
        return MirrorState.DRIFTED
    return MirrorState.VALID_MIRROR


@dataclass
class TickResult:
    """Result of one reconciliation."""

    tick_id: str
    started_at: str
    state: MirrorState
    reference: str
    actions: List[SyncAction] = field(default_factory=list)
    head_before: Optional[str] = None
    head_after: Optional[str] = None
    duration_ms: int = 0
    _started: float = field(default_factory=time.monotonic, repr=False)

    @property
    def action(self) -> Optional[SyncAction]:
        """The most significant action taken."""
        for candidate in (SyncAction.CLONED, SyncAction.HEALED, SyncAction.UPDATED, SyncAction.RESET):
            if candidate in self.actions:
                return candidate
        return self.actions[-1] if self.actions else None

    @property
    def changed(self) -> bool:
        return self.head_before != self.head_after or SyncAction.RESET in self.actions


def generate_tick_id() -> str:
    """Generate a unique tick ID."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    suffix = uuid4().hex[:6].upper()
    return f"T-{ts}-{suffix}"


class ReconciliationEngine:
    """
    State machine that keeps one destination mirrored.

    The configuration is passed to every call; the engine keeps no
    state between ticks.
    """

    def __init__(self, runner: GitRunner, inspector: Optional[RepositoryInspector] = None):
        self.runner = runner
        self.inspector = inspector or RepositoryInspector(runner)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def initialize(self, config: SyncConfiguration) -> TickResult:
        """
        Bring an empty destination up as a mirror, or verify an existing one.

        Raises:
            ConfigurationError: If the destination cannot be created
            ConfigMismatchError: If the destination holds something else
            CloneError: If the initial clone fails
        """
        dest = config.destination
        try:
            dest.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"cannot create destination directory: {e}", field="SYNCER_DEST")
        if not dest.is_dir():
            raise ConfigurationError(f"destination is not a directory: {dest}", field="SYNCER_DEST")

        state = self.inspect(config)
        mirror_state = classify(state, config.source)

        if mirror_state == MirrorState.UNINITIALIZED:
            result = self._new_result(config, mirror_state)
            logger.info("Performing initial clone...", extra={"tick_id": result.tick_id})
            self._clone(config, dest)
            result.actions.append(SyncAction.CLONED)
            return self._finish(result, config)

        if mirror_state in (MirrorState.CONFIG_MISMATCH, MirrorState.MISSING_METADATA):
            raise self._mismatch(config, state)

        logger.info("Clone already exists in destination, performing update instead...")
        return self.tick(config)

    def tick(self, config: SyncConfiguration) -> TickResult:
        """
        Run one reconciliation cycle.

        Raises:
            ConfigMismatchError: If the destination is not a clone of the source
            DriftError: If there are local changes and resetting is disabled
            UpdateError: If fetch, merge or reset fails
            CloneError: If a (self-healing) clone fails
        """
        state = self.inspect(config)
        mirror_state = classify(state, config.source)
        result = self._new_result(config, mirror_state)
        extra = {"tick_id": result.tick_id, "state": mirror_state.value}

        if mirror_state == MirrorState.UNINITIALIZED:
            logger.warning("Destination is empty, cloning again...", extra=extra)
            try:
                config.destination.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise CloneError(f"cannot create destination directory: {e}")
            self._clone(config, config.destination)
            result.actions.append(SyncAction.CLONED)
            return self._finish(result, config)

        if mirror_state == MirrorState.MISSING_METADATA:
            logger.warning("Repository metadata is missing, attempting reinitialisation...", extra=extra)
            self._self_heal(config)
            result.actions.append(SyncAction.HEALED)
            return self._finish(result, config)

        if mirror_state == MirrorState.CONFIG_MISMATCH:
            raise self._mismatch(config, state)

        result.head_before = self._head(config.destination)

        if mirror_state == MirrorState.DRIFTED:
            if not config.reset_on_drift:
                raise DriftError(
                    "there are uncommitted changes, cannot pull",
                    details={"destination": str(config.destination)},
                )
            logger.info("Performing hard reset...", extra=extra)
            self._reset(config)
            result.actions.append(SyncAction.RESET)

        result.actions.append(self._update(config, result.head_before))
        return self._finish(result, config)

    def inspect(self, config: SyncConfiguration) -> RepositoryState:
        try:
            return self.inspector.inspect(config.destination, config.source, config.upstream)
        except GitCommandError as e:
            raise UpdateError(f"cannot inspect {config.destination}: {e.stderr or e}")
        except OSError as e:
            raise UpdateError(f"cannot read from dest directory: {e}")

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _clone(self, config: SyncConfiguration, target: Path) -> None:
        ref = config.resolved_reference
        args = [
            "clone",
            "--single-branch",
            "--branch", ref.name,
            "--origin", config.upstream,
        ]
        if config.clone_depth:
            args += ["--depth", str(config.clone_depth)]
        args += ["--", config.source, str(target)]

        try:
            self.runner.run(*args)
        except GitCommandError as e:
            raise CloneError(
                f"failed to perform clone of {config.source} ({ref}): {e.stderr or e}",
                details={"returncode": e.returncode},
            )

    def _self_heal(self, config: SyncConfiguration) -> None:
        """
        Re-clone into a staging directory inside the destination, then
        swap the contents in.

        Nothing in the destination is removed until the staged clone
        resolves HEAD.
        """
        dest = config.destination
        staging: Optional[Path] = None
        try:
            staging = Path(tempfile.mkdtemp(prefix=HEAL_PREFIX, dir=dest))
            self._clone(config, staging)
            if not (staging / METADATA_DIR).is_dir() or not self._rev_parse(staging, "HEAD"):
                raise CloneError(f"staged clone of {config.source} has no HEAD, destination left untouched")

            for entry in dest.iterdir():
                if entry == staging:
                    continue
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            for entry in staging.iterdir():
                # shutil.move falls back to copying across filesystems
                shutil.move(str(entry), str(dest / entry.name))
        except OSError as e:
            raise CloneError(f"failed to replace destination contents: {e}")
        finally:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)

    def _reset(self, config: SyncConfiguration) -> None:
        dest = config.destination
        try:
            self.runner.run("reset", "--hard", "HEAD", cwd=dest)
            # -ff also removes nested repositories, -x ignored files
            self.runner.run("clean", "-ffdx", cwd=dest)
            clean = self.inspector.is_working_tree_clean(dest)
        except GitCommandError as e:
            raise UpdateError(f"hard reset failed: {e.stderr or e}")

        if not clean:
            raise UpdateError(
                "working tree still has local changes after hard reset",
                details={"destination": str(dest)},
            )

    def _update(self, config: SyncConfiguration, head_before: str) -> SyncAction:
        """Fetch the resolved reference and fast-forward onto it."""
        dest = config.destination
        ref = config.resolved_reference

        try:
            self.runner.run("fetch", "--no-tags", config.upstream, ref.fetch_refspec, cwd=dest)
        except GitCommandError as e:
            raise UpdateError(
                f"fetch of {ref} from {config.upstream} failed: {e.stderr or e}",
                details={"returncode": e.returncode},
            )

        target = self._rev_parse(dest, "FETCH_HEAD^{commit}")
        if not target:
            raise UpdateError(f"could not resolve fetched {ref}")

        if target == head_before:
            logger.info(f"Already up to date at {head_before[:12]}")
            return SyncAction.UP_TO_DATE

        try:
            self.runner.run("merge", "--ff-only", "--quiet", target, cwd=dest)
        except GitCommandError as e:
            # Leave the tree exactly as it was before this tick
            try:
                self.runner.run("merge", "--abort", cwd=dest, check=False)
                self.runner.run("reset", "--hard", head_before, cwd=dest, check=False)
            except GitCommandError as rollback_error:
                logger.error(f"Rollback to {head_before[:12]} failed: {rollback_error}")
            raise UpdateError(
                f"fast-forward to {target[:12]} failed: {e.stderr or e}",
                details={"head": head_before, "target": target},
            )

        logger.info(f"Fast-forwarded {head_before[:12]} → {target[:12]}")
        return SyncAction.UPDATED

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _rev_parse(self, dest: Path, rev: str) -> Optional[str]:
        try:
            return self.runner.output("rev-parse", "--verify", "--quiet", rev, cwd=dest)
        except GitCommandError as e:
            raise UpdateError(f"cannot resolve {rev} in {dest}: {e.stderr or e}")

    def _head(self, dest: Path) -> str:
        head = self._rev_parse(dest, "HEAD")
        if not head:
            raise UpdateError(f"could not resolve HEAD in {dest}")
        return head

    def _mismatch(self, config: SyncConfiguration, state: RepositoryState) -> ConfigMismatchError:
        if state.recorded_origin is None:
            message = "destination directory is not empty but does not contain a git clone"
        else:
            message = (
                f"destination contains a clone of {state.recorded_origin} "
                f"but the source is {config.source}"
            )
        return ConfigMismatchError(
            message,
            details={
                "destination": str(config.destination),
                "recorded_origin": state.recorded_origin,
                "source": config.source,
            },
        )

    def _new_result(self, config: SyncConfiguration, state: MirrorState) -> TickResult:
        return TickResult(
            tick_id=generate_tick_id(),
            started_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            state=state,
            reference=str(config.resolved_reference),
        )

    def _finish(self, result: TickResult, config: SyncConfiguration) -> TickResult:
        result.head_after = self._rev_parse(config.destination, "HEAD")
        result.duration_ms = int((time.monotonic() - result._started) * 1000)
        logger.info(
            f"Tick {result.tick_id} complete: {result.action.value if result.action else 'none'} "
            f"({result.reference} @ {(result.head_after or '?')[:12]}, {result.duration_ms}ms)",
            extra={"tick_id": result.tick_id, "action": result.action.value if result.action else None},
        )
        return result
