"""
Reference Resolution — Turn a configured branch/tag into a git ref.

A tag always wins over a branch. With neither set the mirror follows
the ``main`` branch.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

DEFAULT_BRANCH = "main"


class ReferenceSpec(BaseModel):
    """The desired remote reference, as configured."""

    model_config = ConfigDict(frozen=True)

    branch: Optional[str] = None
    tag: Optional[str] = None

    @property
    def is_ambiguous(self) -> bool:
        return bool(self.branch) and bool(self.tag)


@dataclass(frozen=True)
class ResolvedReference:
    """A single canonical reference usable by clone, fetch and merge."""

    kind: Literal["branch", "tag"]
    name: str

    @property
    def ref(self) -> str:
        if self.kind == "tag":
            return f"refs/tags/{self.name}"
        return f"refs/heads/{self.name}"

    @property
    def fetch_refspec(self) -> str:
        # Tags are fetched onto themselves so the local tag follows a re-tag
        if self.kind == "tag":
            return f"+{self.ref}:{self.ref}"
        return self.ref

    def __str__(self) -> str:
        return f"{self.kind} {self.name}"


def resolve_reference(spec: ReferenceSpec) -> ResolvedReference:
    """Resolve a ReferenceSpec. Pure; never fails."""
    if spec.tag:
        return ResolvedReference(kind="tag", name=spec.tag)
    return ResolvedReference(kind="branch", name=spec.branch or DEFAULT_BRANCH)
