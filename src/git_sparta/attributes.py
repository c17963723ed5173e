"""Attribute evaluation for tracked files.

Wraps ``git check-attr`` so the attribute stack of one worktree is resolved
in a single subprocess per repository.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable

from .errors import AttributeLoadError, ExternalCommandError
from .gitcmd import Git
from .repository import GITLINK_MODE, Repository

DEFAULT_ATTRIBUTE = "projects"
GLOBAL_TAG = "global"


class AttributeKind(enum.Enum):
    UNSET = "unset"
    SET = "set"
    VALUE = "value"


@dataclass(frozen=True)
class AttributeState:
    """Resolved state of one attribute for one path."""

    kind: AttributeKind
    value: str | None = None

    def tokens(self) -> list[str]:
        """Tags carried by this state. ``SET`` means the sentinel ``global``."""
        if self.kind is AttributeKind.SET:
            return [GLOBAL_TAG]
        if self.kind is AttributeKind.VALUE and self.value is not None:
            return split_tokens(self.value)
        return []


UNSET = AttributeState(AttributeKind.UNSET)
SET = AttributeState(AttributeKind.SET)


def split_tokens(raw: str) -> list[str]:
    return [t.strip() for t in raw.split(",") if t.strip()]


def token_matches(token: str, tag: str) -> bool:
    """A token is selected by ``tag`` if it is global or contains ``tag``.

    Substring matching is deliberate: ``app`` also selects ``app/core``.
    """
    return token == GLOBAL_TAG or tag in token


def parse_state(info: str) -> AttributeState:
    if info in ("unspecified", "unset"):
        return UNSET
    if info == "set":
        return SET
    return AttributeState(AttributeKind.VALUE, info)


def parse_check_attr(output: str) -> dict[str, AttributeState]:
    """Parse ``git check-attr -z`` output: ``path NUL attr NUL info NUL`` triplets."""
    fields = output.split("\0")
    if fields and fields[-1] == "":
        fields.pop()
    if len(fields) % 3:
        raise ValueError(f"truncated check-attr output ({len(fields)} fields)")
    states = {}
    for i in range(0, len(fields), 3):
        path, _attr, info = fields[i:i + 3]
        states[path] = parse_state(info)
    return states


class AttributeEvaluator:
    """Resolves one named attribute against a worktree's attribute stack."""

    def __init__(self, repo: Repository, attribute: str = DEFAULT_ATTRIBUTE, git: Git | None = None):
        if not repo.worktree.is_dir():
            raise AttributeLoadError(
                f"failed to load git attribute stack for {repo.worktree}: not a directory"
            )
        self.repo = repo
        self.attribute = attribute
        self.git = git or Git()

    def resolve_many(self, paths: Iterable[str]) -> dict[str, AttributeState]:
        paths = list(paths)
        if not paths:
            return {}
        payload = "\0".join(paths) + "\0"
        try:
            result = self.git.must_succeed(
                "check-attr", "-z", "--stdin", self.attribute,
                cwd=self.repo.worktree, input=payload,
            )
        except ExternalCommandError as e:
            raise AttributeLoadError(
                f"failed to evaluate attribute '{self.attribute}' in {self.repo.worktree}: {e.stderr}"
            )
        try:
            states = parse_check_attr(result.stdout)
        except ValueError as e:
            raise AttributeLoadError(f"failed to evaluate attributes in {self.repo.worktree}: {e}")
        return {p: states.get(p, UNSET) for p in paths}

    def resolve(self, path: str, mode: str | None = None) -> AttributeState:
        """Resolve a single path. Gitlinks never carry attributes."""
        if mode == GITLINK_MODE:
            return UNSET
        return self.resolve_many([path])[path]
