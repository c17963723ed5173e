"""Recursive attribute collector.

Walks a repository's index, evaluates the tag attribute for every tracked
file and descends into every checked-out submodule, whether it is linked
from the index or only registered under ``.git/modules``. Patterns are
expressed relative to the top-level worktree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .attributes import DEFAULT_ATTRIBUTE, AttributeEvaluator, token_matches
from .errors import SpartaError
from .gitcmd import Git
from .repository import (
    Repository,
    collapse_repeated_segments,
    discover_submodules,
    has_checkout,
    join_prefix,
    open_nested_repository,
    open_repository,
    read_index,
)

TokenRecorder = Callable[[str, str], None]


@dataclass
class TagCounts:
    """Tag -> number of tracked files carrying it."""

    counts: dict[str, int] = field(default_factory=dict)

    def record(self, tag: str) -> None:
        self.counts[tag] = self.counts.get(tag, 0) + 1

    def is_empty(self) -> bool:
        return not self.counts

    def sorted_items(self) -> list[tuple[str, int]]:
        return sorted(self.counts.items())

    def __len__(self) -> int:
        return len(self.counts)


@dataclass
class CollectState:
    """Everything one ``collect`` traversal found for a target tag."""

    matches: list[tuple[str, str]] = field(default_factory=list)
    patterns: set[str] = field(default_factory=set)
    tag_counts: dict[str, int] = field(default_factory=dict)
    file_map: dict[str, set[str]] = field(default_factory=dict)

    def record_match(self, pattern: str, token: str, user_tag: str) -> bool:
        """Record ``token`` on ``pattern`` if it satisfies ``user_tag``."""
        if not token_matches(token, user_tag):
            return False
        self.matches.append((pattern, token))
        self.patterns.add(pattern)
        self.tag_counts[token] = self.tag_counts.get(token, 0) + 1
        self.file_map.setdefault(pattern, set()).add(token)
        return True

    def sorted_patterns(self) -> list[str]:
        return sorted(self.patterns)

    def sorted_tag_counts(self) -> list[tuple[str, int]]:
        return sorted(self.tag_counts.items())

    def sorted_files(self) -> list[tuple[str, list[str]]]:
        return [(p, sorted(tags)) for p, tags in sorted(self.file_map.items())]

    def is_empty(self) -> bool:
        return not self.patterns


class _ProcessedSet:
    """Submodule paths already visited in one repository context."""

    def __init__(self):
        self._paths: set[str] = set()

    def add(self, path: str) -> None:
        self._paths.add(path)

    def __contains__(self, path: str) -> bool:
        # a discovered a/b/b/c is the same submodule as a/b/c in the index
        return path in self._paths or collapse_repeated_segments(path) in self._paths


def _visit(repo: Repository, prefix: str, attribute: str, record: TokenRecorder, git: Git) -> None:
    evaluator = AttributeEvaluator(repo, attribute, git)
    entries = read_index(repo, git)
    states = evaluator.resolve_many(e.path for e in entries if not e.is_gitlink)
    processed = _ProcessedSet()
    seen: set[str] = set()

    for entry in entries:
        # conflicted paths appear once per stage
        if entry.path in seen:
            continue
        seen.add(entry.path)
        if entry.is_gitlink:
            processed.add(entry.path)
            _descend(repo, entry.path, prefix, attribute, record, git)
            continue
        pattern = join_prefix(prefix, entry.path)
        for token in states[entry.path].tokens():
            record(pattern, token)

    for sub_path in discover_submodules(repo, git):
        if sub_path in processed:
            continue
        _descend(repo, sub_path, prefix, attribute, record, git)
        processed.add(sub_path)


def _descend(repo: Repository, sub_path: str, prefix: str, attribute: str, record: TokenRecorder, git: Git) -> None:
    target = repo.worktree / sub_path
    if not has_checkout(target):
        return
    try:
        sub_repo = open_nested_repository(target, git)
    except SpartaError as e:
        raise e.with_context(f"failed to open submodule at {target}")
    _visit(sub_repo, join_prefix(prefix, sub_path), attribute, record, git)


def discover_tags(
    start: Path | str | None = None,
    attribute: str = DEFAULT_ATTRIBUTE,
    git: Git | None = None,
) -> TagCounts:
    """Count every token of ``attribute`` across the repository and its submodules."""
    git = git or Git()
    repo = open_repository(start, git)
    counts = TagCounts()
    _visit(repo, "", attribute, lambda _pattern, token: counts.record(token), git)
    return counts


def collect_matching_files(
    start: Path | str | None,
    tag: str,
    attribute: str = DEFAULT_ATTRIBUTE,
    git: Git | None = None,
) -> CollectState:
    """Collect files whose tokens are ``global`` or contain ``tag``."""
    if not tag:
        raise ValueError("tag must not be empty")
    git = git or Git()
    repo = open_repository(start, git)
    state = CollectState()
    _visit(repo, "", attribute, lambda pattern, token: state.record_match(pattern, token, tag), git)
    return state
