"""Repository discovery, index reading and submodule discovery."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import ExternalCommandError, RepositoryError
from .gitcmd import Git

GITLINK_MODE = "160000"


@dataclass(frozen=True)
class Repository:
    """A non-bare repository: canonical worktree root and git directory."""

    worktree: Path
    git_dir: Path

    @property
    def modules_root(self) -> Path:
        return self.git_dir / "modules"


@dataclass(frozen=True)
class IndexEntry:
    """One entry of ``git ls-files --stage``."""

    mode: str
    sha: str
    stage: int
    path: str

    @property
    def is_gitlink(self) -> bool:
        return self.mode == GITLINK_MODE


def join_prefix(prefix: str, path: str) -> str:
    """Compose a submodule prefix with a path relative to that submodule."""
    path = path.replace("\\", "/").strip("/")
    if not prefix:
        return path
    return f"{prefix}/{path}"


def collapse_repeated_segments(path: str) -> str:
    """Drop an intermediate segment that repeats the one before it.

    Older layouts sometimes recorded ``a/b/b/c`` on disk for a submodule the
    index knows as ``a/b/c``. The last segment is never collapsed, so a real
    ``lib/lib`` submodule keeps its name.
    """
    parts = path.split("/")
    kept: list[str] = []
    for i, part in enumerate(parts):
        if kept and part == kept[-1] and i < len(parts) - 1:
            continue
        kept.append(part)
    return "/".join(kept)


def open_repository(start: Path | str | None = None, git: Git | None = None) -> Repository:
    """Discover the repository containing ``start`` (default: cwd)."""
    git = git or Git()
    start = Path(start or ".").resolve()
    if not start.is_dir():
        raise RepositoryError(f"Not a directory: {start}")

    result = git.run("rev-parse", "--is-bare-repository", "--absolute-git-dir", cwd=start)
    if not result.ok:
        raise RepositoryError(
            f"failed to discover git repository at {start}: {result.stderr.strip()}"
        )
    lines = result.stdout.splitlines()
    if len(lines) < 2:
        raise RepositoryError(f"unexpected rev-parse output for {start}: {result.stdout!r}")
    if lines[0].strip() == "true":
        raise RepositoryError(
            f"repository at {start} is bare; a worktree is required for this operation"
        )
    git_dir = Path(lines[1].strip()).resolve()

    try:
        toplevel = git.stdout_trimmed("rev-parse", "--show-toplevel", cwd=start)
    except ExternalCommandError as e:
        raise RepositoryError(f"repository at {start} has no worktree: {e.stderr}")
    return Repository(worktree=Path(toplevel).resolve(), git_dir=git_dir)


def open_nested_repository(path: Path, git: Git | None = None) -> Repository:
    """Open a submodule checkout whose worktree root must be ``path`` itself."""
    path = path.resolve()
    repo = open_repository(path, git)
    if repo.worktree != path:
        raise RepositoryError(
            f"submodule at {path} resolved to enclosing repository {repo.worktree}"
        )
    return repo


def has_checkout(path: Path) -> bool:
    """True if ``path`` holds a checked-out repository (``.git`` dir or file)."""
    return (path / ".git").exists()


def read_index(repo: Repository, git: Git | None = None, paths: tuple[str, ...] = ()) -> list[IndexEntry]:
    """Parse ``git ls-files --stage -z``; entries come back in index order."""
    git = git or Git()
    args = ["ls-files", "--stage", "-z"]
    if paths:
        args += ["--", *paths]
    try:
        out = git.must_succeed(*args, cwd=repo.worktree).stdout
    except ExternalCommandError as e:
        raise RepositoryError(
            f"failed to load git index for repository at {repo.worktree}: {e.stderr}"
        )

    entries = []
    for record in out.split("\0"):
        if not record:
            continue
        meta, _, path = record.partition("\t")
        fields = meta.split()
        if len(fields) != 3 or not path:
            raise RepositoryError(f"unexpected ls-files record in {repo.worktree}: {record!r}")
        mode, sha, stage = fields
        entries.append(IndexEntry(mode=mode, sha=sha, stage=int(stage), path=path))
    return entries


def find_gitlink(repo: Repository, path: str, git: Git | None = None) -> IndexEntry | None:
    """Return the gitlink entry recorded at ``path``, if any."""
    for entry in read_index(repo, git, paths=(path,)):
        if entry.path == path and entry.is_gitlink:
            return entry
    return None


def _module_worktree(module_dir: Path, git: Git) -> str | None:
    result = git.run("config", "--file", module_dir / "config", "--get", "core.worktree")
    if not result.ok:
        return None
    return result.stdout.strip() or None


def discover_submodules(repo: Repository, git: Git | None = None) -> list[str]:
    """List submodule worktrees registered under ``<git_dir>/modules``.

    Each module git directory (one holding ``config`` and ``HEAD``) declares
    its checkout through ``core.worktree``, relative to itself. Entries that
    do not resolve to an existing directory inside this worktree are broken
    or unlinked and are skipped. Module directories are not descended into:
    nested submodules belong to the nested repository's own scan.
    """
    git = git or Git()
    root = repo.modules_root
    if not root.is_dir():
        return []

    found: set[str] = set()
    for dirpath, dirnames, filenames in os.walk(root):
        if "config" not in filenames or "HEAD" not in filenames:
            continue
        dirnames[:] = []
        module_dir = Path(dirpath)
        declared = _module_worktree(module_dir, git)
        if declared is None:
            continue
        try:
            resolved = (module_dir / declared).resolve(strict=True)
        except (OSError, RuntimeError):
            continue
        if not resolved.is_dir():
            continue
        try:
            relative = resolved.relative_to(repo.worktree)
        except ValueError:
            continue
        rel = relative.as_posix()
        if rel in ("", "."):
            continue
        found.add(rel)
    return sorted(found)
