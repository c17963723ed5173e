"""Git LFS step of the setup pipeline.

LFS is optional: the sparse files are already materialized when this runs,
so failures here are reported as warnings and never abort setup.
"""

from __future__ import annotations

import os
from pathlib import Path

from . import output
from .errors import ExternalCommandError
from .gitcmd import FETCH_TIMEOUT, Git

LFS_FILTER = "filter=lfs"


def uses_lfs(worktree: Path) -> bool:
    """True if any checked-out .gitattributes declares the LFS filter."""
    for dirpath, dirnames, filenames in os.walk(worktree):
        dirnames[:] = [d for d in dirnames if d != ".git"]
        if ".gitattributes" not in filenames:
            continue
        try:
            text = (Path(dirpath) / ".gitattributes").read_text(errors="replace")
        except OSError:
            continue
        if LFS_FILTER in text:
            return True
    return False


def fetch_and_checkout(git_dir: Path, worktree: Path, git: Git | None = None) -> bool:
    """Install hooks, fetch and smudge LFS objects. Returns False on any failure."""
    git = git or Git()
    output.note("Fetching LFS objects...")
    steps = [
        (("lfs", "install", "--local"), None),
        (("lfs", "fetch"), FETCH_TIMEOUT),
        (("lfs", "checkout"), None),
    ]
    for args, timeout in steps:
        try:
            git.must_succeed(*args, git_dir=git_dir, work_tree=worktree, cwd=worktree, timeout=timeout)
        except ExternalCommandError as e:
            output.warn(f"git {' '.join(args)} failed; LFS files stay as pointers: {e.stderr}")
            return False
    return True
