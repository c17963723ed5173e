"""Sparse submodule teardown: undo what setup created, one piece at a time."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from . import output
from .config import ResolvedConfig
from .errors import RepositoryError, SpartaError, UserAbortedError
from .gitcmd import Git
from .gitconfig import SubmoduleConfig
from .repository import Repository, open_repository


@dataclass
class TeardownReport:
    gitmodules_changed: bool = False
    local_config_changed: bool = False
    worktree_removed: bool = False
    modules_removed: bool = False

    @property
    def changed(self) -> bool:
        return any((
            self.gitmodules_changed,
            self.local_config_changed,
            self.worktree_removed,
            self.modules_removed,
        ))


def prune_empty_parents(start: Path, modules_root: Path) -> None:
    """Remove empty directories from ``start`` upwards, stopping below ``modules_root``."""
    current = start
    while current != modules_root and modules_root in current.parents:
        try:
            current.rmdir()
        except OSError:
            break
        current = current.parent


class SubmoduleTeardown:
    def __init__(self, config: ResolvedConfig, git: Git | None = None):
        self.config = config
        self.git = git or Git()

    def run(self) -> TeardownReport:
        cfg = self.config
        report = TeardownReport()
        repo: Repository = open_repository(cfg.work_repo, self.git)

        sub = SubmoduleConfig(cfg.submodule_name, self.git)
        try:
            report.gitmodules_changed = sub.remove_from(cfg.work_repo / ".gitmodules")
            report.local_config_changed = sub.remove_from(repo.git_dir / "config")
        except SpartaError as e:
            raise e.with_context("metadata cleanup failed")
        if report.gitmodules_changed:
            output.success("✓ Removed entry from .gitmodules")
        if report.local_config_changed:
            output.success("✓ Removed entry from local git config")

        if cfg.submodule_path.exists():
            _remove_tree(cfg.submodule_path)
            report.worktree_removed = True
            output.success(f"✓ Deleted working directory {cfg.submodule_path}")

        modules_path = repo.modules_root / cfg.submodule_path_relative
        if modules_path.exists():
            _remove_tree(modules_path)
            prune_empty_parents(modules_path.parent, repo.modules_root)
            report.modules_removed = True
            output.success("✓ Removed modules repository")

        return report


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except OSError as e:
        raise RepositoryError(f"failed to remove {path}: {e}")


def teardown_submodule(config: ResolvedConfig, auto_yes: bool = False, git: Git | None = None) -> TeardownReport:
    """Confirm (default no), then remove the submodule's metadata and files."""
    output.divider()
    output.heading("Submodule teardown summary")
    output.label_value("Submodule", config.submodule_name)
    output.label_value("Path", config.submodule_path)
    output.label_value("Project Tag", config.project_tag)
    output.divider()

    if not output.confirm(
        f"Remove submodule '{config.submodule_name}' and clean metadata?", False, auto_yes
    ):
        raise UserAbortedError()

    report = SubmoduleTeardown(config, git).run()
    output.success(f"Submodule '{config.submodule_name}' removed")
    output.note("Review git status and stage removals as needed.")
    return report
