"""Sparse submodule setup pipeline.

Provisions a submodule whose working tree only holds the files tagged for
the configured project. Every step checks the current state before acting,
so re-running converges instead of duplicating work. There is no rollback:
the first failing step aborts the run and leaves earlier steps in place
(``teardown-submodule`` removes a partial setup).
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from . import lfs, output
from .attributes import DEFAULT_ATTRIBUTE
from .collector import collect_matching_files
from .config import ResolvedConfig
from .errors import NoMatchError, RepositoryError, SpartaError, UserAbortedError
from .gitcmd import FETCH_TIMEOUT, Git
from .gitconfig import ConfigFile, SubmoduleConfig
from .repository import Repository, find_gitlink, has_checkout, open_repository

REMOTE_NAME = "origin"


@dataclass
class SetupReport:
    """What one setup run changed."""

    patterns: list[str] = field(default_factory=list)
    gitlink_sha: str = ""
    gitmodules_changed: bool = False
    local_config_changed: bool = False
    gitlink_created: bool = False
    modules_created: bool = False
    alternates_added: bool = False
    gitfile_written: bool = False
    modules_config_changed: bool = False
    remote_added: bool = False
    remote_updated: bool = False
    fetched: bool = False
    lfs_ok: bool | None = None  # None when the tree does not use LFS

    @property
    def changed(self) -> bool:
        return any((
            self.gitmodules_changed,
            self.local_config_changed,
            self.gitlink_created,
            self.modules_created,
            self.alternates_added,
            self.gitfile_written,
            self.modules_config_changed,
            self.remote_added,
            self.remote_updated,
            self.fetched,
        ))


def mirror_objects(mirror: Path | None) -> Path | None:
    """Object directory of a mirror clone (non-bare or bare), if it has one."""
    if mirror is None:
        return None
    for candidate in (mirror / ".git" / "objects", mirror / "objects"):
        if candidate.is_dir():
            return candidate
    return None


def add_alternate(git_dir: Path, objects: Path) -> bool:
    """Append ``objects`` to the alternates file unless already listed."""
    alternates = git_dir / "objects" / "info" / "alternates"
    alternates.parent.mkdir(parents=True, exist_ok=True)
    current = alternates.read_text() if alternates.exists() else ""
    line = str(objects)
    if line in current.splitlines():
        return False
    if current and not current.endswith("\n"):
        current += "\n"
    alternates.write_text(f"{current}{line}\n")
    return True


class SubmoduleProvisioner:
    """Runs the setup steps for one resolved configuration."""

    def __init__(self, config: ResolvedConfig, git: Git | None = None, attribute: str = DEFAULT_ATTRIBUTE):
        self.config = config
        self.git = git or Git()
        self.attribute = attribute
        self._repo: Repository | None = None

    @property
    def repo(self) -> Repository:
        if self._repo is None:
            repo = open_repository(self.config.work_repo, self.git)
            if repo.worktree != self.config.work_repo:
                raise RepositoryError(
                    f"configuration directory {self.config.work_repo} is not the root of "
                    f"repository {repo.worktree}"
                )
            self._repo = repo
        return self._repo

    @property
    def modules_path(self) -> Path:
        return self.repo.modules_root / self.config.submodule_path_relative

    def _step(self, name: str, func: Callable, *args):
        output.debug(f"[{name}]")
        try:
            return func(*args)
        except SpartaError as e:
            raise e.with_context(f"{name} failed")
        except OSError as e:
            raise RepositoryError(str(e)).with_context(f"{name} failed")

    # step 1

    def prepare(self) -> list[str]:
        """Generate the sparse patterns for the configured tag."""
        return self._step("pattern generation", self._generate_patterns)

    def _generate_patterns(self) -> list[str]:
        cfg = self.config
        source = cfg.shared_mirror_path or cfg.submodule_path
        output.note(f"Generating sparse patterns from {source}...")
        if not has_checkout(source):
            raise RepositoryError(
                f"No git repository found at {source}. Clone {cfg.submodule_url} outside "
                f"{cfg.submodule_path} and set SHARED_MIRROR_PATH (in a *.local.json file "
                f"or the environment) to that clone."
            )
        if source == cfg.submodule_path and (source / ".git").is_dir():
            # the worktree linkage step needs a gitfile here, not a repository
            raise RepositoryError(
                f"{source} is a full clone. Move it outside the repository and set "
                f"SHARED_MIRROR_PATH (in a *.local.json file or the environment) to its "
                f"new location before setup."
            )
        state = collect_matching_files(source, cfg.project_tag, self.attribute, self.git)
        if state.is_empty():
            raise NoMatchError(
                f"No patterns found for tag '{cfg.project_tag}' in {source}",
                tag=cfg.project_tag,
                root=source,
            )
        return state.sorted_patterns()

    # steps 2-10

    def run(self, patterns: list[str]) -> SetupReport:
        report = SetupReport(patterns=list(patterns))
        self._step("metadata sync", self._sync_metadata, report)
        self._step("gitlink check", self._ensure_gitlink, report)
        self._step("submodule init", self._init_submodule)
        self._step("modules directory", self._ensure_modules_dir, report)
        self._step("worktree linkage", self._link_worktree, report)
        self._step("remote fetch", self._fetch_commit, report)
        self._step("sparse checkout", self._configure_sparse, report.patterns)
        self._step("materialize", self._materialize)
        if lfs.uses_lfs(self.config.submodule_path):
            report.lfs_ok = lfs.fetch_and_checkout(self.modules_path, self.config.submodule_path, self.git)
        return report

    def _sync_metadata(self, report: SetupReport) -> None:
        cfg = self.config
        sub = SubmoduleConfig(cfg.submodule_name, self.git)
        report.gitmodules_changed = sub.ensure_gitmodules(
            cfg.work_repo / ".gitmodules",
            cfg.submodule_path_relative,
            cfg.submodule_url,
            cfg.submodule_branch,
        )
        report.local_config_changed = sub.ensure_local_config(
            self.repo.git_dir / "config", cfg.submodule_url, cfg.submodule_branch
        )
        if report.gitmodules_changed:
            output.success("✓ Updated .gitmodules")
        if report.local_config_changed:
            output.success("✓ Updated local git configuration")

    def _ensure_gitlink(self, report: SetupReport) -> None:
        rel = self.config.submodule_path_relative
        entry = find_gitlink(self.repo, rel, self.git)
        if entry is not None:
            report.gitlink_sha = entry.sha
            output.note("Gitlink already exists in index")
            return
        output.note("Creating gitlink in index...")
        sha = self.resolve_remote_tip()
        self.git.must_succeed(
            "update-index", "--add", "--cacheinfo", "160000", sha, rel, cwd=self.repo.worktree
        )
        report.gitlink_sha = sha
        report.gitlink_created = True
        output.success(f"✓ Added gitlink {sha[:12]} to index")

    def resolve_remote_tip(self) -> str:
        """Tip commit of the configured branch, via a throwaway shallow fetch."""
        cfg = self.config
        output.note(f"Fetching commit SHA for {cfg.submodule_branch} from {cfg.submodule_url}...")
        with tempfile.TemporaryDirectory(prefix="git-sparta-") as tmp:
            tmp_git = Path(tmp)
            self.git.must_succeed("init", "--bare", "-q", tmp_git)
            self.git.must_succeed("remote", "add", REMOTE_NAME, cfg.submodule_url, git_dir=tmp_git)
            objects = mirror_objects(cfg.shared_mirror_path)
            if objects is not None:
                add_alternate(tmp_git, objects)
                output.debug(f"Using git alternates from {objects}")
            self.git.must_succeed(
                "fetch", "--depth=1", REMOTE_NAME, cfg.submodule_branch,
                git_dir=tmp_git, timeout=FETCH_TIMEOUT,
            )
            return self.git.stdout_trimmed("rev-parse", "FETCH_HEAD", git_dir=tmp_git)

    def _init_submodule(self) -> None:
        self.git.must_succeed(
            "submodule", "init", "--", self.config.submodule_path_relative, cwd=self.repo.worktree
        )
        output.success("✓ Submodule initialized")

    def _ensure_modules_dir(self, report: SetupReport) -> None:
        modules = self.modules_path
        if not modules.exists():
            output.note(f"Initializing bare repository at {modules}")
            modules.parent.mkdir(parents=True, exist_ok=True)
            self.git.must_succeed("init", "--bare", "-q", modules)
            report.modules_created = True
        objects = mirror_objects(self.config.shared_mirror_path)
        if objects is not None:
            report.alternates_added = add_alternate(modules, objects)
            if report.alternates_added:
                output.note("Configured git alternates from mirror")
        output.success(f"✓ Set up modules directory: {modules}")

    def _link_worktree(self, report: SetupReport) -> None:
        worktree = self.config.submodule_path
        modules = self.modules_path
        worktree.mkdir(parents=True, exist_ok=True)

        gitfile = worktree / ".git"
        if gitfile.is_dir():
            raise RepositoryError(
                f"{gitfile} is a directory; move the existing clone away before setup"
            )
        relative = Path(os.path.relpath(modules, worktree)).as_posix()
        content = f"gitdir: {relative}\n"
        if not gitfile.exists() or gitfile.read_text() != content:
            gitfile.write_text(content)
            report.gitfile_written = True

        modules_config = ConfigFile(modules / "config", self.git)
        modules_config.set_value("core", None, "bare", "false")
        modules_config.set_value("core", None, "worktree", str(worktree))
        report.modules_config_changed = modules_config.dirty
        output.success("✓ Linked working tree to modules repository")

    def has_commit(self, sha: str) -> bool:
        return self.git.succeeded("cat-file", "-e", f"{sha}^{{commit}}", git_dir=self.modules_path)

    def _fetch_commit(self, report: SetupReport) -> None:
        cfg = self.config
        modules = self.modules_path

        current = self.git.run("remote", "get-url", REMOTE_NAME, git_dir=modules)
        if not current.ok:
            self.git.must_succeed("remote", "add", REMOTE_NAME, cfg.submodule_url, git_dir=modules)
            report.remote_added = True
            output.note(f"Added remote '{REMOTE_NAME}'")
        elif current.stdout.strip() != cfg.submodule_url:
            self.git.must_succeed("remote", "set-url", REMOTE_NAME, cfg.submodule_url, git_dir=modules)
            report.remote_updated = True
            output.note(f"Updated remote '{REMOTE_NAME}' to {cfg.submodule_url}")

        entry = find_gitlink(self.repo, cfg.submodule_path_relative, self.git)
        if entry is None:
            raise RepositoryError(f"no gitlink found in index for {cfg.submodule_path_relative}")
        sha = entry.sha
        report.gitlink_sha = sha

        if not self.has_commit(sha):
            output.note(f"Fetching commit {sha[:12]}...")
            self.git.must_succeed(
                "fetch", "--depth=1", REMOTE_NAME, cfg.submodule_branch,
                git_dir=modules, timeout=FETCH_TIMEOUT,
            )
            report.fetched = True
            if not self.has_commit(sha):
                # branch moved past the pinned commit
                self.git.run(
                    "fetch", "--depth=1", REMOTE_NAME, sha, git_dir=modules, timeout=FETCH_TIMEOUT
                )
            if not self.has_commit(sha):
                raise RepositoryError(
                    f"commit {sha} is not available from {cfg.submodule_url} "
                    f"(branch {cfg.submodule_branch})"
                )
        else:
            output.debug(f"Commit {sha[:12]} already present")

        branch_ref = f"refs/heads/{cfg.submodule_branch}"
        self.git.must_succeed("update-ref", "--no-deref", "HEAD", sha, git_dir=modules)
        self.git.must_succeed("update-ref", branch_ref, sha, git_dir=modules)
        self.git.must_succeed("symbolic-ref", "HEAD", branch_ref, git_dir=modules)
        output.success("✓ Fetched remote content")

    def _configure_sparse(self, patterns: list[str]) -> None:
        modules = self.modules_path
        ConfigFile(modules / "config", self.git).set_value("core", None, "sparseCheckout", "true")
        info = modules / "info"
        info.mkdir(parents=True, exist_ok=True)
        (info / "sparse-checkout").write_text("\n".join(patterns) + "\n")
        output.success(f"✓ Configured sparse checkout ({len(patterns)} patterns)")

    def _materialize(self) -> None:
        modules = self.modules_path
        worktree = self.config.submodule_path
        self.git.must_succeed("read-tree", "-mu", "HEAD", git_dir=modules, work_tree=worktree, cwd=worktree)
        self.git.must_succeed(
            "checkout-index", "--all", "--force", git_dir=modules, work_tree=worktree, cwd=worktree
        )
        output.success("✓ Materialized sparse files")


def print_summary(config: ResolvedConfig, patterns: list[str]) -> None:
    output.divider()
    output.heading("Submodule setup summary")
    output.label_value("Configuration", config.config_file)
    output.label_value("Submodule", config.submodule_name)
    output.label_value("Path", config.submodule_path)
    output.label_value("URL", config.submodule_url)
    output.label_value("Branch", config.submodule_branch)
    output.label_value("Project Tag", config.project_tag)
    output.label_value("Sparse Patterns", len(patterns))
    if output.is_verbose():
        output.bullet_list(patterns)
    if config.shared_mirror_path:
        output.label_value("Mirror", config.shared_mirror_path)
    else:
        output.note("Mirror: <none>")
    output.divider()


def setup_submodule(
    config: ResolvedConfig,
    auto_yes: bool = False,
    git: Git | None = None,
    attribute: str = DEFAULT_ATTRIBUTE,
) -> SetupReport:
    """Confirm with the user, then run the whole setup pipeline."""
    provisioner = SubmoduleProvisioner(config, git, attribute)
    patterns = provisioner.prepare()
    print_summary(config, patterns)

    if not output.confirm("Proceed with submodule setup?", True, auto_yes):
        raise UserAbortedError()

    repo = provisioner.repo
    output.debug(f"Working in repository: {repo.worktree}")
    output.debug(f"Git directory: {repo.git_dir}")

    report = provisioner.run(patterns)

    output.divider()
    output.success(f"✓ Submodule '{config.submodule_name}' successfully set up with sparse checkout!")
    output.note(f"Working tree: {config.submodule_path}")
    if report.gitlink_created or report.gitmodules_changed:
        output.note("Stage and commit the registration:")
        output.note(f"  git add .gitmodules {config.submodule_path_relative}")
    if report.lfs_ok is False:
        output.warn("LFS objects were not fetched; re-run setup once git-lfs is available.")
    return report
