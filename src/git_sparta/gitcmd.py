"""Git command adapter.

Every interaction with the version-control tool goes through ``Git.run``, so
tests can swap in a fake with the same methods. Plumbing that has no
library equivalent here (update-index, read-tree, checkout-index, update-ref,
symbolic-ref, fetch, submodule, lfs) is expressed as plain git invocations.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from .errors import ExternalCommandError

GIT_EXECUTABLE = "git"
FETCH_TIMEOUT = 600  # 10 minutes for shallow fetches over slow links


@dataclass
class GitResult:
    """Captured output of one git invocation."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class Git:
    """Runs git with optional --git-dir / --work-tree / cwd."""

    def __init__(self, executable: str = GIT_EXECUTABLE):
        self.executable = executable

    def command(
        self,
        *args: str | Path,
        git_dir: Path | None = None,
        work_tree: Path | None = None,
    ) -> list[str]:
        cmd = [self.executable]
        if git_dir is not None:
            cmd += ["--git-dir", str(git_dir)]
        if work_tree is not None:
            cmd += ["--work-tree", str(work_tree)]
        cmd += [str(a) for a in args]
        return cmd

    def run(
        self,
        *args: str | Path,
        git_dir: Path | None = None,
        work_tree: Path | None = None,
        cwd: Path | None = None,
        input: str | None = None,
        timeout: float | None = None,
    ) -> GitResult:
        """Run git and capture its output. Never raises on a non-zero exit."""
        cmd = self.command(*args, git_dir=git_dir, work_tree=work_tree)
        try:
            proc = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd is not None else None,
                input=input,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="surrogateescape",
                timeout=timeout,
            )
        except FileNotFoundError:
            raise ExternalCommandError(cmd, None, f"{self.executable} executable not found")
        except subprocess.TimeoutExpired:
            raise ExternalCommandError(cmd, None, f"timed out after {timeout}s")
        return GitResult(args=cmd, returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)

    def must_succeed(self, *args: str | Path, **kwargs) -> GitResult:
        """Run git and raise ExternalCommandError on a non-zero exit."""
        result = self.run(*args, **kwargs)
        if not result.ok:
            raise ExternalCommandError(result.args, result.returncode, result.stderr)
        return result

    def stdout_trimmed(self, *args: str | Path, **kwargs) -> str:
        return self.must_succeed(*args, **kwargs).stdout.strip()

    def succeeded(self, *args: str | Path, **kwargs) -> bool:
        """Existence checks: True when git exits zero."""
        return self.run(*args, **kwargs).ok
