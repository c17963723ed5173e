"""Error types shared by the traversal and the submodule pipelines."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class SpartaError(Exception):
    """Base error. Carries context lines added while unwinding."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.context: list[str] = []

    def with_context(self, message: str) -> "SpartaError":
        """Prepend a context line and return self for re-raising."""
        self.context.insert(0, message)
        return self

    def __str__(self) -> str:
        return ": ".join([*self.context, self.message])


class ConfigError(SpartaError):
    """Configuration could not be found, parsed or resolved."""


class RepositoryError(SpartaError):
    """A repository could not be opened or is unusable (e.g. bare)."""


class AttributeLoadError(SpartaError):
    """The attribute stack for a worktree could not be loaded or evaluated."""


class NoMatchError(SpartaError):
    """A traversal finished without producing any pattern or tag."""

    def __init__(self, message: str, tag: str | None = None, root: Path | None = None):
        super().__init__(message)
        self.tag = tag
        self.root = root


class ExternalCommandError(SpartaError):
    """The git executable failed, was missing or timed out."""

    def __init__(self, args: Sequence[str], returncode: int | None, stderr: str):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        command = " ".join(self.args_list)
        if returncode is None:
            message = f"{command} failed: {self.stderr}"
        else:
            message = f"{command} failed (exit {returncode}): {self.stderr}"
        super().__init__(message)


class UserAbortedError(SpartaError):
    """An interactive confirmation was declined."""

    def __init__(self, message: str = "aborted by user"):
        super().__init__(message)
