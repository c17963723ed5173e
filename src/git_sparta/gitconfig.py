"""Upserts and removals in git config files (``.gitmodules``, ``.git/config``).

Values are written with ``git config --file`` so the files keep git's own
format. A value is only written when it differs from what is stored, and
``dirty`` records whether anything was written.
"""

from __future__ import annotations

from pathlib import Path

from .errors import ExternalCommandError
from .gitcmd import Git


class ConfigFile:
    """One git config file."""

    def __init__(self, path: Path, git: Git | None = None):
        self.path = Path(path)
        self.git = git or Git()
        self.dirty = False

    def get(self, key: str) -> str | None:
        if not self.path.exists():
            return None
        result = self.git.run("config", "--file", self.path, "--get", key)
        if result.returncode == 1:
            return None
        if not result.ok:
            raise ExternalCommandError(result.args, result.returncode, result.stderr)
        return result.stdout.rstrip("\n")

    def set_value(self, section: str, subsection: str | None, key: str, value: str) -> bool:
        """Set ``section.subsection.key``; True if the stored value changed."""
        name = _key(section, subsection, key)
        if self.get(name) == value:
            return False
        self.git.must_succeed("config", "--file", self.path, name, value)
        self.dirty = True
        return True

    def has_section(self, section: str, subsection: str | None) -> bool:
        if not self.path.exists():
            return False
        result = self.git.run("config", "--file", self.path, "--list", "--name-only")
        if not result.ok:
            return False
        prefix = _key(section, subsection, "")
        # section and key names are case-insensitive, subsections are not
        for line in result.stdout.splitlines():
            head, _, _ = line.rpartition(".")
            if _fold(head + ".") == _fold(prefix):
                return True
        return False

    def remove_section(self, section: str, subsection: str | None) -> bool:
        """Remove a whole section; False if it was not there."""
        if not self.has_section(section, subsection):
            return False
        name = section if subsection is None else f"{section}.{subsection}"
        self.git.must_succeed("config", "--file", self.path, "--remove-section", name)
        self.dirty = True
        return True


def _key(section: str, subsection: str | None, key: str) -> str:
    if subsection is None:
        return f"{section}.{key}"
    return f"{section}.{subsection}.{key}"


def _fold(name: str) -> str:
    section, _, rest = name.partition(".")
    return f"{section.lower()}.{rest}"


class SubmoduleConfig:
    """``submodule.<name>`` entries in ``.gitmodules`` and the local config."""

    def __init__(self, name: str, git: Git | None = None):
        self.name = name
        self.git = git or Git()

    def ensure_gitmodules(self, gitmodules: Path, path: str, url: str, branch: str) -> bool:
        config = ConfigFile(gitmodules, self.git)
        config.set_value("submodule", self.name, "path", path)
        config.set_value("submodule", self.name, "url", url)
        config.set_value("submodule", self.name, "branch", branch)
        return config.dirty

    def ensure_local_config(self, git_config: Path, url: str, branch: str) -> bool:
        config = ConfigFile(git_config, self.git)
        config.set_value("submodule", self.name, "url", url)
        config.set_value("submodule", self.name, "branch", branch)
        return config.dirty

    def remove_from(self, config_path: Path) -> bool:
        """Drop the ``submodule.<name>`` section; no-op if file or section is absent."""
        if not config_path.exists():
            return False
        return ConfigFile(config_path, self.git).remove_section("submodule", self.name)
