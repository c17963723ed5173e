"""Shared fixtures: isolated git environment and throwaway repositories."""

import subprocess
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path_factory):
    """Keep the user's git config and submodule overrides out of every test."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    for var in ("SUBMODULE_URL", "SHARED_MIRROR_PATH", "VERBOSE", "GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE"):
        monkeypatch.delenv(var, raising=False)


def _run_git(cwd: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True)
    assert result.returncode == 0, f"git {' '.join(args)}: {result.stderr}"
    return result.stdout


@pytest.fixture
def run_git():
    """Run git in a directory and fail the test on a non-zero exit."""
    return _run_git


@pytest.fixture
def make_repo():
    """Create a repository at ``path`` holding ``files`` and commit it."""

    def make(path: Path, files: dict[str, str], commit: bool = True) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        _run_git(path, "init", "-q", "-b", "main")
        for name, content in files.items():
            target = path / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        if files:
            _run_git(path, "add", "-A")
        if commit:
            _run_git(path, "commit", "-q", "--allow-empty", "-m", "initial")
        return path.resolve()

    return make


@pytest.fixture
def tagged_files():
    """A small tree tagged with the ``projects`` attribute."""
    return {
        ".gitattributes": "*.py projects=app\ndocs/*.md projects=docs\nREADME.md projects\ntools.sh projects=app,tools\n",
        "README.md": "# demo\n",
        "notes.txt": "untagged\n",
        "src/main.py": "print('main')\n",
        "src/util.py": "print('util')\n",
        "docs/guide.md": "guide\n",
        "tools.sh": "#!/bin/sh\n",
    }
