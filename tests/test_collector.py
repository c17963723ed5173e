"""Tests for repository discovery and the recursive attribute collector."""

import shutil

import pytest

from git_sparta.collector import CollectState, TagCounts, collect_matching_files, discover_tags
from git_sparta.errors import RepositoryError
from git_sparta.repository import (
    collapse_repeated_segments,
    discover_submodules,
    find_gitlink,
    join_prefix,
    open_repository,
    read_index,
)

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


@pytest.fixture
def tagged_repo(tmp_path, make_repo, tagged_files):
    return make_repo(tmp_path / "repo", tagged_files)


@pytest.fixture
def super_with_gitlink(tmp_path, make_repo, run_git):
    """Superproject with an embedded repository recorded as a gitlink."""
    root = make_repo(tmp_path / "super", {".gitattributes": "*.txt projects=app\n", "top.txt": "top\n"})
    make_repo(root / "vendor" / "lib", {
        ".gitattributes": "*.py projects=app\n*.md projects=docs\n",
        "src/core.py": "core\n",
        "README.md": "lib\n",
    })
    run_git(root, "-c", "advice.addEmbeddedRepo=false", "add", "vendor/lib")
    return root


def _module_only_submodule(root, run_git, rel="vendor/extra"):
    """Register ``rel`` under .git/modules without touching the index."""
    module_dir = root / ".git" / "modules" / rel
    extra = root / rel
    module_dir.parent.mkdir(parents=True, exist_ok=True)
    run_git(root, "init", "-q", "-b", "main", "--separate-git-dir", str(module_dir), str(extra))
    run_git(root, "config", "--file", str(module_dir / "config"), "core.worktree", str(extra))
    (extra / ".gitattributes").write_text("*.py projects=app\n")
    (extra / "plugin.py").write_text("plugin\n")
    run_git(extra, "add", "-A")
    run_git(extra, "commit", "-q", "-m", "extra")
    return extra


class TestPaths:
    def test_join_prefix_root(self):
        assert join_prefix("", "src/main.py") == "src/main.py"

    def test_join_prefix_nested(self):
        assert join_prefix("vendor/lib", "src/core.py") == "vendor/lib/src/core.py"

    def test_join_prefix_normalizes(self):
        assert join_prefix("vendor", "lib\\x.py") == "vendor/lib/x.py"
        assert join_prefix("vendor", "lib/") == "vendor/lib"

    def test_collapse_repeated_segment(self):
        assert collapse_repeated_segments("a/b/b/c") == "a/b/c"

    def test_collapse_keeps_last_segment(self):
        assert collapse_repeated_segments("lib/lib") == "lib/lib"
        assert collapse_repeated_segments("a/b/c") == "a/b/c"


class TestRepository:
    def test_open_from_subdirectory(self, tagged_repo):
        repo = open_repository(tagged_repo / "src")
        assert repo.worktree == tagged_repo
        assert repo.git_dir == tagged_repo / ".git"
        assert repo.modules_root == tagged_repo / ".git" / "modules"

    def test_open_not_a_directory(self, tagged_repo):
        with pytest.raises(RepositoryError, match="Not a directory"):
            open_repository(tagged_repo / "README.md")

    def test_open_outside_repository(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
        plain = tmp_path / "plain"
        plain.mkdir()
        with pytest.raises(RepositoryError, match="failed to discover"):
            open_repository(plain)

    def test_open_bare_repository(self, tmp_path, run_git):
        bare = tmp_path / "bare.git"
        run_git(tmp_path, "init", "-q", "--bare", str(bare))
        with pytest.raises(RepositoryError, match="bare"):
            open_repository(bare)

    def test_read_index(self, tagged_repo):
        entries = read_index(open_repository(tagged_repo))
        paths = [e.path for e in entries]
        assert "src/main.py" in paths
        assert all(e.mode == "100644" or e.mode == "100755" for e in entries)
        assert not any(e.is_gitlink for e in entries)

    def test_find_gitlink(self, super_with_gitlink):
        repo = open_repository(super_with_gitlink)
        entry = find_gitlink(repo, "vendor/lib")
        assert entry is not None
        assert entry.is_gitlink
        assert len(entry.sha) == 40
        assert find_gitlink(repo, "top.txt") is None

    def test_discover_submodules(self, super_with_gitlink, run_git):
        _module_only_submodule(super_with_gitlink, run_git)
        repo = open_repository(super_with_gitlink)
        assert discover_submodules(repo) == ["vendor/extra"]

    def test_discover_skips_missing_worktree(self, super_with_gitlink, run_git):
        extra = _module_only_submodule(super_with_gitlink, run_git)
        shutil.rmtree(extra)
        assert discover_submodules(open_repository(super_with_gitlink)) == []

    def test_discover_without_modules_dir(self, tagged_repo):
        assert discover_submodules(open_repository(tagged_repo)) == []


class TestCollectState:
    def test_record_match_accepts_substring(self):
        state = CollectState()
        assert state.record_match("a.py", "app/core", "app") is True
        assert state.patterns == {"a.py"}
        assert state.file_map == {"a.py": {"app/core"}}

    def test_record_match_accepts_global(self):
        state = CollectState()
        assert state.record_match("README.md", "global", "anything") is True
        assert state.tag_counts == {"global": 1}

    def test_record_match_rejects(self):
        state = CollectState()
        assert state.record_match("docs.md", "docs", "app") is False
        assert state.is_empty()
        assert state.matches == []

    def test_patterns_match_file_map(self):
        state = CollectState()
        state.record_match("b.py", "app", "app")
        state.record_match("a.py", "app", "app")
        state.record_match("a.py", "app-extra", "app")
        assert state.sorted_patterns() == ["a.py", "b.py"]
        assert set(state.file_map) == state.patterns
        assert state.sorted_files() == [("a.py", ["app", "app-extra"]), ("b.py", ["app"])]
        assert state.sorted_tag_counts() == [("app", 2), ("app-extra", 1)]

    def test_tag_counts(self):
        counts = TagCounts()
        counts.record("b")
        counts.record("a")
        counts.record("b")
        assert counts.sorted_items() == [("a", 1), ("b", 2)]
        assert len(counts) == 2
        assert not counts.is_empty()


class TestCollect:
    def test_collects_matching_and_global(self, tagged_repo):
        state = collect_matching_files(tagged_repo, "app")
        assert state.sorted_patterns() == ["README.md", "src/main.py", "src/util.py", "tools.sh"]
        assert state.tag_counts == {"global": 1, "app": 3}
        assert state.file_map["tools.sh"] == {"app"}

    def test_substring_match(self, tagged_repo):
        state = collect_matching_files(tagged_repo, "doc")
        assert state.sorted_patterns() == ["README.md", "docs/guide.md"]

    def test_global_always_included(self, tagged_repo):
        state = collect_matching_files(tagged_repo, "does-not-exist")
        assert state.sorted_patterns() == ["README.md"]
        assert state.tag_counts == {"global": 1}

    def test_no_match(self, tmp_path, make_repo):
        root = make_repo(tmp_path / "repo", {".gitattributes": "*.py projects=app\n", "a.py": "a\n"})
        state = collect_matching_files(root, "docs")
        assert state.is_empty()
        assert state.matches == []

    def test_empty_tag_rejected(self, tagged_repo):
        with pytest.raises(ValueError):
            collect_matching_files(tagged_repo, "")

    def test_custom_attribute(self, tmp_path, make_repo):
        root = make_repo(tmp_path / "repo", {".gitattributes": "*.py teams=core\n", "a.py": "a\n"})
        assert collect_matching_files(root, "core").is_empty()
        assert collect_matching_files(root, "core", attribute="teams").sorted_patterns() == ["a.py"]

    def test_deterministic(self, super_with_gitlink):
        first = collect_matching_files(super_with_gitlink, "app")
        second = collect_matching_files(super_with_gitlink, "app")
        assert first.matches == second.matches
        assert first.sorted_patterns() == second.sorted_patterns()

    def test_discover_tags(self, tagged_repo):
        counts = discover_tags(tagged_repo)
        assert counts.sorted_items() == [("app", 3), ("docs", 1), ("global", 1), ("tools", 1)]


class TestSubmodules:
    def test_descends_into_gitlink(self, super_with_gitlink):
        state = collect_matching_files(super_with_gitlink, "app")
        assert state.sorted_patterns() == ["top.txt", "vendor/lib/src/core.py"]

    def test_nested_attributes_are_the_submodules_own(self, super_with_gitlink):
        state = collect_matching_files(super_with_gitlink, "docs")
        assert state.sorted_patterns() == ["vendor/lib/README.md"]

    def test_skips_gitlink_without_checkout(self, super_with_gitlink):
        shutil.rmtree(super_with_gitlink / "vendor" / "lib")
        state = collect_matching_files(super_with_gitlink, "app")
        assert state.sorted_patterns() == ["top.txt"]

    def test_module_only_submodule(self, super_with_gitlink, run_git):
        _module_only_submodule(super_with_gitlink, run_git)
        state = collect_matching_files(super_with_gitlink, "app")
        assert "vendor/extra/plugin.py" in state.patterns

    def test_submodule_visited_once(self, super_with_gitlink, run_git):
        _module_only_submodule(super_with_gitlink, run_git)
        run_git(super_with_gitlink, "-c", "advice.addEmbeddedRepo=false", "add", "vendor/extra")
        repo = open_repository(super_with_gitlink)
        assert find_gitlink(repo, "vendor/extra") is not None

        state = collect_matching_files(super_with_gitlink, "app")
        patterns = [p for p, _token in state.matches]
        assert len(patterns) == len(set(patterns))
        assert patterns.count("vendor/extra/plugin.py") == 1

    def test_discover_tags_includes_submodules(self, super_with_gitlink):
        counts = discover_tags(super_with_gitlink)
        assert counts.counts == {"app": 2, "docs": 1}

    def test_mixed_value_tokens(self, tmp_path, make_repo):
        root = make_repo(tmp_path / "repo", {
            ".gitattributes": "f.rs projects=backend,app/core\n",
            "f.rs": "fn main() {}\n",
        })
        assert discover_tags(root).counts == {"backend": 1, "app/core": 1}

        state = collect_matching_files(root, "app")
        assert state.sorted_patterns() == ["f.rs"]
        assert state.file_map == {"f.rs": {"app/core"}}
        assert state.tag_counts == {"app/core": 1}

    def test_doubled_segment_module_matches_gitlink(self, tmp_path, make_repo, run_git):
        root = make_repo(tmp_path / "super", {"top.txt": "top\n"})
        make_repo(root / "a" / "b" / "c", {".gitattributes": "*.py projects=app\n", "core.py": "core\n"})
        run_git(root, "-c", "advice.addEmbeddedRepo=false", "add", "a/b/c")
        _module_only_submodule(root, run_git, "a/b/b/c")
        assert discover_submodules(open_repository(root)) == ["a/b/b/c"]

        state = collect_matching_files(root, "app")
        assert state.sorted_patterns() == ["a/b/c/core.py"]

    def test_gitlink_with_doubled_segment_keeps_other_module(self, tmp_path, make_repo, run_git):
        root = make_repo(tmp_path / "super", {"top.txt": "top\n"})
        make_repo(root / "x" / "x" / "y", {".gitattributes": "*.py projects=app\n", "core.py": "core\n"})
        run_git(root, "-c", "advice.addEmbeddedRepo=false", "add", "x/x/y")
        _module_only_submodule(root, run_git, "x/y")

        state = collect_matching_files(root, "app")
        assert state.sorted_patterns() == ["x/x/y/core.py", "x/y/plugin.py"]
