"""Tests for the repository inspector against a real git checkout."""

import pytest

from deep_reviewer.core.exceptions import InvalidArgumentsError, ToolNotFoundError
from deep_reviewer.core.process import ProcessRunner
from deep_reviewer.schemas.review import FileStatus
from deep_reviewer.services.repository.inspector import (
    RepositoryInspector,
    resolve_repo_path,
    validate_revision,
)


@pytest.fixture
def inspector(git_repo):
    return RepositoryInspector(ProcessRunner(), git_repo.path, git_repo.base, git_repo.head)


class TestValidation:
    """Tests for revision and path guards."""

    @pytest.mark.parametrize("revision", ["HEAD", "abc1234", "origin/main", "HEAD~2", "v1.0^{commit}"])
    def test_accepts_revisions(self, revision):
        assert validate_revision(revision) == revision

    @pytest.mark.parametrize("revision", ["", "   ", "--output=/tmp/x", "a..b", "-p"])
    def test_rejects_non_revisions(self, revision):
        with pytest.raises(InvalidArgumentsError) as exc_info:
            validate_revision(revision)

        assert exc_info.value.field == "sha"

    def test_resolves_inside_repository(self, tmp_path):
        assert resolve_repo_path(tmp_path, "src/app.py") == (tmp_path / "src" / "app.py").resolve()

    @pytest.mark.parametrize("path", ["../etc/passwd", "/etc/passwd", "src/../../x"])
    def test_rejects_escaping_paths(self, tmp_path, path):
        with pytest.raises(InvalidArgumentsError, match="outside the repository"):
            resolve_repo_path(tmp_path, path, field="file")

    def test_rejects_empty_path(self, tmp_path):
        with pytest.raises(InvalidArgumentsError, match="must not be empty"):
            resolve_repo_path(tmp_path, "  ")


class TestChangedFiles:
    """Tests for RepositoryInspector.changed_files."""

    @pytest.mark.asyncio
    async def test_lists_every_change_with_status(self, inspector):
        files = {f.path: f for f in await inspector.changed_files()}

        assert set(files) == {"src/app.py", "src/util.py", "web/index.js", "docs/old.md"}
        assert files["src/app.py"].status == FileStatus.MODIFIED
        assert files["src/util.py"].status == FileStatus.ADDED
        assert files["docs/old.md"].status == FileStatus.REMOVED

    @pytest.mark.asyncio
    async def test_counts_lines_and_attaches_patch(self, inspector):
        files = {f.path: f for f in await inspector.changed_files()}

        util = files["src/util.py"]
        assert util.additions == 6
        assert util.deletions == 0
        assert util.patch.startswith("diff --git a/src/util.py b/src/util.py")
        assert files["docs/old.md"].deletions == 1
        assert files["web/index.js"].language == "javascript"
        assert files["src/app.py"].language == "python"


class TestDiffs:
    """Tests for per-file and per-commit diffs."""

    @pytest.mark.asyncio
    async def test_diff_for_file(self, inspector):
        diff = await inspector.diff_for_file("src/app.py")

        assert "+def greet(name, punctuation=\"!\"):" in diff
        assert "-def greet(name):" in diff

    @pytest.mark.asyncio
    async def test_diff_for_unchanged_file(self, inspector):
        assert await inspector.diff_for_file("README.md") == "No changes in README.md"

    @pytest.mark.asyncio
    async def test_full_diff_of_unchanged_file_is_empty(self, inspector):
        assert await inspector.full_diff("README.md") == ""

    @pytest.mark.asyncio
    async def test_diff_for_commit_limited_to_path(self, inspector, git_repo):
        diff = await inspector.diff_for_commit(git_repo.head, "src/util.py")

        assert "teach greet punctuation" in diff
        assert "+def env_flag(name):" in diff
        assert "web/index.js" not in diff

    @pytest.mark.asyncio
    async def test_unknown_commit(self, inspector):
        with pytest.raises(ToolNotFoundError, match="Commit deadbeef not found"):
            await inspector.commit_info("deadbeef")


class TestHistory:
    """Tests for commit listing and file history."""

    @pytest.mark.asyncio
    async def test_commits_in_range(self, inspector, git_repo):
        commits = await inspector.commits_in_range()

        assert len(commits) == 1
        assert commits[0].hash == git_repo.head
        assert commits[0].subject == "teach greet punctuation"
        assert commits[0].author == "Test Author"
        assert commits[0].short_hash == git_repo.head[:7]

    @pytest.mark.asyncio
    async def test_history_for_file(self, inspector):
        history = await inspector.history_for_file("src/app.py")

        assert [entry.subject for entry in history] == ["teach greet punctuation", "initial import"]

    @pytest.mark.asyncio
    async def test_commit_info_has_stats(self, inspector, git_repo):
        info = await inspector.commit_info(git_repo.head)

        assert git_repo.head in info
        assert "src/util.py" in info

    @pytest.mark.asyncio
    async def test_subject_and_author(self, inspector, git_repo):
        assert await inspector.subject_of(git_repo.head) == "teach greet punctuation"
        assert await inspector.author_of(git_repo.head) == "Test Author"


class TestSearch:
    """Tests for pattern search and caller lookup."""

    @pytest.mark.asyncio
    async def test_search_pattern(self, inspector):
        result = await inspector.search_pattern("env_flag")

        assert result.total == 1
        assert result.matches[0].startswith("src/util.py:4:")

    @pytest.mark.asyncio
    async def test_search_with_glob(self, inspector):
        result = await inspector.search_pattern("return", "*.js")

        assert result.total == 1
        assert result.matches[0].startswith("web/index.js:")

    @pytest.mark.asyncio
    async def test_search_no_matches(self, inspector):
        result = await inspector.search_pattern("nothing_matches_this")

        assert result.total == 0
        assert result.matches == []

    @pytest.mark.asyncio
    async def test_find_callers_strips_revision_prefix(self, inspector):
        result = await inspector.find_callers("greet")

        assert result.total == 3
        assert all(match.startswith("src/app.py:") for match in result.matches)

    @pytest.mark.asyncio
    async def test_find_callers_rejects_non_identifier(self, inspector):
        with pytest.raises(InvalidArgumentsError):
            await inspector.find_callers("greet(); rm -rf")
