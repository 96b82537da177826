"""Tests for the analysis adapters."""

import pytest

from deep_reviewer.core.exceptions import InvalidArgumentsError, ToolNotFoundError
from deep_reviewer.core.process import ProcessRunner
from deep_reviewer.schemas.review import Finding, ReviewContext
from deep_reviewer.services.analysis.adapters import (
    MAX_FINDINGS_PER_SEVERITY,
    AnalysisAdapters,
    complexity_assessment,
    format_lint_findings,
)
from deep_reviewer.services.analysis.linter import LinterRunner
from deep_reviewer.services.repository.inspector import RepositoryInspector


@pytest.fixture
def context(git_repo):
    return ReviewContext(
        working_directory=str(git_repo.path),
        base_revision=git_repo.base,
        head_revision=git_repo.head,
    )


@pytest.fixture
def adapters(fake_runner):
    return AnalysisAdapters(LinterRunner(fake_runner()))


class TestFormatting:
    """Tests for markdown formatting helpers."""

    @pytest.mark.parametrize(
        "complexity,prefix",
        [(1, "✅"), (5, "✅"), (6, "⚠️"), (10, "⚠️"), (11, "❌"), (21, "🔴")],
    )
    def test_complexity_assessment(self, complexity, prefix):
        assert complexity_assessment(complexity).startswith(prefix)

    def test_no_findings(self):
        assert format_lint_findings("a.py", []) == "✅ No linter issues found in a.py"

    def test_findings_grouped_and_capped(self):
        findings = [
            Finding(file="a.py", line=i, severity="warning", message=f"w{i}", rule_id="W1")
            for i in range(MAX_FINDINGS_PER_SEVERITY + 2)
        ]
        findings.append(Finding(file="a.py", line=1, severity="error", message="boom", rule_id="E1"))

        output = format_lint_findings("a.py", findings)

        assert output.index("ERROR (1)") < output.index("WARNING (12)")
        assert "... and 2 more warning issues" in output
        assert "- Line 1:0 - boom (`E1`)" in output


class TestAnalysisAdapters:
    """Tests for AnalysisAdapters against the fixture repository."""

    @pytest.mark.asyncio
    async def test_ast_summary(self, adapters, context):
        output = await adapters.ast_summary(context, "src/app.py")

        assert output.startswith("## AST Analysis: src/app.py")
        assert "- **greet** (line 1)" in output
        assert "  - Params: name, punctuation" in output

    @pytest.mark.asyncio
    async def test_ast_summary_missing_file(self, adapters, context):
        with pytest.raises(ToolNotFoundError, match="File not found: src/nope.py"):
            await adapters.ast_summary(context, "src/nope.py")

    @pytest.mark.asyncio
    async def test_ast_summary_rejects_escape(self, adapters, context):
        with pytest.raises(InvalidArgumentsError):
            await adapters.ast_summary(context, "../outside.py")

    @pytest.mark.asyncio
    async def test_function_complexity(self, adapters, context):
        output = await adapters.function_complexity(context, "greet", "src/app.py")

        assert "## Complexity Analysis: greet" in output
        assert "- Cyclomatic Complexity: 2" in output
        assert "- Parameters: 2" in output

    @pytest.mark.asyncio
    async def test_function_not_found(self, adapters, context):
        with pytest.raises(ToolNotFoundError, match="Function missing not found in src/app.py"):
            await adapters.function_complexity(context, "missing", "src/app.py")

    @pytest.mark.asyncio
    async def test_function_dependencies(self, adapters, context):
        output = await adapters.function_dependencies(context, "main", "src/app.py")

        assert "Directly calls 2 function(s)" in output
        assert "- print" in output
        assert "- greet" in output

    @pytest.mark.asyncio
    async def test_function_without_calls(self, adapters, context):
        output = await adapters.function_dependencies(context, "add", "web/index.js")

        assert "does not call any other functions" in output

    @pytest.mark.asyncio
    async def test_function_callers(self, adapters, git_repo):
        inspector = RepositoryInspector(ProcessRunner(), git_repo.path, git_repo.base, git_repo.head)

        output = await adapters.function_callers(inspector, "env_flag", "src/util.py")

        assert "## Callers of env_flag" in output
        assert "Found 1 potential call sites" in output

    @pytest.mark.asyncio
    async def test_function_without_callers(self, adapters, git_repo):
        inspector = RepositoryInspector(ProcessRunner(), git_repo.path, git_repo.base, git_repo.head)

        assert await adapters.function_callers(inspector, "nobody_calls_me", "x.py") == (
            "No callers found for nobody_calls_me"
        )

    @pytest.mark.asyncio
    async def test_lint_findings_for_unsupported_file(self, adapters, context):
        assert await adapters.lint_findings(context, "README.md") == "✅ No linter issues found in README.md"
