"""Tests for prompt rendering."""

from deep_reviewer.core.prompts import render_system_prompt, render_user_prompt
from deep_reviewer.schemas.review import FileChange, FileStatus, ReviewContext
from deep_reviewer.services.reviewer.registry import ToolRegistry
from deep_reviewer.services.reviewer.tool_calls import FINAL_REVIEW_MARKER


class TestSystemPrompt:
    """Tests for render_system_prompt."""

    def test_lists_every_tool(self):
        registry = ToolRegistry()
        registry.register_custom("semgrep", "semgrep", ["{file}"])

        prompt = render_system_prompt(registry.list(), FINAL_REVIEW_MARKER)

        for name in registry.names():
            assert name in prompt
        assert FINAL_REVIEW_MARKER in prompt
        assert "Write the final review in" not in prompt

    def test_review_language(self):
        prompt = render_system_prompt(ToolRegistry().list(), FINAL_REVIEW_MARKER, review_language="German")

        assert "Write the final review in **German**" in prompt


class TestUserPrompt:
    """Tests for render_user_prompt."""

    def test_synthesized_pull_request(self):
        context = ReviewContext(
            working_directory="/repo",
            base_revision="1234567890abcdef",
            head_revision="fedcba0987654321",
            changed_files=(
                FileChange(path="src/new.py", status=FileStatus.RENAMED, previous_path="src/old.py", additions=2, language="python"),
            ),
        )

        prompt = render_user_prompt(context, "### Chunk 0", FINAL_REVIEW_MARKER, skipped_files=4)

        assert "**Title**: Changes 1234567..fedcba0" in prompt
        assert "- `src/new.py` (renamed, from `src/old.py`): +2 -0 [python]" in prompt
        assert "4 more changed file(s) were left out of this review." in prompt
        assert "### Chunk 0" in prompt
