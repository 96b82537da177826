"""Tests for diff line-number bookkeeping."""

from deep_reviewer.services.reviewer.patch_parser import (
    filter_comments_by_valid_lines,
    parse_patch_line_numbers,
)

PATCH = """diff --git a/src/app.py b/src/app.py
--- a/src/app.py
+++ b/src/app.py
@@ -1,3 +1,4 @@
 def greet(name):
-    return "hello " + name
+    if not name:
+        return "hello"
+    return "hello " + name + "!"
@@ -10,2 +11,2 @@ def main():
 context
-old
+new
\\ No newline at end of file
"""


class TestParsePatchLineNumbers:
    """Tests for parse_patch_line_numbers."""

    def test_added_and_removed_lines(self):
        assert parse_patch_line_numbers(PATCH) == {2, 3, 4, 12}

    def test_empty_patch(self):
        assert parse_patch_line_numbers("") == set()

    def test_new_file(self):
        patch = "@@ -0,0 +1,2 @@\n+a\n+b"

        assert parse_patch_line_numbers(patch) == {1, 2}


class TestFilterComments:
    """Tests for filter_comments_by_valid_lines."""

    def test_split(self):
        comments = [
            {"path": "src/app.py", "line": 3, "message": "ok"},
            {"path": "src/app.py", "line": 1, "message": "context line"},
            {"path": "other.py", "line": 3, "message": "not in diff"},
            {"path": "src/app.py", "line": None, "message": "no line"},
        ]

        valid, invalid = filter_comments_by_valid_lines(comments, {"src/app.py": PATCH})

        assert [c["message"] for c in valid] == ["ok"]
        assert len(invalid) == 3
