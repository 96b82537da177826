"""Shared fixtures: a throwaway git repository and a scripted process runner."""

import asyncio
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest

from deep_reviewer.core.process import ProcessResult

BASE_APP = '''def greet(name):
    return "hello " + name


def main():
    print(greet("world"))
'''

HEAD_APP = '''def greet(name, punctuation="!"):
    if not name:
        return "hello"
    return "hello " + name + punctuation


def main():
    print(greet("world"))
    print(greet("there"))
'''

HEAD_UTIL = '''import os


def env_flag(name):
    value = os.environ.get(name, "")
    return value.lower() in ("1", "true", "yes")
'''

HEAD_JS = '''export function add(a, b) {
  return a + b;
}
'''


@dataclass
class GitRepo:
    path: Path
    base: str
    head: str


def _git(cwd: Path, *args: str) -> str:
    env = {
        **os.environ,
        "GIT_AUTHOR_NAME": "Test Author",
        "GIT_AUTHOR_EMAIL": "author@example.com",
        "GIT_COMMITTER_NAME": "Test Author",
        "GIT_COMMITTER_EMAIL": "author@example.com",
        "GIT_CONFIG_NOSYSTEM": "1",
        "HOME": str(cwd),
    }
    completed = subprocess.run(
        ["git", *args], cwd=cwd, env=env, check=True, capture_output=True, text=True
    )
    return completed.stdout.strip()


@pytest.fixture
def git_repo(tmp_path) -> GitRepo:
    """Two-commit repository.

    base: src/app.py, README.md, docs/old.md
    head: src/app.py modified, src/util.py and web/index.js added, docs/old.md removed
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    _git(repo, "config", "commit.gpgsign", "false")

    (repo / "src").mkdir()
    (repo / "docs").mkdir()
    (repo / "src" / "app.py").write_text(BASE_APP)
    (repo / "README.md").write_text("# Demo\n")
    (repo / "docs" / "old.md").write_text("old notes\n")
    _git(repo, "add", "-A")
    _git(repo, "commit", "-q", "-m", "initial import")
    base = _git(repo, "rev-parse", "HEAD")

    (repo / "web").mkdir()
    (repo / "src" / "app.py").write_text(HEAD_APP)
    (repo / "src" / "util.py").write_text(HEAD_UTIL)
    (repo / "web" / "index.js").write_text(HEAD_JS)
    (repo / "docs" / "old.md").unlink()
    _git(repo, "add", "-A")
    _git(repo, "commit", "-q", "-m", "teach greet punctuation")
    head = _git(repo, "rev-parse", "HEAD")

    return GitRepo(path=repo, base=base, head=head)


class FakeRunner:
    """ProcessRunner stand-in that records calls and replays canned results."""

    def __init__(self, result: ProcessResult | None = None, delay: float = 0.0) -> None:
        self.result = result or ProcessResult(stdout="", stderr="", exit_code=0)
        self.delay = delay
        self.calls: list[tuple[str, list[str], str | None]] = []

    async def run(self, command, args=(), *, cwd=None, timeout=None, ignore_exit_code=False):
        self.calls.append((command, list(args), str(cwd) if cwd is not None else None))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result


@pytest.fixture
def fake_runner():
    """Factory for FakeRunner instances."""
    return FakeRunner


@pytest.fixture
def review_context(git_repo):
    """ReviewContext for the git_repo range, chunked with a generous budget."""
    from deep_reviewer.core.process import ProcessRunner
    from deep_reviewer.schemas.review import PullRequestInfo, ReviewContext
    from deep_reviewer.services.repository.inspector import RepositoryInspector
    from deep_reviewer.services.reviewer.chunking import ChunkingStrategy

    inspector = RepositoryInspector(ProcessRunner(), git_repo.path, git_repo.base, git_repo.head)
    files = asyncio.run(inspector.changed_files())
    return ReviewContext(
        working_directory=str(git_repo.path),
        base_revision=git_repo.base,
        head_revision=git_repo.head,
        changed_files=tuple(files),
        chunks=tuple(ChunkingStrategy(budget=20_000).partition(files)),
        pull_request=PullRequestInfo(
            number=7,
            title="Teach greet punctuation",
            body="Adds punctuation support.",
            author="Test Author",
            base_branch="main",
            head_branch="feature/punctuation",
        ),
    )
