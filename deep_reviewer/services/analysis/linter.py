"""Linter integration for the languages the reviewer understands.

Each linter is run with its machine-readable output format and the output is
handed to a parser strategy that returns normalized ``Finding`` objects.
Parsers never raise: unparseable output degrades to no findings plus a
warning, so a broken linter cannot fail a review.
"""

import json
import re
from pathlib import Path
from typing import Callable

from deep_reviewer.core.exceptions import ProcessError, ToolTimeoutError
from deep_reviewer.core.logging import get_logger
from deep_reviewer.core.process import ProcessRunner
from deep_reviewer.schemas.review import Finding, detect_language

logger = get_logger("analysis.linter")

ESLINT_CONFIG_FILES = (
    ".eslintrc",
    ".eslintrc.js",
    ".eslintrc.cjs",
    ".eslintrc.json",
    ".eslintrc.yml",
    ".eslintrc.yaml",
    "eslint.config.js",
    "eslint.config.mjs",
    "eslint.config.cjs",
    "eslint.config.ts",
)

DEFAULT_ESLINT_CONFIG = """// ESLint flat config (v9+) written by deep-reviewer
export default [
  {
    files: ['**/*.js', '**/*.jsx', '**/*.ts', '**/*.tsx', '**/*.mjs', '**/*.cjs'],
    languageOptions: {
      ecmaVersion: 'latest',
      sourceType: 'module',
      globals: {
        window: 'readonly',
        document: 'readonly',
        navigator: 'readonly',
        console: 'readonly',
        process: 'readonly',
        __dirname: 'readonly',
        __filename: 'readonly',
        Buffer: 'readonly',
        global: 'readonly',
        module: 'readonly',
        require: 'readonly',
        exports: 'readonly',
      },
    },
    rules: {
      'no-unused-vars': 'warn',
      'no-console': 'off',
      'no-undef': 'error',
      'no-constant-condition': 'warn',
      'no-empty': 'warn',
    },
  },
];
"""

_MSBUILD_DIAGNOSTIC_RE = re.compile(
    r"(?P<file>.+?)\((?P<line>\d+),(?P<column>\d+)\):\s+(?P<severity>warning|error)\s+"
    r"(?P<rule>\S+):\s+(?P<message>.+)"
)


# Severity mappers


def map_eslint_severity(severity: int) -> str:
    return {2: "error", 1: "warning"}.get(severity, "info")


def map_level_severity(level: str | None) -> str:
    """Map pylint types, clippy levels and .NET severities."""
    level = (level or "").lower()
    if level in ("error", "fatal"):
        return "error"
    if level == "warning":
        return "warning"
    return "info"


# Parser strategies


def _as_int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _dict_items(items, source: str) -> list[dict]:
    """Keep the dict entries of a JSON array; anything else is skipped with a warning."""
    if not isinstance(items, list):
        if items:
            logger.warning(f"Unexpected {source} output shape: {type(items).__name__}")
        return []
    kept = [item for item in items if isinstance(item, dict)]
    if len(kept) != len(items):
        logger.warning(f"Skipped {len(items) - len(kept)} malformed {source} entries")
    return kept


def parse_eslint_json(output: str, filename: str) -> list[Finding]:
    try:
        results = json.loads(output)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse ESLint output: {e}")
        return []

    findings = []
    for file_result in _dict_items(results, "ESLint"):
        for message in _dict_items(file_result.get("messages") or [], "ESLint message"):
            findings.append(
                Finding(
                    file=filename,
                    line=_as_int(message.get("line")),
                    column=_as_int(message.get("column")),
                    severity=map_eslint_severity(_as_int(message.get("severity"))),
                    message=str(message.get("message") or ""),
                    rule_id=str(message.get("ruleId") or "unknown"),
                )
            )
    return findings


def parse_pylint_json(output: str, filename: str) -> list[Finding]:
    try:
        messages = json.loads(output)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse pylint output: {e}")
        return []

    return [
        Finding(
            file=filename,
            line=_as_int(m.get("line")),
            column=_as_int(m.get("column")),
            severity=map_level_severity(str(m.get("type") or "")),
            message=str(m.get("message") or ""),
            rule_id=str(m.get("message-id") or m.get("symbol") or "unknown"),
        )
        for m in _dict_items(messages, "pylint")
    ]


def parse_clippy_ndjson(output: str, filename: str) -> list[Finding]:
    """Clippy prints one JSON document per line; bad lines are skipped."""
    findings = []
    for line in output.splitlines():
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(message, dict) or message.get("reason") != "compiler-message":
            continue

        msg = message.get("message")
        if not isinstance(msg, dict):
            continue
        code = msg.get("code")
        rule_id = code.get("code") if isinstance(code, dict) else None
        for span in _dict_items(msg.get("spans") or [], "clippy span"):
            if filename in str(span.get("file_name") or ""):
                findings.append(
                    Finding(
                        file=filename,
                        line=_as_int(span.get("line_start")),
                        column=_as_int(span.get("column_start")),
                        severity=map_level_severity(str(msg.get("level") or "")),
                        message=str(msg.get("message") or ""),
                        rule_id=str(rule_id or "clippy"),
                    )
                )
    return findings


def parse_dotnet_format_json(output: str, filename: str) -> list[Finding] | None:
    """Parse a `dotnet format --report` document; None when it is not JSON."""
    try:
        report = json.loads(output)
    except json.JSONDecodeError:
        return None

    documents = report if isinstance(report, list) else [report]
    findings = []
    for document in _dict_items(documents, "dotnet format"):
        issues = document.get("DocumentIssues") or document.get("FileChanges") or []
        for issue in _dict_items(issues, "dotnet format issue"):
            file_path = str(issue.get("FilePath") or document.get("FilePath") or "")
            if filename not in file_path:
                continue
            findings.append(
                Finding(
                    file=filename,
                    line=_as_int(issue.get("Line") or issue.get("LineNumber")),
                    column=_as_int(issue.get("Column") or issue.get("CharNumber")),
                    severity=map_level_severity(str(issue.get("Severity") or "warning")),
                    message=str(issue.get("Message") or issue.get("FormatDescription") or "Code style violation"),
                    rule_id=str(issue.get("DiagnosticId") or "format"),
                )
            )
    return findings


def parse_msbuild_diagnostics(output: str, filename: str) -> list[Finding]:
    findings = []
    for match in _MSBUILD_DIAGNOSTIC_RE.finditer(output):
        if filename not in match.group("file"):
            continue
        findings.append(
            Finding(
                file=filename,
                line=int(match.group("line")),
                column=int(match.group("column")),
                severity="error" if match.group("severity") == "error" else "warning",
                message=match.group("message").strip(),
                rule_id=match.group("rule"),
            )
        )
    return findings


def normalize_findings(data, filename: str) -> list[Finding]:
    """Best-effort conversion of arbitrary JSON from custom linters."""
    if isinstance(data, dict):
        data = data.get("findings") or data.get("results") or data.get("messages") or []
    return [
        Finding(
            file=str(item.get("file") or item.get("path") or filename),
            line=_as_int(item.get("line")),
            column=_as_int(item.get("column")),
            severity=map_level_severity(str(item.get("severity") or item.get("level") or "warning")),
            message=str(item.get("message") or item.get("msg") or ""),
            rule_id=str(item.get("ruleId") or item.get("rule_id") or item.get("code") or "custom"),
        )
        for item in _dict_items(data, "custom linter")
    ]


def aggregate_findings(findings: list[Finding]) -> dict:
    """Totals per severity and per rule."""
    by_rule: dict[str, int] = {}
    for finding in findings:
        by_rule[finding.rule_id] = by_rule.get(finding.rule_id, 0) + 1
    return {
        "total": len(findings),
        "errors": sum(1 for f in findings if f.severity == "error"),
        "warnings": sum(1 for f in findings if f.severity == "warning"),
        "info": sum(1 for f in findings if f.severity == "info"),
        "by_rule": by_rule,
    }


class LinterRunner:
    """Runs the appropriate linter for a file inside one working directory.

    Instance state (prepared work dirs) is never shared between runners, so
    concurrent reviews cannot see each other's setup.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        timeout: float | None = None,
        install_dependencies: bool = False,
    ) -> None:
        self.runner = runner
        self.timeout = timeout
        self.install_dependencies = install_dependencies
        self._prepared_workdirs: set[str] = set()
        self._linters: dict[str, Callable] = {
            "typescript": self.lint_javascript,
            "javascript": self.lint_javascript,
            "python": self.lint_python,
            "rust": self.lint_rust,
            "csharp": self.lint_csharp,
        }

    async def lint(self, filename: str, workdir: str) -> list[Finding]:
        """Lint ``filename`` (relative to ``workdir``).

        Missing tools and unparseable output yield no findings. Timeouts are
        propagated so the caller can report them.
        """
        linter = self._linters.get(detect_language(filename) or "")
        if linter is None:
            return []
        try:
            return await linter(filename, workdir)
        except ToolTimeoutError:
            raise
        except ProcessError as e:
            logger.warning(f"Linting failed for {filename}: {e}")
            return []

    async def _run(self, command: str, args: list[str], workdir: str):
        return await self.runner.run(
            command, args, cwd=workdir, timeout=self.timeout, ignore_exit_code=True
        )

    # JavaScript / TypeScript

    def ensure_eslint_config(self, workdir: str) -> bool:
        """Write a default flat config when the project has none.

        Idempotent: an existing config (including one written earlier) is
        left alone. Returns True when a config was written.
        """
        root = Path(workdir)
        if any((root / name).exists() for name in ESLINT_CONFIG_FILES):
            return False
        try:
            (root / "eslint.config.js").write_text(DEFAULT_ESLINT_CONFIG, encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to create default ESLint config: {e}")
            return False
        logger.info(f"Created default ESLint flat config in {workdir}")
        return True

    async def ensure_dependencies_installed(self, workdir: str) -> None:
        if workdir in self._prepared_workdirs:
            return
        self._prepared_workdirs.add(workdir)

        root = Path(workdir)
        if not self.install_dependencies or (root / "node_modules").exists():
            return
        if not (root / "package.json").exists():
            return

        if (root / "pnpm-lock.yaml").exists():
            command, args = "pnpm", ["install"]
        elif (root / "yarn.lock").exists():
            command, args = "yarn", []
        elif (root / "package-lock.json").exists():
            command, args = "npm", ["ci"]
        else:
            command, args = "npm", ["install"]

        logger.info(f"Installing project dependencies: {command} {' '.join(args)}")
        try:
            await self.runner.run(command, args, cwd=workdir, timeout=max(self.timeout or 0, 300))
        except (ProcessError, ToolTimeoutError) as e:
            logger.warning(f"Failed to install dependencies: {e}")

    async def lint_javascript(self, filename: str, workdir: str) -> list[Finding]:
        await self.ensure_dependencies_installed(workdir)
        self.ensure_eslint_config(workdir)

        local_eslint = Path(workdir) / "node_modules" / ".bin" / "eslint"
        if local_eslint.exists():
            command, args = str(local_eslint), ["--format", "json", filename]
        else:
            command, args = "npx", ["--yes", "eslint", "--format", "json", filename]

        result = await self._run(command, args, workdir)
        if "Cannot find package" in result.stderr or "ERR_MODULE_NOT_FOUND" in result.stderr:
            logger.warning(f"ESLint configuration error: missing dependencies, skipping {filename}")
            return []
        if not result.stdout.strip():
            return []
        return parse_eslint_json(result.stdout, filename)

    # Python

    async def lint_python(self, filename: str, workdir: str) -> list[Finding]:
        result = await self._run("pylint", ["--output-format=json", filename], workdir)
        if not result.stdout.strip():
            return []
        return parse_pylint_json(result.stdout, filename)

    # Rust

    async def lint_rust(self, filename: str, workdir: str) -> list[Finding]:
        if not (Path(workdir) / "Cargo.toml").exists():
            return []
        result = await self._run(
            "cargo", ["clippy", "--message-format=json", "--", "-W", "clippy::all"], workdir
        )
        return parse_clippy_ndjson(result.stdout, filename)

    # C#

    @staticmethod
    def has_dotnet_project(workdir: str) -> bool:
        try:
            return any(
                p.suffix in (".csproj", ".sln", ".slnx") for p in Path(workdir).iterdir()
            )
        except OSError:
            return False

    async def lint_csharp(self, filename: str, workdir: str) -> list[Finding]:
        if not self.has_dotnet_project(workdir):
            return []

        result = await self._run(
            "dotnet", ["format", "--verify-no-changes", "--report", "json", workdir], workdir
        )
        if result.stdout.strip():
            findings = parse_dotnet_format_json(result.stdout, filename)
            if findings is not None:
                return findings

        # No JSON report: fall back to analyzer diagnostics from a build
        build = await self._run(
            "dotnet", ["build", "--no-restore", "/p:TreatWarningsAsErrors=false"], workdir
        )
        return parse_msbuild_diagnostics(build.stdout + "\n" + build.stderr, filename)
