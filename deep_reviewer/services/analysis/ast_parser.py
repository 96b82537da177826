"""Source structure extraction used by the analysis tools.

Python goes through the standard ``ast`` module. JavaScript/TypeScript and
other brace languages use regex heuristics with brace matching, which is good
enough for review context but not a real parser.
"""

import ast
import math
import re
from typing import Iterator

from deep_reviewer.schemas.review import detect_language
from deep_reviewer.services.analysis.schemas import (
    AstSummary,
    CodeMetrics,
    DependencyInfo,
    FunctionInfo,
)

_TOKEN_RE = re.compile(r"[A-Za-z_$][\w$]*|\d+|[^\w\s]")
_NESTED_SCOPES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)

_BRACE_KEYWORDS = {
    "if", "for", "while", "switch", "catch", "function", "return", "typeof",
    "else", "do", "try", "with", "await", "yield", "delete", "void", "in", "of",
    "constructor", "super", "import", "require",
}
_JS_FUNCTION_PATTERNS = [
    re.compile(
        r"(?P<export>export\s+(?:default\s+)?)?(?P<async>async\s+)?function\s*\*?\s*"
        r"(?P<name>[A-Za-z_$][\w$]*)\s*(?:<[^>]*>)?\s*\((?P<params>[^)]*)\)"
    ),
    re.compile(
        r"(?P<export>export\s+)?(?:const|let|var)\s+(?P<name>[A-Za-z_$][\w$]*)\s*"
        r"(?::[^=\n]+)?=\s*(?P<async>async\s+)?(?:function\s*)?\((?P<params>[^)]*)\)"
        r"\s*(?::\s*[^={\n]+)?(?:=>|\{)"
    ),
    re.compile(
        r"^[ \t]+(?:(?:public|private|protected|static|readonly|override)\s+)*"
        r"(?P<async>async\s+)?(?P<name>[A-Za-z_$][\w$]*)\s*\((?P<params>[^)]*)\)"
        r"\s*(?::\s*[^{;\n]+)?\{",
        re.MULTILINE,
    ),
    re.compile(
        r"(?P<export>pub(?:\([^)]*\))?\s+)?(?P<async>async\s+)?fn\s+(?P<name>[A-Za-z_]\w*)"
        r"\s*(?:<[^>]*>)?\s*\((?P<params>[^)]*)\)"
    ),
    re.compile(r"func\s+(?:\([^)]*\)\s*)?(?P<name>[A-Za-z_]\w*)\s*\((?P<params>[^)]*)\)"),
]
_JS_IMPORT_RE = re.compile(
    r"^\s*(?:import|export)\s+(?:(?P<what>[\w*${},\s]+?)\s+from\s+)?['\"](?P<source>[^'\"]+)['\"]",
    re.MULTILINE,
)
_JS_REQUIRE_RE = re.compile(r"require\(\s*['\"](?P<source>[^'\"]+)['\"]\s*\)")
_JS_EXPORT_LIST_RE = re.compile(r"export\s*\{(?P<names>[^}]*)\}")
_JS_DECISION_RE = re.compile(r"\b(?:if|for|while|case|catch)\b|&&|\|\||\?(?![.?:])")
_JS_CALL_RE = re.compile(r"([A-Za-z_$][\w$]*)\s*\(")
_CLASS_RE = re.compile(r"\b(?:class|struct|interface|impl)\s+[A-Za-z_$]")


def parse_source(content: str, path: str) -> AstSummary:
    """Summarize functions, dependencies and metrics of one file.

    Raises:
        ValueError: Python source that does not parse.
    """
    language = detect_language(path)
    if language == "python":
        return _parse_python(content, path)
    return _parse_brace_language(content, path, language)


# Shared metrics


def _maintainability_index(content: str, complexity: int, loc: int) -> float:
    tokens = _TOKEN_RE.findall(content)
    vocabulary = len(set(tokens))
    volume = len(tokens) * math.log2(vocabulary) if vocabulary > 1 else 1.0
    raw = 171 - 5.2 * math.log(max(volume, 1.0)) - 0.23 * complexity - 16.2 * math.log(max(loc, 1))
    return round(max(0.0, min(100.0, raw * 100 / 171)), 1)


def _line_metrics(content: str, comment_prefixes: tuple[str, ...]) -> tuple[int, float]:
    code = comments = 0
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith(comment_prefixes):
            comments += 1
        else:
            code += 1
    total = code + comments
    return code, (comments / total if total else 0.0)


# Python


def _walk_local(node: ast.AST) -> Iterator[ast.AST]:
    """Walk ``node``'s body without descending into nested scopes."""
    for child in ast.iter_child_nodes(node):
        yield child
        if not isinstance(child, _NESTED_SCOPES):
            yield from _walk_local(child)


def _decision_points(nodes) -> int:
    count = 0
    for node in nodes:
        if isinstance(node, (ast.If, ast.For, ast.AsyncFor, ast.While, ast.IfExp, ast.ExceptHandler, ast.Assert)):
            count += 1
        elif isinstance(node, ast.comprehension):
            count += 1 + len(node.ifs)
        elif isinstance(node, ast.BoolOp):
            count += len(node.values) - 1
        elif isinstance(node, ast.match_case):
            count += 1
    return count


def _call_name(func: ast.AST) -> str | None:
    if isinstance(func, ast.Name):
        return func.id
    if isinstance(func, ast.Attribute):
        owner = _call_name(func.value)
        return f"{owner}.{func.attr}" if owner else func.attr
    return None


class _PythonVisitor(ast.NodeVisitor):
    def __init__(self) -> None:
        self.functions: list[FunctionInfo] = []
        self.dependencies: list[DependencyInfo] = []
        self.class_count = 0
        self._scope: list[str] = []

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self.class_count += 1
        self._scope.append(node.name)
        self.generic_visit(node)
        self._scope.pop()

    def _visit_function(self, node, is_async: bool) -> None:
        args = node.args
        params = [a.arg for a in [*args.posonlyargs, *args.args, *args.kwonlyargs]]
        if args.vararg:
            params.append(f"*{args.vararg.arg}")
        if args.kwarg:
            params.append(f"**{args.kwarg.arg}")

        calls: list[str] = []
        for child in _walk_local(node):
            if isinstance(child, ast.Call):
                name = _call_name(child.func)
                if name and name not in calls:
                    calls.append(name)

        self.functions.append(
            FunctionInfo(
                name=".".join([*self._scope, node.name]),
                line=node.lineno,
                params=params,
                complexity=1 + _decision_points(_walk_local(node)),
                is_async=is_async,
                is_exported=not node.name.startswith("_"),
                calls=calls,
            )
        )
        self._scope.append(node.name)
        self.generic_visit(node)
        self._scope.pop()

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node, is_async=False)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_function(node, is_async=True)

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            self.dependencies.append(
                DependencyInfo(
                    source=alias.name,
                    line=node.lineno,
                    specifiers=[alias.asname or alias.name],
                    is_external=True,
                )
            )

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        self.dependencies.append(
            DependencyInfo(
                source="." * node.level + (node.module or ""),
                line=node.lineno,
                specifiers=[a.asname or a.name for a in node.names],
                is_external=node.level == 0,
            )
        )


def _parse_python(content: str, path: str) -> AstSummary:
    try:
        tree = ast.parse(content, filename=path)
    except SyntaxError as e:
        raise ValueError(f"Cannot parse {path}: {e.msg} (line {e.lineno})") from e

    visitor = _PythonVisitor()
    visitor.visit(tree)

    complexity = 1 + _decision_points(ast.walk(tree))
    loc, comment_ratio = _line_metrics(content, ("#",))
    return AstSummary(
        path=path,
        language="python",
        metrics=CodeMetrics(
            lines_of_code=loc,
            complexity=complexity,
            maintainability_index=_maintainability_index(content, complexity, loc),
            function_count=len(visitor.functions),
            class_count=visitor.class_count,
            comment_ratio=comment_ratio,
        ),
        functions=visitor.functions,
        dependencies=visitor.dependencies,
    )


# Brace languages (heuristic)


def _block_after(content: str, start: int) -> str:
    """Text of the ``{...}`` block opening at or after ``start``."""
    open_at = content.find("{", start)
    stop = content.find(";", start)
    if open_at == -1 or (stop != -1 and stop < open_at):
        # Expression-bodied arrow function or declaration without a body
        line_end = content.find("\n", start)
        return content[start:line_end if line_end != -1 else len(content)]

    depth = 0
    quote = None
    i = open_at
    while i < len(content):
        ch = content[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in "'\"`":
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return content[open_at:i + 1]
        i += 1
    return content[open_at:]


def _split_specifiers(what: str | None) -> list[str]:
    if not what:
        return []
    names = []
    for part in re.split(r"[,{}]", what):
        part = part.strip()
        if not part:
            continue
        names.append(part.split(" as ")[-1].strip())
    return names


def _parse_brace_language(content: str, path: str, language: str | None) -> AstSummary:
    exported_names = set()
    for match in _JS_EXPORT_LIST_RE.finditer(content):
        exported_names.update(_split_specifiers(match.group("names")))

    functions: list[FunctionInfo] = []
    seen: set[tuple[str, int]] = set()
    for pattern in _JS_FUNCTION_PATTERNS:
        for match in pattern.finditer(content):
            name = match.group("name")
            if name in _BRACE_KEYWORDS:
                continue
            line = content.count("\n", 0, match.start("name")) + 1
            if (name, line) in seen:
                continue
            seen.add((name, line))

            body_start = match.end() - 1 if match.group(0).endswith("{") else match.end()
            body = _block_after(content, body_start)
            calls = []
            for call in _JS_CALL_RE.findall(body):
                if call not in _BRACE_KEYWORDS and call not in calls:
                    calls.append(call)
            groups = match.groupdict()
            params = [p.strip() for p in (groups.get("params") or "").split(",") if p.strip()]
            functions.append(
                FunctionInfo(
                    name=name,
                    line=line,
                    params=params,
                    complexity=1 + len(_JS_DECISION_RE.findall(body)),
                    is_async=bool(groups.get("async")),
                    is_exported=bool(groups.get("export")) or name in exported_names,
                    calls=calls,
                )
            )
    functions.sort(key=lambda f: f.line)

    dependencies = []
    for match in _JS_IMPORT_RE.finditer(content):
        source = match.group("source")
        dependencies.append(
            DependencyInfo(
                source=source,
                line=content.count("\n", 0, match.start()) + 1,
                specifiers=_split_specifiers(match.group("what")),
                is_external=not source.startswith((".", "/")),
            )
        )
    for match in _JS_REQUIRE_RE.finditer(content):
        source = match.group("source")
        dependencies.append(
            DependencyInfo(
                source=source,
                line=content.count("\n", 0, match.start()) + 1,
                is_external=not source.startswith((".", "/")),
            )
        )
    dependencies.sort(key=lambda d: d.line)

    complexity = 1 + len(_JS_DECISION_RE.findall(content))
    loc, comment_ratio = _line_metrics(content, ("//", "/*", "*"))
    return AstSummary(
        path=path,
        language=language,
        metrics=CodeMetrics(
            lines_of_code=loc,
            complexity=complexity,
            maintainability_index=_maintainability_index(content, complexity, loc),
            function_count=len(functions),
            class_count=len(_CLASS_RE.findall(content)),
            comment_ratio=comment_ratio,
        ),
        functions=functions,
        dependencies=dependencies,
    )
