"""Pydantic schemas for analysis collaborators."""

from typing import Optional

from pydantic import BaseModel


class FunctionInfo(BaseModel):
    name: str
    line: int
    params: list[str] = []
    complexity: int = 1
    is_async: bool = False
    is_exported: bool = False
    calls: list[str] = []


class DependencyInfo(BaseModel):
    source: str
    line: int
    specifiers: list[str] = []
    is_external: bool = True


class CodeMetrics(BaseModel):
    lines_of_code: int = 0
    complexity: int = 1
    maintainability_index: float = 100.0
    function_count: int = 0
    class_count: int = 0
    comment_ratio: float = 0.0


class AstSummary(BaseModel):
    """Normalized structure of one source file."""

    path: str
    language: Optional[str] = None
    metrics: CodeMetrics
    functions: list[FunctionInfo] = []
    dependencies: list[DependencyInfo] = []

    def find_function(self, name: str) -> Optional[FunctionInfo]:
        for func in self.functions:
            if func.name == name:
                return func
        # Methods are recorded as Class.method
        for func in self.functions:
            if func.name.rsplit(".", 1)[-1] == name:
                return func
        return None
