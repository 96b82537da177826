"""Shared library utilities."""

from deep_reviewer.core.llm import get_chat_llm
from deep_reviewer.core.logging import get_logger
from deep_reviewer.core.pr_parser import PRReference, parse_pr_reference

__all__ = [
    "get_chat_llm",
    "get_logger",
    "PRReference",
    "parse_pr_reference",
]
