"""Conservative token estimation.

Source code and diffs average roughly four characters per subword token. The
estimator assumes three and adds one token per line, so it overestimates for
every realistic input. Budgets derived from it leave headroom instead of
truncating downstream.
"""

import math

CHARS_PER_TOKEN = 3
TOKENS_PER_CHANGED_LINE = 16
FILE_HEADER_TOKENS = 16


def estimate_tokens(text: str) -> int:
    """Estimate the token count of ``text`` (never underestimates in practice)."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN) + text.count("\n") + 1


def estimate_line_tokens(changed_lines: int) -> int:
    """Estimate tokens for a diff known only by its changed-line count."""
    return max(changed_lines, 0) * TOKENS_PER_CHANGED_LINE
