"""Context budget management: token estimates, budgets, working set and compaction."""

from .budget import (
    DEFAULT_COMPACTION_THRESHOLD,
    DEFAULT_CONTEXT_LIMIT,
    MAX_INPUT_BUDGET,
    PROACTIVE_COMPACTION_THRESHOLD,
    TokenBudget,
    budget_for,
    estimate_tokens,
    format_token_count,
    get_context_limit,
)
from .compactor import (
    CompactionResult,
    build_compaction_notice,
    compact,
)
from .working_set import (
    READ_CACHE_TOOLS,
    FileWorkingSet,
    WorkingSetEntry,
    normalize_path,
    render_line_range,
)

__all__ = [
    "DEFAULT_COMPACTION_THRESHOLD",
    "DEFAULT_CONTEXT_LIMIT",
    "MAX_INPUT_BUDGET",
    "PROACTIVE_COMPACTION_THRESHOLD",
    "READ_CACHE_TOOLS",
    "CompactionResult",
    "FileWorkingSet",
    "TokenBudget",
    "WorkingSetEntry",
    "budget_for",
    "build_compaction_notice",
    "compact",
    "estimate_tokens",
    "format_token_count",
    "get_context_limit",
    "normalize_path",
    "render_line_range",
]
