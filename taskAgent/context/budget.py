"""Token estimation and per-model input budgets.

Responsibilities:
1. Rough token estimate for prompt text
2. Context window lookup by model id (substring match, most specific first)
3. Budget snapshot deciding whether the loop should compact
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

DEFAULT_CONTEXT_LIMIT = 128_000
DEFAULT_COMPACTION_THRESHOLD = 0.80
PROACTIVE_COMPACTION_THRESHOLD = 0.60
# Even 1M-context models never get more than this much input
MAX_INPUT_BUDGET = 200_000
OUTPUT_RESERVE_TOKENS = 4_096
CHARS_PER_TOKEN = 4

# (pattern, limit); more specific patterns first
MODEL_CONTEXT_LIMITS: List[Tuple[str, int]] = [
    # Anthropic
    ("claude-opus-4", 200_000),
    ("claude-sonnet-4", 200_000),
    ("claude-3.5", 200_000),
    ("claude-3", 200_000),
    ("claude", 200_000),
    # Google
    ("gemini-2.5", 1_048_576),
    ("gemini-2.0", 1_048_576),
    ("gemini-1.5", 1_048_576),
    # OpenAI
    ("gpt-5", 400_000),
    ("gpt-4.1", 1_047_576),
    ("gpt-4o", 128_000),
    ("gpt-4-turbo", 128_000),
    ("gpt-4", 8_192),
    ("gpt-3.5", 16_385),
    ("o4", 200_000),
    ("o3", 200_000),
    ("o1", 200_000),
    # Qwen
    ("qwen3-coder", 256_000),
    ("qwen", 128_000),
    # DeepSeek
    ("deepseek", 128_000),
    # Moonshot / Kimi
    ("moonshot-v1-8k", 8_000),
    ("moonshot-v1-32k", 32_000),
    ("kimi-k2", 200_000),
    # Local
    ("llama3.1", 128_000),
    ("llama3", 8_192),
    ("mixtral", 32_000),
    ("mistral", 32_000),
]


@dataclass(frozen=True)
class TokenBudget:
    context_limit: int
    output_reserve: int
    input_budget: int
    current_usage: int
    usage_ratio: float
    should_compact: bool
    tokens_remaining: int
    threshold_tokens: int = 0

    @property
    def compaction_target(self) -> int:
        """Tokens to free to get back under the threshold."""
        return max(0, self.current_usage - self.threshold_tokens)


def estimate_tokens(text: Optional[str]) -> int:
    """Character-based estimate, about four characters per token."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def get_context_limit(model: Optional[str]) -> int:
    if not model:
        return DEFAULT_CONTEXT_LIMIT
    lowered = model.lower()
    for pattern, limit in MODEL_CONTEXT_LIMITS:
        if pattern in lowered:
            return limit
    return DEFAULT_CONTEXT_LIMIT


def budget_for(
    model: Optional[str],
    current_usage: int,
    threshold: float = DEFAULT_COMPACTION_THRESHOLD,
    context_limit: Optional[int] = None,
) -> TokenBudget:
    """Budget snapshot for ``current_usage`` input tokens on ``model``."""
    limit = context_limit or get_context_limit(model)
    output_reserve = min(OUTPUT_RESERVE_TOKENS, int(limit * 0.1))
    input_budget = min(limit - output_reserve, MAX_INPUT_BUDGET)
    threshold_tokens = int(input_budget * threshold)
    return TokenBudget(
        context_limit=limit,
        output_reserve=output_reserve,
        input_budget=input_budget,
        current_usage=current_usage,
        usage_ratio=min(current_usage / input_budget, 1.0) if input_budget > 0 else 1.0,
        should_compact=current_usage > threshold_tokens,
        tokens_remaining=max(0, threshold_tokens - current_usage),
        threshold_tokens=threshold_tokens,
    )


def format_token_count(tokens: int) -> str:
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 1_000:
        return f"{tokens / 1_000:.1f}K"
    return str(tokens)
