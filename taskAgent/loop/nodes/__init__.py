"""Loop graph node factories."""

from .act import build_act_node
from .decide import build_correct_node, build_decide_node
from .finalize import build_finalize_node, build_summarize_node, classify_outcome
from .guard import build_compact_node, build_guard_node

__all__ = [
    "build_act_node",
    "build_compact_node",
    "build_correct_node",
    "build_decide_node",
    "build_finalize_node",
    "build_guard_node",
    "build_summarize_node",
    "classify_outcome",
]
