"""Factory for assembling the per-run LangGraph state machine."""

from __future__ import annotations

import logging

from langgraph.graph import END, START, StateGraph

from .nodes import (
    build_act_node,
    build_compact_node,
    build_correct_node,
    build_decide_node,
    build_finalize_node,
    build_guard_node,
    build_summarize_node,
)
from .routing import route_after_act, route_after_correct, route_after_decide, route_after_guard
from .services import LoopServices
from .state import LoopState

LOGGER = logging.getLogger(__name__)


def build_loop_graph(services: LoopServices):
    """Compose the think/decide/act loop for one task run.

        START → guard → decide → act → guard → ...
                  ↓        ↓       ↓
               compact  correct  summarize → finalize → END

    - guard checks cancellation, timeout, the step ceiling and the context budget
    - compact runs only when guard flags the budget, then goes straight to decide
    - decide makes exactly one reasoning call and classifies the reply
    - act runs at most one tool call
    - summarize is the tool-free wrap-up for loop, timeout and ceiling stops
    - cancellation, completion and errors go directly to finalize
    """

    # ========== Build graph ==========
    graph = StateGraph(LoopState)
    graph.add_node("guard", build_guard_node(services=services))
    graph.add_node("compact", build_compact_node(services=services))
    graph.add_node("decide", build_decide_node(services=services))
    graph.add_node("correct", build_correct_node(services=services))
    graph.add_node("act", build_act_node(services=services))
    graph.add_node("summarize", build_summarize_node(services=services))
    graph.add_node("finalize", build_finalize_node(services=services))

    # ========== Edges ==========
    graph.add_edge(START, "guard")
    graph.add_conditional_edges(
        "guard",
        route_after_guard,
        {"decide": "decide", "compact": "compact", "summarize": "summarize", "finalize": "finalize"},
    )
    graph.add_edge("compact", "decide")
    graph.add_conditional_edges(
        "decide",
        route_after_decide,
        {"act": "act", "correct": "correct", "finalize": "finalize"},
    )
    graph.add_conditional_edges(
        "correct",
        route_after_correct,
        {"guard": "guard", "finalize": "finalize"},
    )
    graph.add_conditional_edges(
        "act",
        route_after_act,
        {"guard": "guard", "summarize": "summarize", "finalize": "finalize"},
    )
    graph.add_edge("summarize", "finalize")
    graph.add_edge("finalize", END)

    LOGGER.debug(f"Built loop graph for role {services.role} (task {services.ctx.task_id})")
    return graph.compile()
