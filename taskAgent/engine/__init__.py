"""Reasoning engine interface and the LangChain-backed implementation."""

from .base import ReasoningEngine, ThinkOptions, ThinkResponse
from .chat_model import ChatModelEngine, build_chat_engine

__all__ = ["ChatModelEngine", "ReasoningEngine", "ThinkOptions", "ThinkResponse", "build_chat_engine"]
