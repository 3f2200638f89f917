"""ReasoningEngine backed by a LangChain chat model."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from taskAgent.context.budget import estimate_tokens
from taskAgent.core.cancellation import CancellationError
from taskAgent.utils.error_handler import ConfigurationError, ModelInvocationError, handle_model_error

from .base import ThinkOptions, ThinkResponse

LOGGER = logging.getLogger(__name__)


class ChatModelEngine:
    """Adapts ``BaseChatModel.ainvoke`` to ``think(system, user, options)``.

    Token counts come from the response's ``usage_metadata`` when the provider
    reports it, otherwise from the character estimate.
    """

    def __init__(self, model: BaseChatModel, model_name: Optional[str] = None):
        self.model = model
        self.model_name = model_name or getattr(model, "model_name", None) or getattr(model, "model", "") or ""

    async def think(self, system: str, user: str, options: Optional[ThinkOptions] = None) -> ThinkResponse:
        options = options or ThinkOptions()
        cancel = options.cancel
        if cancel is not None:
            cancel.throw_if_cancelled()

        runnable = self.model
        bind_kwargs: Dict[str, Any] = {}
        if options.temperature is not None:
            bind_kwargs["temperature"] = options.temperature
        if options.max_tokens is not None:
            bind_kwargs["max_tokens"] = options.max_tokens
        if options.response_format == "json":
            bind_kwargs["response_format"] = {"type": "json_object"}
        if bind_kwargs:
            runnable = self.model.bind(**bind_kwargs)

        messages = [SystemMessage(content=system), HumanMessage(content=user)]
        invoke_task = asyncio.ensure_future(runnable.ainvoke(messages))
        try:
            if cancel is None:
                response = await invoke_task
            else:
                cancel_task = asyncio.ensure_future(cancel.wait())
                try:
                    done, _ = await asyncio.wait(
                        {invoke_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
                    )
                finally:
                    cancel_task.cancel()
                if invoke_task not in done:
                    invoke_task.cancel()
                    raise CancellationError(f"Model call cancelled: {cancel.reason}")
                response = invoke_task.result()
        except CancellationError:
            raise
        except asyncio.CancelledError:
            invoke_task.cancel()
            raise
        except Exception as e:
            LOGGER.error(f"Model invocation failed: {type(e).__name__}: {e}")
            raise ModelInvocationError(str(e), handle_model_error(e)) from e

        content = response.content if isinstance(response.content, str) else _flatten(response.content)
        usage = getattr(response, "usage_metadata", None) or {}
        metadata = getattr(response, "response_metadata", None) or {}
        tokens_in = usage.get("input_tokens") or estimate_tokens(system) + estimate_tokens(user)
        tokens_out = usage.get("output_tokens") or estimate_tokens(content)
        return ThinkResponse(
            content=content,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            model=metadata.get("model_name") or self.model_name,
            finish_reason=metadata.get("finish_reason"),
        )


def _flatten(content: Any) -> str:
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def build_chat_engine(settings) -> ChatModelEngine:
    """Construct a ``ChatOpenAI``-backed engine from ``settings.model``."""
    model_settings = settings.model
    if not model_settings.api_key:
        raise ConfigurationError(
            f"Missing API key for model {model_settings.model_id}",
            "Set MODEL_API_KEY (or OPENAI_API_KEY) in .env",
        )
    kwargs: Dict[str, Any] = {
        "model": model_settings.model_id,
        "api_key": model_settings.api_key,
        "temperature": model_settings.temperature,
    }
    if model_settings.base_url:
        kwargs["base_url"] = model_settings.base_url
    if model_settings.max_tokens:
        kwargs["max_tokens"] = model_settings.max_tokens
    LOGGER.info(f"Chat engine: {model_settings.model_id}")
    return ChatModelEngine(ChatOpenAI(**kwargs), model_name=model_settings.model_id)
