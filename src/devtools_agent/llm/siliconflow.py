from __future__ import annotations

import logging
import os
from typing import Any

from langchain_core.callbacks import AsyncCallbackManagerForLLMRun, CallbackManagerForLLMRun
from langchain_core.messages import BaseMessage
from langchain_core.outputs import ChatResult
from langchain_openai import ChatOpenAI

from ..config import DEFAULT_BASE_URL, DEFAULT_LLM_MAX_RETRIES, DEFAULT_LLM_TIMEOUT_MS, parse_number
from ..errors import ConfigurationError
from .recovery import guarded_call, recover_sync, strip_accounting_fields

logger = logging.getLogger(__name__)


def resolve_numeric_option(primary: object, secondary: object, fallback: float) -> float:
    """Return the first of ``primary``/``secondary`` that parses as a finite number."""

    for candidate in (primary, secondary):
        parsed = parse_number(candidate)
        if parsed is not None:
            return parsed
    return fallback


def resolve_api_key(fields: dict[str, Any]) -> str | None:
    for candidate in (
        fields.get("api_key"),
        fields.get("openai_api_key"),
        os.getenv("SILICONFLOW_API_KEY"),
        os.getenv("OPENAI_API_KEY"),
    ):
        if candidate:
            return str(candidate)
    return None


def empty_chat_result() -> ChatResult:
    return ChatResult(generations=[], llm_output={})


class SiliconFlowChat(ChatOpenAI):
    """ChatOpenAI bound to an OpenAI-compatible endpoint (SiliconFlow by default).

    Each generation is raced against ``call_timeout_ms``, runs with the
    duplicate-token warnings of the streaming client suppressed, and has its
    failures classified by :mod:`devtools_agent.llm.recovery`.
    """

    call_timeout_ms: float = DEFAULT_LLM_TIMEOUT_MS

    def __init__(self, **fields: Any) -> None:
        api_key = resolve_api_key(fields)
        if not api_key:
            raise ConfigurationError(
                "缺少 SiliconFlow API Key，请设置 SILICONFLOW_API_KEY 或提供 api_key。"
            )
        fields.pop("api_key", None)
        fields.pop("openai_api_key", None)

        timeout_ms = resolve_numeric_option(
            fields.pop("timeout_ms", None), os.getenv("LLM_TIMEOUT"), DEFAULT_LLM_TIMEOUT_MS
        )
        max_retries = int(
            resolve_numeric_option(
                fields.pop("max_retries", None), os.getenv("LLM_MAX_RETRIES"), DEFAULT_LLM_MAX_RETRIES
            )
        )
        base_url = fields.pop("base_url", None) or os.getenv("LLM_BASE_URL") or DEFAULT_BASE_URL
        model = fields.pop("model", None) or fields.pop("model_name", None) or os.getenv("MODEL_NAME")
        if model:
            fields["model"] = model

        super().__init__(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_ms / 1000 if timeout_ms > 0 else None,
            max_retries=max_retries,
            call_timeout_ms=timeout_ms,
            **fields,
        )

    async def _agenerate(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: AsyncCallbackManagerForLLMRun | None = None,
        **kwargs: Any,
    ) -> ChatResult:
        parent = super()._agenerate

        async def call() -> ChatResult:
            result = await parent(messages, stop=stop, run_manager=run_manager, **kwargs)
            strip_accounting_fields(result.llm_output)
            return result

        return await guarded_call(call, timeout_ms=self.call_timeout_ms, empty_result=empty_chat_result)

    def _generate(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: CallbackManagerForLLMRun | None = None,
        **kwargs: Any,
    ) -> ChatResult:
        parent = super()._generate

        def call() -> ChatResult:
            result = parent(messages, stop=stop, run_manager=run_manager, **kwargs)
            strip_accounting_fields(result.llm_output)
            return result

        return recover_sync(call, empty_chat_result)
