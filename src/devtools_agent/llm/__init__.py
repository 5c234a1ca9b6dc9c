from __future__ import annotations

from typing import Any

from ..config import Settings
from .recovery import ErrorClass, classify_error, guarded_call, strip_accounting_fields
from .siliconflow import SiliconFlowChat


def create_llm(settings: Settings, **overrides: Any) -> SiliconFlowChat:
    """Build the chat model from settings; keyword overrides win."""

    fields: dict[str, Any] = {
        "api_key": settings.api_key,
        "model": settings.model_name,
        "base_url": settings.llm_base_url,
        "timeout_ms": settings.llm_timeout_ms,
        "max_retries": settings.llm_max_retries,
    }
    fields.update(overrides)
    return SiliconFlowChat(**{key: value for key, value in fields.items() if value is not None})


__all__ = [
    "SiliconFlowChat",
    "create_llm",
    "ErrorClass",
    "classify_error",
    "guarded_call",
    "strip_accounting_fields",
]
