"""Error recovery for outbound chat-model calls.

Every call goes through the same steps: suppress the upstream client's noisy
duplicate-token diagnostics, race the call against a deadline, then classify
any failure. Classification is ordered and the first match wins; the
duplicate-token check must stay ahead of the generic timeout and network
checks because the artifact's message can mention either.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, MutableMapping, TypeVar

import httpx
import openai

from ..core.deadline import run_with_timeout
from ..core.log_filter import TOKEN_DUPLICATED_MESSAGE, suppress_output, with_log_filter
from ..errors import AuthError, DeadlineExceeded, LLMError, NetworkError, RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACCOUNTING_FIELDS = ("completion_tokens", "total_tokens", "reasoning_tokens")

NETWORK_MESSAGE = "网络连接错误，请检查网络连接或稍后重试"
RATE_LIMIT_MESSAGE = "API调用频率超限，请稍后重试"
AUTH_MESSAGE = "API认证失败，请检查API密钥是否正确"


class ErrorClass(enum.Enum):
    DUPLICATE_TOKEN_ARTIFACT = "duplicate_token_artifact"
    TIMEOUT = "timeout"
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    UNKNOWN = "unknown"


def _status_code(error: BaseException) -> int | None:
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


@dataclass(frozen=True, slots=True)
class ErrorMatcher:
    """Typed signal first, case-sensitive message substrings as fallback."""

    error_class: ErrorClass
    types: tuple[type[BaseException], ...] = ()
    status_codes: tuple[int, ...] = ()
    substrings: tuple[str, ...] = ()

    def matches(self, error: BaseException, message: str) -> bool:
        if self.types and isinstance(error, self.types):
            return True
        if self.status_codes and _status_code(error) in self.status_codes:
            return True
        return any(fragment in message for fragment in self.substrings)


MATCHERS: tuple[ErrorMatcher, ...] = (
    ErrorMatcher(ErrorClass.TIMEOUT, types=(TimeoutError, openai.APITimeoutError, httpx.TimeoutException)),
    ErrorMatcher(
        ErrorClass.NETWORK,
        types=(openai.APIConnectionError, httpx.NetworkError, ConnectionError),
        substrings=("network", "fetch", "ECONNREFUSED"),
    ),
    ErrorMatcher(
        ErrorClass.RATE_LIMIT,
        types=(openai.RateLimitError,),
        status_codes=(429,),
        substrings=("rate limit", "429"),
    ),
    ErrorMatcher(
        ErrorClass.AUTH,
        types=(openai.AuthenticationError,),
        status_codes=(401,),
        substrings=("unauthorized", "401"),
    ),
)


def classify_error(error: BaseException) -> ErrorClass:
    message = str(error)
    if TOKEN_DUPLICATED_MESSAGE.search(message):
        return ErrorClass.DUPLICATE_TOKEN_ARTIFACT
    for matcher in MATCHERS:
        if matcher.matches(error, message):
            return matcher.error_class
    return ErrorClass.UNKNOWN


def strip_accounting_fields(llm_output: MutableMapping[str, Any] | None) -> MutableMapping[str, Any] | None:
    """Drop token accounting keys the upstream client leaves in the call metadata."""

    if llm_output is None:
        return None
    for key in ACCOUNTING_FIELDS:
        llm_output.pop(key, None)
    return llm_output


_TRANSLATIONS: dict[ErrorClass, tuple[type[LLMError], str, str]] = {
    ErrorClass.NETWORK: (NetworkError, NETWORK_MESSAGE, "Network error occurred: %s"),
    ErrorClass.RATE_LIMIT: (RateLimitError, RATE_LIMIT_MESSAGE, "Rate limit exceeded: %s"),
    ErrorClass.AUTH: (AuthError, AUTH_MESSAGE, "Authentication failed: %s"),
}


def recover(error: Exception, empty_result: Callable[[], T], error_name: str = "LLMTimeoutError") -> T:
    """Turn a failed call into a degraded result or a translated exception.

    Returns only for the duplicate-token artifact; every other class raises.
    """

    error_class = classify_error(error)
    if error_class is ErrorClass.DUPLICATE_TOKEN_ARTIFACT:
        logger.warning("Detected token field duplicate error, using simplified response")
        return empty_result()
    if error_class is ErrorClass.TIMEOUT:
        if isinstance(error, DeadlineExceeded):
            raise error
        raise DeadlineExceeded(str(error) or "LLM call timeout", kind=error_name) from error
    if error_class in _TRANSLATIONS:
        error_type, message, log_template = _TRANSLATIONS[error_class]
        logger.error(log_template, error)
        raise error_type(message) from error
    raise error


async def guarded_call(
    operation: Callable[[], Awaitable[T]],
    *,
    timeout_ms: float,
    empty_result: Callable[[], T],
    timeout_message: str = "LLM call timeout",
    error_name: str = "LLMTimeoutError",
) -> T:
    """Run one remote call with output filtering, a deadline and error recovery."""

    def on_timeout(error: DeadlineExceeded) -> None:
        logger.error(str(error))

    try:
        return await with_log_filter(
            TOKEN_DUPLICATED_MESSAGE,
            lambda: run_with_timeout(
                operation,
                timeout_ms,
                timeout_message=timeout_message,
                error_name=error_name,
                on_timeout=on_timeout,
            ),
        )
    except Exception as exc:
        return recover(exc, empty_result, error_name)


def recover_sync(operation: Callable[[], T], empty_result: Callable[[], T], error_name: str = "LLMTimeoutError") -> T:
    """Blocking variant of :func:`guarded_call`; the client's own request timeout applies."""

    try:
        with suppress_output(TOKEN_DUPLICATED_MESSAGE):
            return operation()
    except Exception as exc:
        return recover(exc, empty_result, error_name)
