from __future__ import annotations


class AgentError(Exception):
    """Base class for agent specific exceptions."""


class ConfigurationError(AgentError):
    """Raised when a required setting such as the API key is missing."""


class TaskFileError(AgentError):
    """Raised when a task file cannot be read or holds no usable task."""


class MissingTaskError(AgentError):
    """Raised when neither a task file nor inline task text was given."""


class LLMError(AgentError):
    """Raised when an LLM provider returns an error."""


class NetworkError(LLMError):
    """Raised when the LLM endpoint cannot be reached."""


class RateLimitError(LLMError):
    """Raised when the LLM endpoint rejects a call for exceeding its rate limit."""


class AuthError(LLMError):
    """Raised when the LLM endpoint rejects the configured credentials."""


class DeadlineExceeded(AgentError, TimeoutError):
    """Raised when a guarded operation outlives its deadline.

    ``kind`` names the use site (``"LLMTimeoutError"``, ``"AgentTimeoutError"``...)
    so callers can tell deadlines apart without parsing the message.
    """

    def __init__(self, message: str, kind: str = "TimeoutError") -> None:
        super().__init__(message)
        self.kind = kind
