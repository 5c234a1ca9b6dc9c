from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationError
from .logging import LOG_LEVELS

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.siliconflow.cn/v1"
DEFAULT_LLM_TIMEOUT_MS = 30_000
DEFAULT_LLM_MAX_RETRIES = 2
DEFAULT_AGENT_MAX_STEPS = 10
DEFAULT_AGENT_TIMEOUT_MS = 120_000
DEFAULT_CHROME_MCP_URL = "http://127.0.0.1:9222"
DEFAULT_MCP_LAUNCH_TIMEOUT_MS = 60_000
DEFAULT_MCP_CONNECT_TIMEOUT_MS = 30_000

API_KEY_VARIABLES = ("SILICONFLOW_API_KEY", "OPENAI_API_KEY", "LLM_API_KEY")


def parse_number(value: object) -> float | None:
    """Return ``value`` as a finite number, or ``None`` when it is not one."""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _positive_int_env(names: tuple[str, ...], default: int) -> int:
    """Read the first set variable among ``names`` as a positive integer.

    A value that is not a positive number is reported and replaced by ``default``.
    """

    for name in names:
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            continue
        parsed = parse_number(raw)
        value = int(parsed) if parsed is not None else 0
        if value <= 0:
            logger.warning("Invalid %s value: %s, using default of %s", name, raw, default)
            return default
        return value
    return default


def _non_negative_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    parsed = parse_number(raw)
    if parsed is None or parsed < 0:
        logger.warning("Invalid %s value: %s, using default of %s", name, raw, default)
        return default
    return int(parsed)


def _log_level_env(default: str = "INFO") -> str:
    raw = os.getenv("LOG_LEVEL")
    if raw is None or not raw.strip():
        return default
    level = raw.strip().upper()
    if level == "WARN":
        level = "WARNING"
    if level not in LOG_LEVELS:
        logger.warning("Invalid LOG_LEVEL value: %s, using default of %s", raw, default)
        return default
    return level


@dataclass(slots=True)
class Settings:
    """Application configuration loaded from environment variables."""

    api_key: str | None = None
    model_name: str | None = None
    llm_base_url: str = DEFAULT_BASE_URL
    llm_timeout_ms: int = DEFAULT_LLM_TIMEOUT_MS
    llm_max_retries: int = DEFAULT_LLM_MAX_RETRIES
    agent_max_steps: int = DEFAULT_AGENT_MAX_STEPS
    agent_timeout_ms: int = DEFAULT_AGENT_TIMEOUT_MS
    max_execution_ms: int = DEFAULT_AGENT_TIMEOUT_MS
    chrome_mcp_url: str = DEFAULT_CHROME_MCP_URL
    mcp_launch_timeout_ms: int = DEFAULT_MCP_LAUNCH_TIMEOUT_MS
    mcp_connect_timeout_ms: int = DEFAULT_MCP_CONNECT_TIMEOUT_MS
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    task_file: Path | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        api_key = next((os.getenv(name) for name in API_KEY_VARIABLES if os.getenv(name)), None)
        agent_timeout_ms = _positive_int_env(
            ("AGENT_TIMEOUT_MS", "MAX_EXECUTION_TIME"), DEFAULT_AGENT_TIMEOUT_MS
        )
        task_file = os.getenv("TASK_FILE")

        settings = cls(
            api_key=api_key,
            model_name=os.getenv("MODEL_NAME") or None,
            llm_base_url=os.getenv("LLM_BASE_URL") or DEFAULT_BASE_URL,
            llm_timeout_ms=_positive_int_env(("LLM_TIMEOUT",), DEFAULT_LLM_TIMEOUT_MS),
            llm_max_retries=_non_negative_int_env("LLM_MAX_RETRIES", DEFAULT_LLM_MAX_RETRIES),
            agent_max_steps=_positive_int_env(("AGENT_MAX_STEPS",), DEFAULT_AGENT_MAX_STEPS),
            agent_timeout_ms=agent_timeout_ms,
            max_execution_ms=_positive_int_env(("MAX_EXECUTION_TIME",), agent_timeout_ms),
            chrome_mcp_url=os.getenv("CHROME_MCP_URL") or DEFAULT_CHROME_MCP_URL,
            mcp_launch_timeout_ms=_positive_int_env(
                ("MCP_LAUNCH_TIMEOUT",), DEFAULT_MCP_LAUNCH_TIMEOUT_MS
            ),
            mcp_connect_timeout_ms=_positive_int_env(
                ("MCP_CONNECT_TIMEOUT",), DEFAULT_MCP_CONNECT_TIMEOUT_MS
            ),
            log_level=_log_level_env(),
            log_dir=Path(os.getenv("LOG_DIR", "logs")),
            task_file=Path(task_file) if task_file else None,
        )
        return settings

    def ensure_directories(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def require_api_key(self) -> str:
        """Return the configured API key or fail with a pointer to the variables to set."""

        if not self.api_key:
            raise ConfigurationError(
                "缺少 LLM API Key，请设置 SILICONFLOW_API_KEY、OPENAI_API_KEY 或 LLM_API_KEY。"
            )
        if len(self.api_key) < 10:
            logger.warning("API key might be invalid (too short)")
        return self.api_key
