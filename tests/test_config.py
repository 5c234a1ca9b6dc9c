from __future__ import annotations

import logging
from pathlib import Path

import pytest

from devtools_agent.config import Settings, parse_number
from devtools_agent.errors import ConfigurationError
from devtools_agent.logging import normalize_level


def test_defaults() -> None:
    settings = Settings.from_env()

    assert settings.api_key is None
    assert settings.llm_timeout_ms == 30_000
    assert settings.llm_max_retries == 2
    assert settings.agent_max_steps == 10
    assert settings.agent_timeout_ms == 120_000
    assert settings.max_execution_ms == 120_000
    assert settings.chrome_mcp_url == "http://127.0.0.1:9222"
    assert settings.task_file is None


def test_api_key_priority(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_API_KEY", "llm-key-0000000000")
    monkeypatch.setenv("OPENAI_API_KEY", "openai-key-000000000")
    assert Settings.from_env().api_key == "openai-key-000000000"

    monkeypatch.setenv("SILICONFLOW_API_KEY", "sf-key-00000000000")
    assert Settings.from_env().api_key == "sf-key-00000000000"


def test_agent_timeout_falls_back_to_max_execution_time(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MAX_EXECUTION_TIME", "90000")

    settings = Settings.from_env()

    assert settings.agent_timeout_ms == 90_000
    assert settings.max_execution_ms == 90_000


def test_max_execution_time_defaults_to_agent_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AGENT_TIMEOUT_MS", "45000")

    settings = Settings.from_env()

    assert settings.agent_timeout_ms == 45_000
    assert settings.max_execution_ms == 45_000


@pytest.mark.parametrize("raw", ["abc", "-5", "0", "0.5", "inf"])
def test_invalid_numbers_warn_and_use_default(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture, raw: str
) -> None:
    monkeypatch.setenv("AGENT_TIMEOUT_MS", raw)
    monkeypatch.setenv("LLM_TIMEOUT", raw)

    with caplog.at_level(logging.WARNING, logger="devtools_agent.config"):
        settings = Settings.from_env()

    assert settings.agent_timeout_ms == 120_000
    assert settings.llm_timeout_ms == 30_000
    assert f"Invalid AGENT_TIMEOUT_MS value: {raw}" in caplog.text
    assert f"Invalid LLM_TIMEOUT value: {raw}" in caplog.text


def test_zero_retries_is_valid(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_MAX_RETRIES", "0")
    assert Settings.from_env().llm_max_retries == 0


def test_task_file_and_log_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TASK_FILE", "tasks/task.json")
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))

    settings = Settings.from_env()
    settings.ensure_directories()

    assert settings.task_file == Path("tasks/task.json")
    assert (tmp_path / "logs").is_dir()


def test_require_api_key() -> None:
    with pytest.raises(ConfigurationError):
        Settings().require_api_key()


def test_short_api_key_warns(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="devtools_agent.config"):
        assert Settings(api_key="short").require_api_key() == "short"

    assert "API key might be invalid" in caplog.text


def test_parse_number() -> None:
    assert parse_number("12.5") == 12.5
    assert parse_number(7) == 7
    assert parse_number(True) is None
    assert parse_number(" ") is None
    assert parse_number("1e999") is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("debug", "DEBUG"), ("warn", "WARNING"), ("ERROR", "ERROR"), ("verbose", "INFO"), (None, "INFO")],
)
def test_normalize_level(raw: str | None, expected: str) -> None:
    assert normalize_level(raw) == expected


@pytest.mark.parametrize(("raw", "expected"), [("debug", "DEBUG"), ("Warn", "WARNING"), (" error ", "ERROR")])
def test_log_level_is_normalized(monkeypatch: pytest.MonkeyPatch, raw: str, expected: str) -> None:
    monkeypatch.setenv("LOG_LEVEL", raw)

    assert Settings.from_env().log_level == expected


def test_invalid_log_level_warns_and_uses_info(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "verbose")

    with caplog.at_level(logging.WARNING, logger="devtools_agent.config"):
        settings = Settings.from_env()

    assert settings.log_level == "INFO"
    assert "Invalid LOG_LEVEL value: verbose" in caplog.text
