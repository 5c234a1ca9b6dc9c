from __future__ import annotations

import pytest

ENV_VARIABLES = (
    "SILICONFLOW_API_KEY",
    "OPENAI_API_KEY",
    "LLM_API_KEY",
    "MODEL_NAME",
    "LLM_BASE_URL",
    "LLM_TIMEOUT",
    "LLM_MAX_RETRIES",
    "AGENT_MAX_STEPS",
    "AGENT_TIMEOUT_MS",
    "MAX_EXECUTION_TIME",
    "CHROME_MCP_URL",
    "MCP_LAUNCH_TIMEOUT",
    "MCP_CONNECT_TIMEOUT",
    "LOG_LEVEL",
    "LOG_DIR",
    "TASK_FILE",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARIABLES:
        monkeypatch.delenv(name, raising=False)
