from __future__ import annotations

import logging
from typing import Any, Protocol

from mcp_use import MCPAgent, MCPClient

from ..errors import DeadlineExceeded
from .deadline import run_with_timeout
from .log_filter import TOKEN_DUPLICATED_MESSAGE, with_log_filter

logger = logging.getLogger(__name__)


class AgentRunner(Protocol):
    async def run(self, task: str, max_steps: int | None = None) -> Any: ...


class BrowserAgent:
    """Thin wrapper over ``MCPAgent`` carrying a default step limit."""

    def __init__(self, llm: Any, client: MCPClient, max_steps: int = 10, **agent_options: Any) -> None:
        self._agent = MCPAgent(llm=llm, client=client, max_steps=max_steps, **agent_options)
        self.max_steps = max_steps

    async def run(self, task: str, max_steps: int | None = None) -> Any:
        steps = max_steps or self.max_steps
        return await self._agent.run(task, max_steps=steps)

    def metadata(self) -> dict[str, Any]:
        getter = getattr(self._agent, "get_metadata", None)
        return getter() if callable(getter) else {}

    def tags(self) -> list[str]:
        getter = getattr(self._agent, "get_tags", None)
        return getter() if callable(getter) else []


async def run_agent_task(agent: AgentRunner, task: str, *, max_steps: int, timeout_ms: float) -> Any:
    """Run ``task`` with duplicate-token noise suppressed and a hard deadline."""

    def on_timeout(error: DeadlineExceeded) -> None:
        logger.error(str(error))

    return await with_log_filter(
        TOKEN_DUPLICATED_MESSAGE,
        lambda: run_with_timeout(
            lambda: agent.run(task, max_steps),
            timeout_ms,
            timeout_message="Agent run timeout",
            error_name="AgentTimeoutError",
            on_timeout=on_timeout,
        ),
    )
