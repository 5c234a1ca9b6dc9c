from __future__ import annotations

import asyncio
import logging
import sys
import uuid
from pathlib import Path
from typing import Any, List, Optional

import typer
from mcp_use import MCPClient

from .browser.mcp_config import configure_mcp
from .config import Settings
from .core.agent import BrowserAgent, run_agent_task
from .core.deadline import run_with_timeout
from .errors import AgentError, DeadlineExceeded, MissingTaskError
from .llm import create_llm
from .logging import set_run_context, setup_logging
from .tasks import resolve_task

logger = logging.getLogger(__name__)

app = typer.Typer()

USAGE = (
    'Usage: devtools-agent "<task instruction>"\n'
    "Or:    devtools-agent --file tasks/task.json\n"
    'Example: devtools-agent "Please navigate to https://www.example.com"'
)

SHUTDOWN_GRACE_SECONDS = 1.0

TIMEOUT_LABELS = {
    "AgentTimeoutError": "agent timed out",
    "LLMTimeoutError": "LLM timed out",
}


def main() -> None:
    if len(sys.argv) > 1 and sys.argv[1] == "run":
        del sys.argv[1]
    app()


def describe_failure(error: BaseException) -> str:
    if isinstance(error, DeadlineExceeded):
        return f"Program execution failed: {TIMEOUT_LABELS.get(error.kind, 'operation timed out')}"
    return "Program execution failed"


@app.command()
def run(
    words: Optional[List[str]] = typer.Argument(None, help="Task instruction, or a single .json/.txt task file"),
    file: Optional[Path] = typer.Option(None, "--file", help="Task file (.json with a `task` field, or .txt)"),
) -> None:
    settings = Settings.from_env()
    settings.ensure_directories()
    setup_logging(settings.log_level, settings.log_dir / "agent.log")

    try:
        task = resolve_task(words or [], file, default_file=settings.task_file)
    except MissingTaskError:
        typer.echo(USAGE)
        raise typer.Exit(code=1)
    except AgentError as exc:
        logger.error("Program execution failed: %s", exc)
        raise typer.Exit(code=1) from exc

    try:
        _execute(task, settings)
    except DeadlineExceeded as exc:
        logger.error("%s: %s", describe_failure(exc), exc)
        raise typer.Exit(code=1) from exc
    except Exception as exc:
        logger.exception(describe_failure(exc))
        raise typer.Exit(code=1) from exc

    logger.info("Program completed successfully")


def _execute(task: str, settings: Settings) -> Any:
    """Run the task on a fresh event loop under the overall execution deadline.

    On the way out pending tasks are cancelled and given ``SHUTDOWN_GRACE_SECONDS``
    to finish. Tasks still running after that are abandoned so a stuck MCP
    shutdown cannot hold the process past its deadline.
    """

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(
            run_with_timeout(
                lambda: _run(task, settings),
                settings.max_execution_ms,
                timeout_message="Execution timeout, force exit",
                error_name="ExecutionTimeoutError",
            )
        )
    finally:
        _shutdown(loop)


def _shutdown(loop: asyncio.AbstractEventLoop) -> None:
    try:
        pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            done, stuck = loop.run_until_complete(asyncio.wait(pending, timeout=SHUTDOWN_GRACE_SECONDS))
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.debug("Task failed during shutdown", exc_info=task.exception())
            if stuck:
                logger.warning("Abandoning %d task(s) still running at exit", len(stuck))
        loop.run_until_complete(loop.shutdown_asyncgens())
    finally:
        loop.close()


async def _run(task: str, settings: Settings) -> Any:
    api_key = settings.require_api_key()
    set_run_context(run_id=str(uuid.uuid4()))

    client = MCPClient(config=configure_mcp(settings))
    try:
        llm = create_llm(settings, api_key=api_key)
        agent = BrowserAgent(llm=llm, client=client, max_steps=settings.agent_max_steps)
        logger.info("Task instruction: %s", task)
        result = await run_agent_task(
            agent,
            task,
            max_steps=settings.agent_max_steps,
            timeout_ms=settings.agent_timeout_ms,
        )
        logger.info("Task result: %s", result)
        return result
    finally:
        try:
            await client.close_all_sessions()
            logger.info("MCP sessions closed")
        except Exception:
            logger.exception("Error during cleanup")
