from __future__ import annotations

from .agent import BrowserAgent, run_agent_task
from .deadline import SettlementSlot, run_with_timeout
from .log_filter import TOKEN_DUPLICATED_MESSAGE, OutputFilterRegistry, suppress_output, with_log_filter

__all__ = [
    "BrowserAgent",
    "run_agent_task",
    "run_with_timeout",
    "SettlementSlot",
    "OutputFilterRegistry",
    "suppress_output",
    "with_log_filter",
    "TOKEN_DUPLICATED_MESSAGE",
]
