from __future__ import annotations

from .mcp_config import SERVER_NAME, configure_mcp

__all__ = ["configure_mcp", "SERVER_NAME"]
