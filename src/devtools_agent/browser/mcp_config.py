from __future__ import annotations

from typing import Any

from ..config import Settings

SERVER_NAME = "chrome-devtools"
SERVER_PACKAGE = "chrome-devtools-mcp@latest"


def configure_mcp(settings: Settings) -> dict[str, Any]:
    """Build the ``MCPClient`` config launching chrome-devtools-mcp against a running browser."""

    return {
        "mcpServers": {
            SERVER_NAME: {
                "command": "npx",
                "args": ["-y", SERVER_PACKAGE, f"--browserUrl={settings.chrome_mcp_url}"],
                "env": {
                    "MCP_LAUNCH_TIMEOUT": str(settings.mcp_launch_timeout_ms),
                    "MCP_CONNECT_TIMEOUT": str(settings.mcp_connect_timeout_ms),
                },
            }
        }
    }
