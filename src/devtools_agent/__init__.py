"""Command-line client driving a Chrome DevTools MCP browser agent."""

__version__ = "0.1.0"
