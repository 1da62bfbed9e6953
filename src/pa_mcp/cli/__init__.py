"""Command-line interface for personal-assistant-mcp."""
