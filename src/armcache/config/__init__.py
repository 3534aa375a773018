"""Tool configuration for the ``armcache`` command line."""

from __future__ import annotations

from armcache.config.loader import load_tool_config
from armcache.config.model import ToolConfig

__all__ = [
    "ToolConfig",
    "load_tool_config",
]
