"""Branding constants for terminal output."""

from __future__ import annotations

BRAND_NAME: str = "ARM"
ASCII_LOGO_LINES: tuple[str, ...] = (
    ">_ ARM CACHE",
    "     // registry cache for AI rulesets",
)
STATS_TITLE: str = "Cache statistics"
CLI_DESCRIPTION: str = "\n".join((*ASCII_LOGO_LINES, "", f"{BRAND_NAME} registry cache maintenance"))
