"""Cross-module type aliases."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

type JsonScalar = str | int | float | bool | None
type JsonValue = JsonScalar | list["JsonValue"] | dict[str, "JsonValue"]
type JsonObject = dict[str, JsonValue]

type Clock = Callable[[], datetime]
