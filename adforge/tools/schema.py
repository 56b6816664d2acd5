"""Small helpers for writing tool parameter schemas."""

from typing import Any, Optional


def obj(properties: dict[str, Any], required: Optional[list[str]] = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = list(required)
    return schema


def string(description: str, enum: Optional[list[str]] = None) -> dict[str, Any]:
    prop: dict[str, Any] = {"type": "string", "description": description}
    if enum:
        prop["enum"] = list(enum)
    return prop


def number(description: str) -> dict[str, Any]:
    return {"type": "number", "description": description}


def integer(description: str) -> dict[str, Any]:
    return {"type": "integer", "description": description}


def array(description: str, items: dict[str, Any]) -> dict[str, Any]:
    return {"type": "array", "description": description, "items": items}


DATE_START = {"type": "string", "description": "Start date (YYYY-MM-DD)"}
DATE_END = {"type": "string", "description": "End date (YYYY-MM-DD)"}
REASON = {"type": "string", "description": "Why this change is being made"}
