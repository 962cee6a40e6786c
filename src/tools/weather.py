"""
Weather tool backed by mock data. Read-only, so it runs without approval.
"""

from __future__ import annotations

import json

from datetime import UTC, datetime
from typing import Any

from models.tool_models import ToolCategory, ToolDescriptor
from tools.base import ToolDefinition, ToolExecutor, require_string

_UNITS = ("celsius", "fahrenheit")


def build_weather(config: dict[str, Any]) -> ToolExecutor:
    async def execute(args: dict[str, Any]) -> str:
        location = require_string(args, "location")
        unit = args.get("unit") or "celsius"
        if unit not in _UNITS:
            raise ValueError(f"unit must be one of {list(_UNITS)}")

        data = {
            "location": location,
            "temperature": "72°F" if unit == "fahrenheit" else "22°C",
            "condition": "Partly cloudy",
            "humidity": "65%",
            "windSpeed": "8 km/h",
            "timestamp": datetime.now(UTC).isoformat(),
        }
        return json.dumps(
            {"success": True, "data": data, "message": f"Weather information for {location}"},
            ensure_ascii=False,
        )

    return execute


DEFINITION = ToolDefinition(
    descriptor=ToolDescriptor(
        id="internal:get_weather",
        name="get_weather",
        display_name="Weather Information",
        description="Get current weather information for a specific location",
        category=ToolCategory.UTILITY,
        tags=("weather", "location", "temperature"),
        requires_approval=False,
        input_schema={
            "type": "object",
            "properties": {
                "location": {"type": "string", "description": "The city or location to get weather for"},
                "unit": {
                    "type": "string",
                    "enum": list(_UNITS),
                    "default": "celsius",
                    "description": "Temperature unit",
                },
            },
            "required": ["location"],
        },
    ),
    factory=build_weather,
)
