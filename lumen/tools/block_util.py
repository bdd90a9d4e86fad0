"""OR block utilization tools.

Four read-only analytics tools over stubbed, realistic perioperative
data:
  - block_util_summary: overall utilization for a date range
  - block_util_by_block_group: breakdown per service line
  - block_util_by_surgeon: breakdown per surgeon
  - block_util_drill_down: day-by-day block detail

Each executor receives the validated tool input dict and returns a
JSON-serializable value (object or array).
"""

from __future__ import annotations

import logging
import random
from datetime import date, timedelta
from typing import Any

from lumen.agent.errors import ToolExecutionError
from lumen.agent.schemas import ToolDefinition
from lumen.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

_DATE_PROPS: dict[str, Any] = {
    "start_date": {"type": "string", "description": "Start date in YYYY-MM-DD format"},
    "end_date": {"type": "string", "description": "End date in YYYY-MM-DD format"},
}

_BLOCKGROUP_PROP = {
    "type": "string",
    "description": "Optional filter by block group (e.g., 'Orthopedics', 'Cardiac')",
}
_LOCATION_PROP = {
    "type": "string",
    "description": "Optional filter by location (e.g., 'Main OR', 'Ambulatory')",
}

# Totals match the summary tool: 248 blocks, 412 cases
_BLOCK_GROUPS: list[dict[str, Any]] = [
    {"blockgroup": "Orthopedics", "blocks": 52, "utilized_blocks": 48, "utilization_rate": 0.82, "cases": 108},
    {"blockgroup": "General Surgery", "blocks": 48, "utilized_blocks": 42, "utilization_rate": 0.74, "cases": 89},
    {"blockgroup": "Cardiac Surgery", "blocks": 36, "utilized_blocks": 32, "utilization_rate": 0.79, "cases": 58},
    {"blockgroup": "Neurosurgery", "blocks": 32, "utilized_blocks": 26, "utilization_rate": 0.71, "cases": 45},
    {"blockgroup": "Urology", "blocks": 28, "utilized_blocks": 22, "utilization_rate": 0.68, "cases": 48},
    {"blockgroup": "ENT", "blocks": 24, "utilized_blocks": 18, "utilization_rate": 0.62, "cases": 38},
    {"blockgroup": "Plastics", "blocks": 16, "utilized_blocks": 11, "utilization_rate": 0.58, "cases": 16},
    {"blockgroup": "Vascular", "blocks": 12, "utilized_blocks": 9, "utilization_rate": 0.65, "cases": 10},
]

_SURGEONS: list[dict[str, Any]] = [
    {"surgeon_name": "Dr. Sarah Chen", "blocks": 12, "utilized_blocks": 11, "utilization_rate": 0.92, "cases": 28, "avg_case_duration": 145},
    {"surgeon_name": "Dr. Michael Roberts", "blocks": 10, "utilized_blocks": 9, "utilization_rate": 0.9, "cases": 24, "avg_case_duration": 120},
    {"surgeon_name": "Dr. James Wilson", "blocks": 8, "utilized_blocks": 7, "utilization_rate": 0.88, "cases": 18, "avg_case_duration": 180},
    {"surgeon_name": "Dr. Emily Park", "blocks": 8, "utilized_blocks": 6, "utilization_rate": 0.75, "cases": 15, "avg_case_duration": 95},
    {"surgeon_name": "Dr. David Martinez", "blocks": 6, "utilized_blocks": 5, "utilization_rate": 0.83, "cases": 14, "avg_case_duration": 110},
    {"surgeon_name": "Dr. Lisa Thompson", "blocks": 6, "utilized_blocks": 4, "utilization_rate": 0.67, "cases": 10, "avg_case_duration": 135},
    {"surgeon_name": "Dr. Robert Kim", "blocks": 4, "utilized_blocks": 2, "utilization_rate": 0.5, "cases": 6, "avg_case_duration": 160},
    {"surgeon_name": "Dr. Jennifer Lee", "blocks": 4, "utilized_blocks": 3, "utilization_rate": 0.75, "cases": 8, "avg_case_duration": 88},
]

_SURGEONS_BY_BLOCKGROUP: dict[str, list[str]] = {
    "Orthopedics": ["Dr. Sarah Chen", "Dr. Michael Roberts"],
    "General Surgery": ["Dr. James Wilson", "Dr. Emily Park"],
    "Cardiac Surgery": ["Dr. David Martinez", "Dr. Lisa Thompson"],
    "Neurosurgery": ["Dr. Robert Kim", "Dr. Jennifer Lee"],
}


def _parse_date(value: str, field_name: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ToolExecutionError(f"{field_name} must be a YYYY-MM-DD date, got {value!r}") from None


def _date_range(params: dict[str, Any]) -> tuple[date, date]:
    start = _parse_date(params["start_date"], "start_date")
    end = _parse_date(params["end_date"], "end_date")
    if end < start:
        raise ToolExecutionError("end_date must not be earlier than start_date")
    return start, end


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


async def block_util_summary(params: dict[str, Any]) -> dict[str, Any]:
    logger.info("block_util_summary params=%s", params)
    _date_range(params)

    base_utilization = 0.78 if params.get("blockgroup") else 0.72
    location_modifier = 0.05 if params.get("location") == "Main OR" else 0.0

    return {
        "total_blocks": 248,
        "utilized_blocks": 186,
        "utilization_rate": round(base_utilization + location_modifier, 2),
        "prime_time_utilization": 0.81,
        "total_cases": 412,
        "avg_cases_per_block": 2.2,
    }


async def block_util_by_block_group(params: dict[str, Any]) -> list[dict[str, Any]]:
    logger.info("block_util_by_block_group params=%s", params)
    _date_range(params)
    return [dict(row) for row in _BLOCK_GROUPS]


async def block_util_by_surgeon(params: dict[str, Any]) -> list[dict[str, Any]]:
    logger.info("block_util_by_surgeon params=%s", params)
    _date_range(params)

    blockgroup = params.get("blockgroup")
    if blockgroup:
        names = _SURGEONS_BY_BLOCKGROUP.get(blockgroup, [])
        return [dict(s) for s in _SURGEONS if s["surgeon_name"] in names]
    return [dict(s) for s in _SURGEONS]


async def block_util_drill_down(
    params: dict[str, Any],
    rng: random.Random | None = None,
) -> list[dict[str, Any]]:
    logger.info("block_util_drill_down params=%s", params)
    start, end = _date_range(params)
    rng = rng or random.Random()

    rows: list[dict[str, Any]] = []
    current = start
    while current <= end:
        # Weekdays only
        if current.weekday() < 5:
            scheduled = rng.randint(2, 4)
            completed = scheduled - rng.randint(0, 1)
            rows.append({
                "date": current.isoformat(),
                "block_start": "07:30",
                "block_end": "15:30",
                "cases_scheduled": scheduled,
                "cases_completed": completed,
                "utilization_rate": round(0.6 + rng.random() * 0.35, 2),
                "in_block_time": int(360 + rng.random() * 120),
                "out_of_block_time": int(rng.random() * 60),
            })
        current += timedelta(days=1)
    return rows


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

BLOCK_UTIL_SUMMARY = ToolDefinition(
    name="block_util_summary",
    description=(
        "Returns overall block utilization metrics for the filtered date range. "
        "Use this to get a high-level view of OR block utilization including total "
        "blocks, utilized blocks, utilization rate, and case counts."
    ),
    input_schema={
        "type": "object",
        "properties": {**_DATE_PROPS, "blockgroup": _BLOCKGROUP_PROP, "location": _LOCATION_PROP},
        "required": ["start_date", "end_date"],
    },
)

BLOCK_UTIL_BY_BLOCK_GROUP = ToolDefinition(
    name="block_util_by_block_group",
    description=(
        "Breaks down block utilization by service line/block group. Use this to "
        "compare how different surgical services are using their allocated block time."
    ),
    input_schema={
        "type": "object",
        "properties": {**_DATE_PROPS, "location": _LOCATION_PROP},
        "required": ["start_date", "end_date"],
    },
)

BLOCK_UTIL_BY_SURGEON = ToolDefinition(
    name="block_util_by_surgeon",
    description=(
        "Shows utilization metrics per surgeon. Use this to analyze individual surgeon "
        "block usage, including their utilization rate, case counts, and average case duration."
    ),
    input_schema={
        "type": "object",
        "properties": {**_DATE_PROPS, "blockgroup": _BLOCKGROUP_PROP, "location": _LOCATION_PROP},
        "required": ["start_date", "end_date"],
    },
)

BLOCK_UTIL_DRILL_DOWN = ToolDefinition(
    name="block_util_drill_down",
    description=(
        "Detailed case-level data for a specific block or surgeon. Use this to get "
        "granular day-by-day block utilization details including scheduled vs completed "
        "cases, in-block time, and out-of-block time."
    ),
    input_schema={
        "type": "object",
        "properties": {
            **_DATE_PROPS,
            "surgeon": {"type": "string", "description": "Optional filter by surgeon name"},
            "blockgroup": {"type": "string", "description": "Optional filter by block group"},
        },
        "required": ["start_date", "end_date"],
    },
)


def register_block_util_tools(registry: ToolRegistry) -> None:
    """Register all block utilization tools with the registry."""
    registry.register(BLOCK_UTIL_SUMMARY, block_util_summary)
    registry.register(BLOCK_UTIL_BY_BLOCK_GROUP, block_util_by_block_group)
    registry.register(BLOCK_UTIL_BY_SURGEON, block_util_by_surgeon)
    registry.register(BLOCK_UTIL_DRILL_DOWN, block_util_drill_down)
