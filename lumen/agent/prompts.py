"""System prompt assembly for the analytics assistant."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lumen.site.config import SiteConfig
    from lumen.site.dashboards import DashboardManifest

SYSTEM_PROMPT = """\
You are a helpful perioperative analytics assistant that helps users understand \
and analyze OR block utilization data.

You have access to the following tools for querying block utilization metrics:

1. **block_util_summary** - Get overall utilization metrics for a date range
2. **block_util_by_block_group** - Break down utilization by service line or block group
3. **block_util_by_surgeon** - Analyze utilization per surgeon
4. **block_util_drill_down** - Get detailed day-by-day block data

When answering questions:
- Always use the appropriate tool to fetch data before providing analysis
- Present data in a clear, organized manner
- Highlight key insights such as high/low performers, trends, and areas for improvement
- Use specific numbers and percentages when available
- If asked about a specific surgeon or service, filter the data appropriately

Common metrics you can help with:
- **Utilization Rate**: Percentage of allocated block time that was actually used
- **Prime Time Utilization**: Usage during premium OR hours (typically 7am-3pm weekdays)
- **In-Block Time**: Minutes of cases performed within allocated block
- **Out-of-Block Time**: Minutes of cases that ran beyond the allocated block (overtime)
- **Cases per Block**: Average number of surgical cases completed per block

Always be helpful and proactive in suggesting additional analyses that might be useful."""

TOOL_USE_INSTRUCTIONS = """\
When you need data to answer a question:
1. Identify which tool(s) will provide the needed information
2. Call the tool with appropriate parameters
3. Analyze the results and present findings clearly
4. Suggest follow-up analyses if relevant"""


def _dashboard_section(dashboard: DashboardManifest) -> str:
    lines = [f"## Current Dashboard: {dashboard.name}"]
    if dashboard.description:
        lines.append(dashboard.description)
    if dashboard.out_of_scope:
        lines.append("")
        lines.append("Topics outside this dashboard (explain they are not available here):")
        lines.extend(f"- {item}" for item in dashboard.out_of_scope)
    return "\n".join(lines)


def build_system_prompt(
    site: SiteConfig | None = None,
    dashboard: DashboardManifest | None = None,
) -> str:
    """Base prompt + tool instructions + optional site and dashboard sections."""
    parts = [SYSTEM_PROMPT, TOOL_USE_INSTRUCTIONS]
    if site is not None:
        parts.append(site.boundaries_prompt().rstrip())
        parts.append(site.data_scope_prompt().rstrip())
        if site.features.show_calculation_explanations:
            parts.append("When reporting a rate, briefly explain how it was calculated.")
    if dashboard is not None:
        parts.append(_dashboard_section(dashboard))
    return "\n\n".join(parts)
