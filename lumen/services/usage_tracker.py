"""Track API usage and estimated cost of agent runs.

Stores in-memory for now; the newest MAX_RECORDS entries are kept.
Cost uses Claude Sonnet 4.5 on-demand Bedrock pricing.
"""

from __future__ import annotations

import uuid
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

INPUT_COST_PER_MILLION = 3.0
OUTPUT_COST_PER_MILLION = 15.0


def calculate_cost(input_tokens: int, output_tokens: int) -> float:
    """Estimated USD cost for a token count."""
    input_cost = (input_tokens / 1_000_000) * INPUT_COST_PER_MILLION
    output_cost = (output_tokens / 1_000_000) * OUTPUT_COST_PER_MILLION
    return input_cost + output_cost


@dataclass
class ApiUsageLog:
    """Single usage record for one /chat request."""

    id: str
    request_id: str
    timestamp: datetime
    dashboard: str | None
    message_length: int
    tool_call_count: int
    input_tokens: int
    output_tokens: int
    total_tokens: int
    estimated_cost: float
    iterations: int
    duration_ms: int
    status: Literal["success", "error"]
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class UsageStats:
    total_cost: float = 0.0
    cost_today: float = 0.0
    cost_this_week: float = 0.0
    cost_this_month: float = 0.0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    avg_response_time_ms: float = 0.0


@dataclass
class DailyCost:
    date: str
    cost: float = 0.0
    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class DashboardUsage:
    dashboard: str
    total_calls: int = 0
    total_cost: float = 0.0
    total_tokens: int = 0


class UsageTracker:
    """Bounded in-memory usage log with aggregate views."""

    MAX_RECORDS = 10000

    def __init__(self, max_records: int | None = None) -> None:
        self._logs: deque[ApiUsageLog] = deque(maxlen=max_records or self.MAX_RECORDS)

    def log_usage(
        self,
        *,
        request_id: str,
        status: Literal["success", "error"],
        dashboard: str | None = None,
        message_length: int = 0,
        tool_call_count: int = 0,
        input_tokens: int = 0,
        output_tokens: int = 0,
        total_tokens: int | None = None,
        iterations: int = 0,
        duration_ms: int = 0,
        error_message: str | None = None,
        timestamp: datetime | None = None,
    ) -> ApiUsageLog:
        """Record one request and return the stored entry."""
        entry = ApiUsageLog(
            id=str(uuid.uuid4()),
            request_id=request_id,
            timestamp=timestamp or datetime.now(timezone.utc),
            dashboard=dashboard,
            message_length=message_length,
            tool_call_count=tool_call_count,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens if total_tokens is not None else input_tokens + output_tokens,
            estimated_cost=calculate_cost(input_tokens, output_tokens),
            iterations=iterations,
            duration_ms=duration_ms,
            status=status,
            error_message=error_message,
        )
        self._logs.append(entry)
        return entry

    def get_usage_stats(self) -> UsageStats:
        now = datetime.now(timezone.utc)
        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        week_ago = now - timedelta(days=7)
        month_start = today_start.replace(day=1)

        stats = UsageStats(total_calls=len(self._logs))
        total_response_time = 0
        for log in self._logs:
            stats.total_cost += log.estimated_cost
            stats.total_input_tokens += log.input_tokens
            stats.total_output_tokens += log.output_tokens
            total_response_time += log.duration_ms

            if log.status == "success":
                stats.successful_calls += 1
            else:
                stats.failed_calls += 1

            if log.timestamp >= today_start:
                stats.cost_today += log.estimated_cost
            if log.timestamp >= week_ago:
                stats.cost_this_week += log.estimated_cost
            if log.timestamp >= month_start:
                stats.cost_this_month += log.estimated_cost

        if self._logs:
            stats.avg_response_time_ms = total_response_time / len(self._logs)
        return stats

    def get_daily_costs(self, days: int = 30) -> list[DailyCost]:
        """Per-day totals for the last ``days`` days, newest first."""
        today = datetime.now(timezone.utc).date()
        daily: dict[str, DailyCost] = {}
        for i in range(days):
            day = (today - timedelta(days=i)).isoformat()
            daily[day] = DailyCost(date=day)

        for log in self._logs:
            entry = daily.get(log.timestamp.date().isoformat())
            if entry is not None:
                entry.cost += log.estimated_cost
                entry.calls += 1
                entry.input_tokens += log.input_tokens
                entry.output_tokens += log.output_tokens

        return sorted(daily.values(), key=lambda d: d.date, reverse=True)

    def get_dashboard_usage(self) -> list[DashboardUsage]:
        """Totals per dashboard, most expensive first."""
        usage: dict[str, DashboardUsage] = {}
        for log in self._logs:
            name = log.dashboard or "unknown"
            entry = usage.setdefault(name, DashboardUsage(dashboard=name))
            entry.total_calls += 1
            entry.total_cost += log.estimated_cost
            entry.total_tokens += log.total_tokens
        return sorted(usage.values(), key=lambda u: u.total_cost, reverse=True)

    def get_recent_logs(self, limit: int = 100) -> list[ApiUsageLog]:
        if limit <= 0:
            return []
        return list(self._logs)[-limit:][::-1]

    def get_recent_errors(self, limit: int = 50) -> list[ApiUsageLog]:
        if limit <= 0:
            return []
        errors = [log for log in self._logs if log.status == "error"]
        return errors[-limit:][::-1]

    def __len__(self) -> int:
        return len(self._logs)
