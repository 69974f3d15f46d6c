"""
Metrics API endpoint for observability.

Provides:
- Summary statistics for metrics
- Recent events from the in-memory buffer
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from cryptofolio.core.metrics import metrics

router = APIRouter()


class MetricsSummary(BaseModel):
    """Summary of metrics over a time period."""
    period_hours: int
    total_events: int
    by_category: dict
    by_event: dict
    price_sources: dict
    ticks_completed: int
    ticks_skipped: int
    ticks_failed: int
    provider_failures: int
    persistence_retries: int


class MetricEventResponse(BaseModel):
    """Single metric event for API response."""
    timestamp: str
    category: str
    event_type: str
    value: float
    metadata: dict


@router.get("/summary", response_model=MetricsSummary)
async def get_metrics_summary(
    hours: int = Query(default=24, ge=1, le=168, description="Hours of history to include")
) -> MetricsSummary:
    """
    Get aggregated summary of recent metrics.

    Returns counts for oracle, tick and persistence events.
    """
    summary = metrics.get_summary(hours=hours)
    return MetricsSummary(**summary)


@router.get("/events", response_model=List[MetricEventResponse])
async def get_recent_events(
    category: Optional[str] = Query(default=None, description="Filter by category"),
    event_type: Optional[str] = Query(default=None, description="Filter by event type"),
    limit: int = Query(default=100, ge=1, le=1000, description="Max events to return"),
    hours: int = Query(default=24, ge=1, le=168, description="Hours of history")
) -> List[MetricEventResponse]:
    """
    Get recent metric events with optional filtering, newest first.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)

    events = []
    for event in reversed(metrics.get_buffer()):
        if event.timestamp < cutoff:
            continue
        if category and event.category != category:
            continue
        if event_type and event.event_type != event_type:
            continue
        events.append(MetricEventResponse(**event.to_dict()))
        if len(events) >= limit:
            break

    return events
