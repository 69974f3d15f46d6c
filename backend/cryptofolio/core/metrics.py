"""
Metrics emission system for observability.

Provides structured metrics for:
- Price oracle source selection and provider failures
- Tick lifecycle (completed, skipped, failed)
- Persistence retries on transient conflicts

Metrics are emitted to:
1. Python logging (immediate visibility)
2. Redis stream (when a client is attached; Celery workers attach one at start)
3. In-memory buffer (API aggregation)
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

from cryptofolio.core.redis import StreamNames

logger = logging.getLogger(__name__)


@dataclass
class MetricEvent:
    """Structured metric event."""
    timestamp: datetime
    category: str          # "oracle", "tick", "persistence"
    event_type: str        # "source_used", "skipped", "retry", etc.
    value: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "category": self.category,
            "event_type": self.event_type,
            "value": self.value,
            "metadata": self.metadata
        }


class MetricsEmitter:
    """
    Emit structured metrics to multiple destinations.

    Safe to share between the scheduler loop and request handlers.
    """

    # Category constants
    CATEGORY_ORACLE = "oracle"
    CATEGORY_TICK = "tick"
    CATEGORY_PERSISTENCE = "persistence"

    STREAM_NAME = StreamNames.METRICS

    def __init__(self, redis_client=None, buffer_size: int = 1000):
        """
        Initialize metrics emitter.

        Args:
            redis_client: Optional sync Redis client for stream publishing
            buffer_size: Max events to keep in memory buffer
        """
        self.redis = redis_client
        self.buffer_size = buffer_size
        self._buffer: List[MetricEvent] = []
        self._enabled = True

    def set_redis(self, redis_client) -> None:
        """Set Redis client (for lazy initialization)."""
        self.redis = redis_client

    def enable(self) -> None:
        """Enable metrics emission."""
        self._enabled = True

    def disable(self) -> None:
        """Disable metrics emission (for testing)."""
        self._enabled = False

    def emit(
        self,
        category: str,
        event_type: str,
        value: float,
        metadata: dict = None
    ) -> Optional[MetricEvent]:
        """
        Emit a metric event.

        Args:
            category: Event category (oracle, tick, persistence)
            event_type: Specific event type within category
            value: Numeric value (1.0/0.0 for boolean, actual value for numeric)
            metadata: Additional context as key-value pairs

        Returns:
            The emitted MetricEvent, or None when disabled
        """
        if not self._enabled:
            return None

        event = MetricEvent(
            timestamp=datetime.now(timezone.utc),
            category=category,
            event_type=event_type,
            value=value,
            metadata=metadata or {}
        )

        meta_str = f" {metadata}" if metadata else ""
        logger.info(f"METRIC [{category}/{event_type}] value={value}{meta_str}")

        self._buffer.append(event)
        if len(self._buffer) > self.buffer_size:
            self._buffer = self._buffer[-self.buffer_size:]

        if self.redis:
            try:
                self.redis.xadd(self.STREAM_NAME, {
                    "data": json.dumps(event.to_dict())
                })
            except Exception as e:
                logger.warning(f"Failed to publish metric to Redis: {e}")

        return event

    # =========================================================================
    # Convenience methods
    # =========================================================================

    # Oracle metrics
    def price_source_used(self, source: str) -> MetricEvent:
        """Record which provider produced the tick's prices."""
        return self.emit(
            self.CATEGORY_ORACLE, "source_used", 1.0,
            metadata={"source": source}
        )

    def provider_failed(self, provider: str, error: str) -> MetricEvent:
        """Record a price provider failure that triggered fallback."""
        return self.emit(
            self.CATEGORY_ORACLE, "provider_failed", 1.0,
            metadata={"provider": provider, "error": error}
        )

    # Tick metrics
    def tick_completed(self, trigger: str, ending_nav: float, growth_percent: float,
                       duration_ms: float) -> MetricEvent:
        """Record a successful tick."""
        return self.emit(
            self.CATEGORY_TICK, "completed", ending_nav,
            metadata={
                "trigger": trigger,
                "growth_percent": round(growth_percent, 6),
                "duration_ms": round(duration_ms, 2)
            }
        )

    def tick_skipped(self, trigger: str, reason: str) -> MetricEvent:
        """Record a firing skipped by the re-entrance guard."""
        return self.emit(
            self.CATEGORY_TICK, "skipped", 1.0,
            metadata={"trigger": trigger, "reason": reason}
        )

    def tick_failed(self, trigger: str, error: str) -> MetricEvent:
        """Record a tick that raised."""
        return self.emit(
            self.CATEGORY_TICK, "failed", 1.0,
            metadata={"trigger": trigger, "error": error}
        )

    # Persistence metrics
    def persistence_retry(self, label: str, attempt: int, error: str) -> MetricEvent:
        """Record a transient conflict that caused a retry."""
        return self.emit(
            self.CATEGORY_PERSISTENCE, "retry", attempt,
            metadata={"unit": label, "error": error}
        )

    # =========================================================================
    # Aggregation methods
    # =========================================================================

    def get_buffer(self) -> List[MetricEvent]:
        """Get buffered events (for API)."""
        return list(self._buffer)

    def get_summary(self, hours: int = 24) -> dict:
        """
        Get aggregated summary of recent metrics.

        Args:
            hours: How many hours of data to include

        Returns:
            Dictionary with aggregated metrics
        """
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        recent = [e for e in self._buffer if e.timestamp >= cutoff]

        by_category: Dict[str, int] = {}
        by_event: Dict[str, int] = {}
        by_source: Dict[str, int] = {}

        for event in recent:
            by_category[event.category] = by_category.get(event.category, 0) + 1
            key = f"{event.category}/{event.event_type}"
            by_event[key] = by_event.get(key, 0) + 1

            if key == "oracle/source_used":
                source = event.metadata.get("source", "unknown")
                by_source[source] = by_source.get(source, 0) + 1

        return {
            "period_hours": hours,
            "total_events": len(recent),
            "by_category": by_category,
            "by_event": by_event,
            "price_sources": by_source,
            "ticks_completed": by_event.get("tick/completed", 0),
            "ticks_skipped": by_event.get("tick/skipped", 0),
            "ticks_failed": by_event.get("tick/failed", 0),
            "provider_failures": by_event.get("oracle/provider_failed", 0),
            "persistence_retries": by_event.get("persistence/retry", 0),
        }

    def clear_buffer(self) -> int:
        """Clear buffer and return count of cleared events."""
        count = len(self._buffer)
        self._buffer = []
        return count


# Global singleton instance
metrics = MetricsEmitter()
