"""
Monitors - SDK event dispatch and metrics collection
"""

import logging
import time
from collections import defaultdict, deque
from typing import Any, Dict, Optional

from .models import EventHandler, SDKEvent

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def emit_event(handler: Optional[EventHandler], event_type: str,
               data: Optional[Dict[str, Any]] = None):
    """Deliver an event to the configured handler; handler failures are logged and dropped"""
    if handler is None:
        return

    event = SDKEvent(type=event_type, timestamp_ms=now_ms(), data=data)
    try:
        handler(event)
    except Exception as e:
        logger.warning(f"⚠️ Event handler failed for {event_type}: {e}")


class SystemMonitor:
    """Collects SDK events and request metrics"""

    def __init__(self, max_history: int = 1000):
        self.max_history = max_history
        self.metrics_history = deque(maxlen=max_history)
        self.events = deque(maxlen=max_history)
        self.event_counts: Dict[str, int] = defaultdict(int)
        self.start_time = time.time()

    def handle_event(self, event: SDKEvent):
        """Event handler suitable for passing to the client"""
        self.events.append(event)
        self.event_counts[event.type] += 1

        if event.type == "error":
            logger.warning(f"Alert [error]: {event.data}")
        elif event.type == "provider_switch":
            logger.info(f"🔀 Provider switch: {event.data}")

    def record_metric(self, metric_name: str, value: float,
                      tags: Optional[Dict[str, str]] = None):
        self.metrics_history.append({
            "name": metric_name,
            "value": value,
            "tags": tags or {},
            "timestamp": time.time()
        })

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics summary (last 5 minutes)"""
        current_time = time.time()
        recent_cutoff = current_time - 300
        recent_metrics = [m for m in self.metrics_history if m["timestamp"] > recent_cutoff]

        metric_groups = defaultdict(list)
        for metric in recent_metrics:
            metric_groups[metric["name"]].append(metric["value"])

        metrics_summary = {}
        for name, values in metric_groups.items():
            metrics_summary[name] = {
                "count": len(values),
                "average": sum(values) / len(values),
                "min": min(values),
                "max": max(values),
                "latest": values[-1]
            }

        return {
            "uptime": current_time - self.start_time,
            "total_metrics": len(self.metrics_history),
            "recent_metrics": len(recent_metrics),
            "event_counts": dict(self.event_counts),
            "recent_events": [e.model_dump() for e in list(self.events)[-10:]],
            "metrics_summary": metrics_summary,
        }

    def cleanup(self):
        self.metrics_history.clear()
        self.events.clear()
        self.event_counts.clear()
