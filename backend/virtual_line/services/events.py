"""
backend/virtual_line/services/events.py

Event emitter: pushes events to Redis queues for live screens
(driver slot pickers, yard boards).

Two queues:
- events:broadcast — slots_changed for a site/day (everyone watching that day)
- events:p2p — reservation lifecycle events for a single reservation

Best-effort: a Redis failure is logged and never fails the operation
that emitted the event. Emit only after the transaction has committed.
"""

import json
import time
import logging

from ..redis_client import redis_client

logger = logging.getLogger(__name__)

BROADCAST_QUEUE = "events:broadcast"
P2P_QUEUE = "events:p2p"


def _push(queue: str, event_type: str, payload: dict) -> None:
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis_client.rpush(queue, json.dumps(event))
        logger.debug(f"Event emitted: {event_type} → {queue}")
    except Exception as e:
        logger.error(f"Failed to emit event {event_type}: {e}")


def emit_event(event_type: str, payload: dict) -> None:
    """Emit a p2p event (single reservation)."""
    _push(P2P_QUEUE, event_type, payload)


def emit_slots_changed(site_id: int, date: str) -> None:
    """Tell every watcher of site/date to refresh its slot list."""
    _push(BROADCAST_QUEUE, "slots_changed", {"site_id": site_id, "date": date})
