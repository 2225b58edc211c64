"""
backend/nailbook/services/events.py

Event emitter: buffers booking events and pushes them to a Redis queue for
consumption by the notification workers.

Queue:
- events:p2p: per-booking notifications (created, synced, released, ...)

The emitter is created in the app lifespan and stored on ``app.state``;
request handlers get it through ``get_events``, which flushes at the end of
the request.
"""

import json
import logging
import threading
import time

from fastapi import Request

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


class EventEmitter:
    def __init__(self, redis, queue: str = P2P_QUEUE, max_buffer: int = 100):
        self.redis = redis
        self.queue = queue
        self.max_buffer = max_buffer
        self._buffer: list[str] = []
        self._lock = threading.Lock()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        self._started = True
        logger.info(f"EventEmitter started → {self.queue}")

    def emit(self, event_type: str, payload: dict) -> None:
        event = {
            "type": event_type,
            **payload,
            "ts": int(time.time()),
        }
        with self._lock:
            self._buffer.append(json.dumps(event))
            full = len(self._buffer) >= self.max_buffer
        logger.info(f"Event queued: {event_type}")
        if full:
            self.flush()

    def flush(self) -> int:
        """Push buffered events in one pipeline. Returns number pushed."""
        with self._lock:
            if not self._buffer:
                return 0
            pending, self._buffer = self._buffer, []
        try:
            pipe = self.redis.pipeline()
            for raw in pending:
                pipe.rpush(self.queue, raw)
            pipe.execute()
        except Exception as e:
            logger.error(f"Failed to push {len(pending)} events to {self.queue}: {e}")
            return 0
        logger.info(f"Events flushed: {len(pending)} → {self.queue}")
        return len(pending)

    def stop(self) -> None:
        self.flush()
        self._started = False
        logger.info("EventEmitter stopped")


# Dependency for FastAPI
def get_events(request: Request):
    emitter: EventEmitter = request.app.state.events
    try:
        yield emitter
    finally:
        emitter.flush()
