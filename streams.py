"""
Server-sent event fan-out for the reviews, gallery and products pages.

Each Broadcaster owns its subscribers. Every subscriber has a bounded queue;
when a slow client lets it fill up, the oldest pending message is dropped so
publishing never waits on any one connection. Nothing is persisted or
replayed: a client that reconnects only sees events published after it
subscribed.
"""
import asyncio
import json
import threading
from typing import AsyncIterator, Awaitable, Callable, Optional, Set

import structlog
from fastapi import Request
from fastapi.encoders import jsonable_encoder

logger = structlog.get_logger(__name__)

PING = ": ping\n\n"
HEARTBEAT = 'data: {"type":"heartbeat"}\n\n'


def format_event(data, event: Optional[str] = None) -> str:
    payload = json.dumps(jsonable_encoder(data), separators=(",", ":"))
    if event:
        return f"event: {event}\ndata: {payload}\n\n"
    return f"data: {payload}\n\n"


class Subscriber:
    def __init__(self, loop: asyncio.AbstractEventLoop, max_queue: int):
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self.dropped = 0

    def offer(self, message: str) -> None:
        # runs on the subscriber's loop
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait(message)


class Broadcaster:
    def __init__(self, name: str, heartbeat_seconds: float = 30.0, heartbeat: str = HEARTBEAT, max_queue: int = 32):
        self.name = name
        self.heartbeat_seconds = heartbeat_seconds
        self.heartbeat = heartbeat
        self.max_queue = max_queue
        self._subscribers: Set[Subscriber] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscriber:
        subscriber = Subscriber(asyncio.get_running_loop(), self.max_queue)
        with self._lock:
            self._subscribers.add(subscriber)
        logger.debug("stream_client_connected", stream=self.name, open=len(self._subscribers))
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.discard(subscriber)
        logger.debug("stream_client_left", stream=self.name, open=len(self._subscribers))

    def publish(self, data, event: Optional[str] = None) -> int:
        """Queue one event for every connected client. Safe to call from worker threads."""
        message = format_event(data, event)
        with self._lock:
            subscribers = list(self._subscribers)
        delivered = 0
        for subscriber in subscribers:
            try:
                subscriber.loop.call_soon_threadsafe(subscriber.offer, message)
                delivered += 1
            except RuntimeError:
                # loop already closed
                self.unsubscribe(subscriber)
        return delivered

    async def stream(self, first_message: str,
                     is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None) -> AsyncIterator[str]:
        subscriber = self.subscribe()
        try:
            yield first_message
            while True:
                if is_disconnected is not None and await is_disconnected():
                    break
                try:
                    message = await asyncio.wait_for(subscriber.queue.get(), timeout=self.heartbeat_seconds)
                except asyncio.TimeoutError:
                    message = self.heartbeat
                yield message
        finally:
            self.unsubscribe(subscriber)


SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_broadcaster(name: str):
    """Dependency returning the broadcaster stored as `app.state.<name>_stream`."""

    def dependency(request: Request) -> Broadcaster:
        return getattr(request.app.state, f"{name}_stream")

    return dependency
