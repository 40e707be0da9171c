"""In-process Server-Sent Events fan-out for the table list.

Every subscriber owns an ``asyncio.Queue`` bound to the event loop that
serves its stream. :meth:`TableBroadcaster.publish` may be called from the
threadpool that runs sync route handlers, so frames are handed to each loop
with ``call_soon_threadsafe``. State lives in this process only.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Any, List, Optional, Tuple

from fastapi.encoders import jsonable_encoder
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import serialize_doc

logger = logging.getLogger(__name__)

KEEPALIVE_INTERVAL = 15
QUEUE_SIZE = 100


def sse_frame(payload: Any) -> str:
    return f"data: {json.dumps(jsonable_encoder(payload))}\n\n"


class TableBroadcaster:
    def __init__(self, queue_size: int = QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscribers: List[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []
        self._lock = threading.Lock()

    def subscribe(self) -> asyncio.Queue:
        """Register a queue on the running loop. Call from async code."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        loop = asyncio.get_running_loop()
        with self._lock:
            self._subscribers.append((loop, queue))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        with self._lock:
            self._subscribers = [s for s in self._subscribers if s[1] is not queue]

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, payload: Any) -> int:
        """Queue one frame for every subscriber; returns how many were reached."""
        frame = sse_frame(payload)
        with self._lock:
            targets = list(self._subscribers)
        sent = 0
        for loop, queue in targets:
            if loop.is_closed():
                self.unsubscribe(queue)
                continue
            loop.call_soon_threadsafe(self._offer, queue, frame)
            sent += 1
        return sent

    @staticmethod
    def _offer(queue: asyncio.Queue, frame: str) -> None:
        try:
            queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("table stream subscriber is lagging, frame dropped")

    async def stream(self, queue: asyncio.Queue, is_disconnected=None, keepalive: float = KEEPALIVE_INTERVAL):
        """Yield frames from ``queue`` until the client goes away."""
        try:
            while True:
                if is_disconnected is not None and await is_disconnected():
                    break
                try:
                    frame: Optional[str] = await asyncio.wait_for(queue.get(), timeout=keepalive)
                except asyncio.TimeoutError:
                    frame = ":keepalive\n\n"
                yield frame
        finally:
            self.unsubscribe(queue)


broadcaster = TableBroadcaster()


def publish_tables(db: Database) -> None:
    """Re-read every table and push the list to connected dashboards."""
    try:
        tables = [serialize_doc(t) for t in db["table"].find({}).sort("number", 1)]
    except PyMongoError:
        logger.exception("could not load tables for broadcast")
        return
    broadcaster.publish(tables)
