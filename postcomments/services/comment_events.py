"""
In-process fan-out of newly created comments to GraphQL subscribers.

Publishing may happen from any thread; each subscriber receives comments on
the event loop it subscribed from.
"""
import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Tuple
from uuid import UUID

from postcomments.models import Comment

logger = logging.getLogger(__name__)


@dataclass
class _Subscriber:
    queue: asyncio.Queue
    loop: asyncio.AbstractEventLoop


class CommentBroker:
    """Delivers each published comment to every subscriber of its post."""

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._lock = threading.Lock()
        self._subscribers: Dict[UUID, Dict[int, _Subscriber]] = {}
        self._ids = itertools.count(1)

    def subscribe(self, post_id: UUID) -> Tuple[int, asyncio.Queue]:
        """Register the running event loop for comments on post_id. Returns (subscription id, queue)."""
        subscriber = _Subscriber(
            queue=asyncio.Queue(maxsize=self.max_queue_size),
            loop=asyncio.get_running_loop(),
        )
        with self._lock:
            sub_id = next(self._ids)
            self._subscribers.setdefault(post_id, {})[sub_id] = subscriber
        logger.debug(f"Subscriber {sub_id} listening on post {post_id}")
        return sub_id, subscriber.queue

    def unsubscribe(self, post_id: UUID, sub_id: int) -> None:
        with self._lock:
            subscribers = self._subscribers.get(post_id)
            if not subscribers:
                return
            subscribers.pop(sub_id, None)
            if not subscribers:
                del self._subscribers[post_id]
        logger.debug(f"Subscriber {sub_id} left post {post_id}")

    def subscriber_count(self, post_id: UUID) -> int:
        with self._lock:
            return len(self._subscribers.get(post_id, {}))

    def publish(self, comment: Comment) -> int:
        """Queue a comment for every subscriber of its post. Returns the number notified."""
        with self._lock:
            targets = list(self._subscribers.get(comment.post_id, {}).items())
        for sub_id, subscriber in targets:
            subscriber.loop.call_soon_threadsafe(self._deliver, sub_id, subscriber.queue, comment)
        return len(targets)

    @staticmethod
    def _deliver(sub_id: int, queue: asyncio.Queue, comment: Comment) -> None:
        try:
            queue.put_nowait(comment)
        except asyncio.QueueFull:
            logger.warning(f"Subscriber {sub_id} is not keeping up; dropped comment {comment.id}")

    async def listen(self, post_id: UUID) -> AsyncIterator[Comment]:
        """Yield comments created on post_id until the consumer stops iterating."""
        sub_id, queue = self.subscribe(post_id)
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(post_id, sub_id)
