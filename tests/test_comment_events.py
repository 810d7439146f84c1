"""
Tests for the in-process comment broker that feeds GraphQL subscriptions.
"""
import asyncio
import threading
import uuid

import pytest

from postcomments.models import Comment
from postcomments.services import CommentBroker


def make_comment(post_id, content="hi"):
    return Comment(id=uuid.uuid4(), post_id=post_id, content=content)


@pytest.mark.asyncio
async def test_publish_reaches_subscribers_of_post():
    broker = CommentBroker()
    post_id = uuid.uuid4()
    _, first = broker.subscribe(post_id)
    _, second = broker.subscribe(post_id)
    _, other = broker.subscribe(uuid.uuid4())

    comment = make_comment(post_id)
    assert broker.publish(comment) == 2
    await asyncio.sleep(0)

    assert first.get_nowait() == comment
    assert second.get_nowait() == comment
    assert other.empty()


@pytest.mark.asyncio
async def test_publish_without_subscribers():
    broker = CommentBroker()
    assert broker.publish(make_comment(uuid.uuid4())) == 0


@pytest.mark.asyncio
async def test_unsubscribe_removes_subscriber():
    broker = CommentBroker()
    post_id = uuid.uuid4()
    sub_id, _ = broker.subscribe(post_id)
    assert broker.subscriber_count(post_id) == 1

    broker.unsubscribe(post_id, sub_id)
    assert broker.subscriber_count(post_id) == 0
    assert broker.publish(make_comment(post_id)) == 0

    # Unknown subscriptions are ignored
    broker.unsubscribe(post_id, sub_id)
    broker.unsubscribe(uuid.uuid4(), 999)


@pytest.mark.asyncio
async def test_full_queue_drops_comment():
    broker = CommentBroker(max_queue_size=1)
    post_id = uuid.uuid4()
    _, queue = broker.subscribe(post_id)

    first = make_comment(post_id, "first")
    broker.publish(first)
    broker.publish(make_comment(post_id, "second"))
    await asyncio.sleep(0)

    assert queue.qsize() == 1
    assert queue.get_nowait() == first


@pytest.mark.asyncio
async def test_listen_yields_in_publish_order_and_cleans_up():
    broker = CommentBroker()
    post_id = uuid.uuid4()
    received = []

    async def consume():
        stream = broker.listen(post_id)
        try:
            async for comment in stream:
                received.append(comment.content)
                if len(received) == 2:
                    break
        finally:
            await stream.aclose()

    task = asyncio.create_task(consume())
    while broker.subscriber_count(post_id) == 0:
        await asyncio.sleep(0)

    broker.publish(make_comment(post_id, "a"))
    broker.publish(make_comment(post_id, "b"))
    await asyncio.wait_for(task, timeout=2)

    assert received == ["a", "b"]
    assert broker.subscriber_count(post_id) == 0


@pytest.mark.asyncio
async def test_publish_from_worker_thread():
    broker = CommentBroker()
    post_id = uuid.uuid4()
    _, queue = broker.subscribe(post_id)
    comment = make_comment(post_id)

    thread = threading.Thread(target=broker.publish, args=(comment,))
    thread.start()
    thread.join()

    assert await asyncio.wait_for(queue.get(), timeout=2) == comment
