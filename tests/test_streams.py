import asyncio
import json

from streams import HEARTBEAT, PING, Broadcaster, Subscriber, format_event


def test_format_event():
    assert format_event({"type": "connected"}) == 'data: {"type":"connected"}\n\n'
    assert format_event({"a": 1}, "review_updated") == 'event: review_updated\ndata: {"a":1}\n\n'


def test_full_queue_drops_oldest():
    async def scenario():
        subscriber = Subscriber(asyncio.get_running_loop(), max_queue=2)
        for message in ("one", "two", "three"):
            subscriber.offer(message)
        return [subscriber.queue.get_nowait(), subscriber.queue.get_nowait()], subscriber.dropped

    messages, dropped = asyncio.run(scenario())
    assert messages == ["two", "three"]
    assert dropped == 1


def test_published_events_reach_every_subscriber():
    async def scenario():
        broadcaster = Broadcaster("products")
        first = broadcaster.stream("hello")
        second = broadcaster.stream("hello")
        assert await first.__anext__() == "hello"
        assert await second.__anext__() == "hello"
        assert len(broadcaster) == 2

        delivered = broadcaster.publish({"type": "product_updated"}, "product_updated")
        received = [await first.__anext__(), await second.__anext__()]

        await first.aclose()
        await second.aclose()
        return delivered, received, len(broadcaster)

    delivered, received, remaining = asyncio.run(scenario())
    assert delivered == 2
    assert received == ['event: product_updated\ndata: {"type":"product_updated"}\n\n'] * 2
    assert remaining == 0


def test_idle_streams_get_heartbeats():
    async def scenario():
        reviews = Broadcaster("reviews", heartbeat_seconds=0.01, heartbeat=PING)
        gallery = Broadcaster("gallery", heartbeat_seconds=0.01)
        streams = [reviews.stream("first"), gallery.stream("first")]
        beats = []
        for stream in streams:
            await stream.__anext__()
            beats.append(await stream.__anext__())
            await stream.aclose()
        return beats

    beats = asyncio.run(scenario())
    assert beats == [PING, HEARTBEAT]
    assert json.loads(HEARTBEAT[len("data: "):]) == {"type": "heartbeat"}


def test_stream_stops_when_client_disconnects():
    async def scenario():
        broadcaster = Broadcaster("gallery")

        async def gone():
            return True

        messages = [message async for message in broadcaster.stream("first", gone)]
        return messages, len(broadcaster)

    messages, remaining = asyncio.run(scenario())
    assert messages == ["first"]
    assert remaining == 0


def test_publish_without_subscribers():
    assert Broadcaster("reviews").publish({"type": "noop"}) == 0
