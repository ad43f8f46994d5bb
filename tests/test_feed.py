import asyncio

from rollcall.ws.manager import GLOBAL_TOPIC, EventFeed, identity_topic


def test_publish_reaches_only_the_topic_subscribers():
    feed = EventFeed()
    seen = []
    feed.subscribe(identity_topic("a"), seen.append)
    feed.subscribe(identity_topic("b"), lambda payload: seen.append(("b", payload)))

    delivered = asyncio.run(feed.publish(identity_topic("a"), {"n": 1}))

    assert delivered == 1
    assert seen == [{"n": 1}]


def test_close_is_the_teardown_path_and_is_idempotent():
    feed = EventFeed()
    seen = []
    subscription = feed.subscribe(GLOBAL_TOPIC, seen.append)
    assert feed.subscriber_count(GLOBAL_TOPIC) == 1

    subscription.close()
    subscription.close()

    assert subscription.closed
    assert feed.subscriber_count(GLOBAL_TOPIC) == 0
    assert asyncio.run(feed.publish(GLOBAL_TOPIC, {"n": 1})) == 0
    assert seen == []


def test_subscription_context_manager_releases():
    feed = EventFeed()
    with feed.subscribe(GLOBAL_TOPIC, lambda payload: None) as subscription:
        assert feed.subscriber_count(GLOBAL_TOPIC) == 1
    assert subscription.closed
    assert feed.subscriber_count(GLOBAL_TOPIC) == 0


def test_async_callbacks_are_awaited_and_failures_do_not_stop_delivery():
    feed = EventFeed()
    seen = []

    def broken(payload):
        raise RuntimeError("boom")

    async def collect(payload):
        await asyncio.sleep(0)
        seen.append(payload)

    feed.subscribe(GLOBAL_TOPIC, broken)
    feed.subscribe(GLOBAL_TOPIC, collect)

    delivered = asyncio.run(feed.publish(GLOBAL_TOPIC, {"n": 2}))

    assert delivered == 1
    assert seen == [{"n": 2}]
