from cartledger.core.feed import ORDERS_TOPIC, RETURNS_TOPIC, ChangeFeed

async def test_failing_subscriber_does_not_block_others():
    feed = ChangeFeed()
    seen = []
    
    async def broken(message):
        raise RuntimeError("boom")
    
    async def healthy(message):
        seen.append(message["id"])
    
    feed.subscribe(ORDERS_TOPIC, broken)
    feed.subscribe(ORDERS_TOPIC, healthy)
    
    delivered = await feed.publish(ORDERS_TOPIC, {"event": "created", "id": "o1"})
    
    assert delivered == 1
    assert seen == ["o1"]

async def test_topics_are_independent_and_unsubscribe_works():
    feed = ChangeFeed()
    seen = []
    
    async def record(message):
        seen.append(message["id"])
    
    unsubscribe = feed.subscribe(RETURNS_TOPIC, record)
    await feed.publish(ORDERS_TOPIC, {"event": "created", "id": "o1"})
    await feed.publish(RETURNS_TOPIC, {"event": "created", "id": "r1"})
    unsubscribe()
    await feed.publish(RETURNS_TOPIC, {"event": "created", "id": "r2"})
    
    assert seen == ["r1"]
