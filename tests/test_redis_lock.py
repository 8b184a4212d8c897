import os

import pytest
from redis import asyncio as aioredis

from tests.conftest import make_vote
from unionvote.models.exceptions import RevealInProgressError

pytestmark = pytest.mark.skipif(
    not os.getenv("REDIS_URL"), reason="Redis not available"
)


async def test_reveal_respects_lock_held_by_another_process(make_orchestrator):
    redis = aioredis.from_url(os.environ["REDIS_URL"])
    orchestrator = make_orchestrator(redis_client=redis)
    record = await orchestrator.create_vote(make_vote(value=11))
    assert record is not None

    foreign = redis.lock(f"lock:vote:{record.id}:reveal", timeout=5)
    assert await foreign.acquire(blocking=False)
    try:
        with pytest.raises(RevealInProgressError):
            await orchestrator.reveal(record.id)
        assert not orchestrator.locks.is_locked(record.id)
    finally:
        await foreign.release()

    assert await orchestrator.reveal(record.id) == 11
    await redis.aclose()
