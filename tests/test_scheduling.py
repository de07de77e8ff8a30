import asyncio

from popgate.protocols import CancellationToken, Scheduler
from popgate.scheduling import AsyncioScheduler


def test_asyncio_scheduler_runs_and_cancels():
    fired = []

    async def scenario():
        scheduler = AsyncioScheduler()
        assert isinstance(scheduler, Scheduler)
        kept = scheduler.schedule(10, lambda: fired.append("kept"))
        dropped = scheduler.schedule(10, lambda: fired.append("dropped"))
        assert isinstance(kept, CancellationToken)
        dropped.cancel()
        dropped.cancel()
        await asyncio.sleep(0.05)
        return kept, dropped

    kept, dropped = asyncio.run(scenario())
    assert fired == ["kept"]
    assert dropped.cancelled
    assert not kept.cancelled


def test_asyncio_scheduler_explicit_loop():
    loop = asyncio.new_event_loop()
    try:
        fired = []
        AsyncioScheduler(loop).schedule(0, lambda: fired.append(True))
        loop.run_until_complete(asyncio.sleep(0.01))
        assert fired == [True]
    finally:
        loop.close()
