import asyncio

from talentpipe.services.locks import PipelineLocks


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


async def test_keys_are_dropped_once_released(db_session):
    locks = PipelineLocks()

    async with locks.hold(db_session, interviewers=1, candidates=[5, 6]):
        assert locks.active_keys == 3

    assert locks.active_keys == 0


async def test_interviewer_and_candidate_keys_do_not_collide(db_session):
    locks = PipelineLocks()

    async with locks.hold(db_session, interviewers=7):
        async with locks.hold(db_session, candidates=7):
            assert locks.active_keys == 2

    assert locks.active_keys == 0


async def test_waiter_keeps_the_key_until_it_is_done(db_session):
    locks = PipelineLocks()
    order: list[str] = []
    release = asyncio.Event()

    async def first():
        async with locks.hold(db_session, candidates=9):
            order.append("first")
            await release.wait()

    async def second():
        async with locks.hold(db_session, candidates=9):
            order.append("second")

    first_task = asyncio.create_task(first())
    await _settle()
    second_task = asyncio.create_task(second())
    await _settle()

    assert order == ["first"]
    assert locks.active_keys == 1

    release.set()
    await asyncio.gather(first_task, second_task)

    assert order == ["first", "second"]
    assert locks.active_keys == 0


async def test_cancelled_waiter_gives_its_key_back(db_session):
    locks = PipelineLocks()
    release = asyncio.Event()

    async def holder():
        async with locks.hold(db_session, candidates=3):
            await release.wait()

    async def waiter():
        async with locks.hold(db_session, candidates=3):
            pass

    holder_task = asyncio.create_task(holder())
    await _settle()
    waiter_task = asyncio.create_task(waiter())
    await _settle()
    waiter_task.cancel()
    await asyncio.gather(waiter_task, return_exceptions=True)

    release.set()
    await holder_task

    assert locks.active_keys == 0
