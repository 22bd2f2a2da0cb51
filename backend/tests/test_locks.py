import pytest

from app.interview.locks import AnswerPersister, SessionLockManager
from app.interview.models import Answer, ProcessingLock, SpeechMetrics
from app.interview.scorer import build_answer_scores


@pytest.fixture
def store(session_store):
    return session_store


class _Clock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _answer(question_id: str = "q1", transcript: str = "answer") -> Answer:
    return Answer(
        question_id=question_id,
        transcript=transcript,
        duration_sec=30.0,
        speech_metrics=SpeechMetrics(word_count=1),
        scores=build_answer_scores(50, 50, 50, 50, 50),
    )


@pytest.mark.asyncio
async def test_acquire_then_contend(store, make_session):
    await store.create_session(make_session())
    manager = SessionLockManager(store, stale_after_sec=120, clock=_Clock())

    first = await manager.acquire("s-1", "q1")
    second = await manager.acquire("s-1", "q1")
    other_question = await manager.acquire("s-1", "q2")

    assert first.acquired and first.lock is not None
    assert not second.acquired and second.lock is None
    assert other_question.acquired

    session = await store.get_session("s-1")
    assert session.processing_locks["q1"].request_id == first.lock.request_id


@pytest.mark.asyncio
async def test_stale_lock_is_reclaimed(store, make_session):
    await store.create_session(make_session())
    clock = _Clock()
    manager = SessionLockManager(store, stale_after_sec=120, clock=clock)

    first = await manager.acquire("s-1", "q1")
    clock.now += 119
    assert not (await manager.acquire("s-1", "q1")).acquired

    clock.now += 2
    reclaimed = await manager.acquire("s-1", "q1")
    assert reclaimed.acquired
    assert reclaimed.reclaimed_stale
    assert reclaimed.lock.request_id != first.lock.request_id


@pytest.mark.asyncio
async def test_release_only_by_owner(store, make_session):
    await store.create_session(make_session())
    manager = SessionLockManager(store, clock=_Clock())
    attempt = await manager.acquire("s-1", "q1")

    intruder = ProcessingLock(question_id="q1", request_id="someone-else", started_at=0.0)
    assert not await manager.release("s-1", intruder)
    assert await manager.release("s-1", attempt.lock)
    assert not await manager.release("s-1", attempt.lock)

    session = await store.get_session("s-1")
    assert session.processing_locks == {}


@pytest.mark.asyncio
async def test_no_lock_once_answered(store, make_session):
    await store.create_session(make_session())
    manager = SessionLockManager(store, clock=_Clock())
    persister = AnswerPersister(store)

    attempt = await manager.acquire("s-1", "q1")
    persisted, stored = await persister.persist("s-1", _answer(), attempt.lock)
    assert persisted and stored.transcript == "answer"

    session = await store.get_session("s-1")
    assert "q1" not in session.processing_locks
    assert not (await manager.acquire("s-1", "q1")).acquired


@pytest.mark.asyncio
async def test_persist_requires_owned_lock(store, make_session):
    await store.create_session(make_session())
    persister = AnswerPersister(store)

    foreign = ProcessingLock(question_id="q1", request_id="not-acquired", started_at=0.0)
    persisted, stored = await persister.persist("s-1", _answer(), foreign)

    assert not persisted
    assert stored is None
    assert (await store.get_session("s-1")).answers == {}


@pytest.mark.asyncio
async def test_losing_persist_returns_winning_answer(store, make_session):
    await store.create_session(make_session())
    clock = _Clock()
    manager = SessionLockManager(store, stale_after_sec=120, clock=clock)
    persister = AnswerPersister(store)

    slow = await manager.acquire("s-1", "q1")
    clock.now += 500
    fast = await manager.acquire("s-1", "q1")
    assert fast.acquired

    assert (await persister.persist("s-1", _answer(transcript="winner"), fast.lock))[0]
    persisted, stored = await persister.persist("s-1", _answer(transcript="late"), slow.lock)

    assert not persisted
    assert stored.transcript == "winner"
    assert len((await store.get_session("s-1")).answers) == 1


@pytest.mark.asyncio
async def test_unknown_session(store):
    manager = SessionLockManager(store, clock=_Clock())
    assert not (await manager.acquire("missing", "q1")).acquired


@pytest.mark.asyncio
async def test_session_record_round_trip(store, make_session):
    session = make_session()
    session.processing_locks["q2"] = ProcessingLock(question_id="q2", request_id="seeded", started_at=5.0)
    await store.create_session(session)

    with pytest.raises(ValueError):
        await store.create_session(make_session())

    loaded = await store.get_session("s-1")
    assert loaded.user_id == "pytest-user"
    assert [question.id for question in loaded.questions] == ["q1", "q2"]
    assert loaded.processing_locks["q2"].request_id == "seeded"
    assert await store.count_user_sessions("pytest-user") == 1
    assert await store.count_user_sessions("nobody") == 0
    assert await store.get_session("") is None
