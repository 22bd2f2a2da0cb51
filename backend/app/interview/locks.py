from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Callable
import uuid

from core.logger import log_event
from app.interview.models import Answer, ProcessingLock
from app.interview.store import SessionStore

logger = logging.getLogger("app.interview.locks")

Clock = Callable[[], float]


@dataclass(frozen=True)
class LockAttempt:
    acquired: bool
    lock: ProcessingLock | None = None
    reclaimed_stale: bool = False


class SessionLockManager:
    """Per-(session, question) processing locks kept on the session record.

    A lock is only ever taken by one atomic conditional update. Stale locks
    are reclaimed lazily by the next acquisition attempt, there is no
    background sweeper.
    """

    def __init__(self, store: SessionStore, stale_after_sec: float = 120.0, clock: Clock = time.time):
        self._store = store
        self._stale_after_sec = float(stale_after_sec)
        self._clock = clock

    @staticmethod
    def new_request_id() -> str:
        return uuid.uuid4().hex

    async def acquire(self, session_id: str, question_id: str, request_id: str | None = None) -> LockAttempt:
        now_ts = self._clock()
        reclaimed = await self._store.reclaim_stale_lock(
            session_id,
            question_id,
            stale_before=now_ts - self._stale_after_sec,
        )
        if reclaimed:
            log_event("lock_manager", "stale_lock_reclaimed", session_id, question_id=question_id)

        lock = ProcessingLock(
            question_id=question_id,
            request_id=request_id or self.new_request_id(),
            started_at=now_ts,
        )
        acquired = await self._store.try_acquire_lock(session_id, lock)
        if not acquired:
            return LockAttempt(acquired=False, reclaimed_stale=reclaimed)

        log_event("lock_manager", "lock_acquired", session_id, question_id=question_id, request_id=lock.request_id)
        return LockAttempt(acquired=True, lock=lock, reclaimed_stale=reclaimed)

    async def release(self, session_id: str, lock: ProcessingLock) -> bool:
        released = await self._store.release_lock(session_id, lock.question_id, lock.request_id)
        if released:
            log_event("lock_manager", "lock_released", session_id, question_id=lock.question_id, request_id=lock.request_id)
        else:
            logger.debug("release skipped; lock no longer owned | session=%s question=%s", session_id, lock.question_id)
        return released


class AnswerPersister:
    def __init__(self, store: SessionStore):
        self._store = store

    async def persist(self, session_id: str, answer: Answer, lock: ProcessingLock) -> tuple[bool, Answer | None]:
        """Append ``answer`` and drop ``lock`` in one conditional update.

        Returns ``(True, answer)`` when this request won. Otherwise the
        computed answer is discarded and ``(False, stored)`` is returned,
        where ``stored`` is whatever answer is already on the session.
        """
        if await self._store.persist_answer(session_id, answer, lock.request_id):
            return True, answer

        session = await self._store.get_session(session_id)
        existing = session.answer_for(answer.question_id) if session is not None else None
        log_event(
            "answer_persister",
            "persist_conflict",
            session_id,
            question_id=answer.question_id,
            request_id=lock.request_id,
            existing_answer=existing is not None,
        )
        return False, existing
