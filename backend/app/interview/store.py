from __future__ import annotations

import asyncio
from dataclasses import asdict, replace
import json
from typing import Protocol

from core.config import Settings
from app.interview.models import Answer, InterviewSession, ProcessingLock, Question


class SessionStore(Protocol):
    """Durable home of interview sessions.

    Every mutating call is a single conditional update on one session record;
    callers never read-modify-write.
    """

    async def create_session(self, session: InterviewSession) -> None:
        ...

    async def get_session(self, session_id: str) -> InterviewSession | None:
        ...

    async def count_user_sessions(self, user_id: str) -> int:
        ...

    async def reclaim_stale_lock(self, session_id: str, question_id: str, stale_before: float) -> bool:
        ...

    async def try_acquire_lock(self, session_id: str, lock: ProcessingLock) -> bool:
        ...

    async def release_lock(self, session_id: str, question_id: str, request_id: str) -> bool:
        ...

    async def persist_answer(self, session_id: str, answer: Answer, request_id: str) -> bool:
        ...


def _copy_session(session: InterviewSession) -> InterviewSession:
    return replace(
        session,
        answers=dict(session.answers),
        processing_locks=dict(session.processing_locks),
    )


class LocalSessionStore:
    def __init__(self):
        self._lock = asyncio.Lock()
        self._sessions: dict[str, InterviewSession] = {}

    async def create_session(self, session: InterviewSession) -> None:
        async with self._lock:
            if session.id in self._sessions:
                raise ValueError(f"session {session.id} already exists")
            self._sessions[session.id] = _copy_session(session)

    async def get_session(self, session_id: str) -> InterviewSession | None:
        if not session_id:
            return None
        async with self._lock:
            session = self._sessions.get(session_id)
            return _copy_session(session) if session is not None else None

    async def count_user_sessions(self, user_id: str) -> int:
        async with self._lock:
            return sum(1 for session in self._sessions.values() if session.user_id == user_id)

    async def reclaim_stale_lock(self, session_id: str, question_id: str, stale_before: float) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            lock = session.processing_locks.get(question_id)
            if lock is None or not lock.is_stale(stale_before):
                return False
            session.processing_locks.pop(question_id, None)
            return True

    async def try_acquire_lock(self, session_id: str, lock: ProcessingLock) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if lock.question_id in session.answers or lock.question_id in session.processing_locks:
                return False
            session.processing_locks[lock.question_id] = lock
            return True

    async def release_lock(self, session_id: str, question_id: str, request_id: str) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            lock = session.processing_locks.get(question_id)
            if lock is None or lock.request_id != request_id:
                return False
            session.processing_locks.pop(question_id, None)
            return True

    async def persist_answer(self, session_id: str, answer: Answer, request_id: str) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if answer.question_id in session.answers:
                return False
            lock = session.processing_locks.get(answer.question_id)
            if lock is None or lock.request_id != request_id:
                return False
            session.answers[answer.question_id] = answer
            session.processing_locks.pop(answer.question_id, None)
            return True


_RECLAIM_SCRIPT = """
local raw = redis.call('HGET', KEYS[1], ARGV[1])
if not raw then return 0 end
local lock = cjson.decode(raw)
if tonumber(lock['started_at']) < tonumber(ARGV[2]) then
  redis.call('HDEL', KEYS[1], ARGV[1])
  return 1
end
return 0
"""

_ACQUIRE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then return 0 end
if redis.call('HEXISTS', KEYS[2], ARGV[1]) == 1 then return 0 end
if redis.call('HEXISTS', KEYS[3], ARGV[1]) == 1 then return 0 end
redis.call('HSET', KEYS[3], ARGV[1], ARGV[2])
return 1
"""

_RELEASE_SCRIPT = """
local raw = redis.call('HGET', KEYS[1], ARGV[1])
if not raw then return 0 end
local lock = cjson.decode(raw)
if lock['request_id'] ~= ARGV[2] then return 0 end
redis.call('HDEL', KEYS[1], ARGV[1])
return 1
"""

_PERSIST_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then return 0 end
if redis.call('HEXISTS', KEYS[2], ARGV[1]) == 1 then return 0 end
local raw = redis.call('HGET', KEYS[3], ARGV[1])
if not raw then return 0 end
local lock = cjson.decode(raw)
if lock['request_id'] ~= ARGV[2] then return 0 end
redis.call('HSET', KEYS[2], ARGV[1], ARGV[3])
redis.call('HDEL', KEYS[3], ARGV[1])
return 1
"""


class RedisSessionStore:
    """Redis-backed session records shared by every service instance.

    Keys:
    - interview:{session_id}:meta (string, JSON)
    - interview:{session_id}:answers (hash question_id -> answer JSON)
    - interview:{session_id}:locks (hash question_id -> lock JSON)
    - interview:user:{user_id}:sessions (set)

    Conditional updates run as Lua scripts, so each one is atomic on the
    Redis server.
    """

    def __init__(self, redis_url: str = "", client=None):
        if client is None:
            try:
                import redis.asyncio as redis_async  # type: ignore
            except Exception as exc:
                raise RuntimeError("redis package not installed; install 'redis' to enable the shared session store") from exc
            client = redis_async.from_url(redis_url, decode_responses=True)

        self._redis = client
        self._reclaim = self._redis.register_script(_RECLAIM_SCRIPT)
        self._acquire = self._redis.register_script(_ACQUIRE_SCRIPT)
        self._release = self._redis.register_script(_RELEASE_SCRIPT)
        self._persist = self._redis.register_script(_PERSIST_SCRIPT)

    @staticmethod
    def _meta_key(session_id: str) -> str:
        return f"interview:{session_id}:meta"

    @staticmethod
    def _answers_key(session_id: str) -> str:
        return f"interview:{session_id}:answers"

    @staticmethod
    def _locks_key(session_id: str) -> str:
        return f"interview:{session_id}:locks"

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"interview:user:{user_id}:sessions"

    async def create_session(self, session: InterviewSession) -> None:
        meta = {
            "id": session.id,
            "user_id": session.user_id,
            "interview_type": session.interview_type,
            "difficulty": session.difficulty,
            "questions": [asdict(question) for question in session.questions],
            "created_at": session.created_at,
        }
        created = await self._redis.set(self._meta_key(session.id), json.dumps(meta), nx=True)
        if not created:
            raise ValueError(f"session {session.id} already exists")
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.sadd(self._user_key(session.user_id), session.id)
            if session.answers:
                pipe.hset(
                    self._answers_key(session.id),
                    mapping={qid: json.dumps(answer.to_dict(), default=str) for qid, answer in session.answers.items()},
                )
            if session.processing_locks:
                pipe.hset(
                    self._locks_key(session.id),
                    mapping={qid: json.dumps(asdict(lock)) for qid, lock in session.processing_locks.items()},
                )
            await pipe.execute()

    async def get_session(self, session_id: str) -> InterviewSession | None:
        if not session_id:
            return None
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.get(self._meta_key(session_id))
            pipe.hgetall(self._answers_key(session_id))
            pipe.hgetall(self._locks_key(session_id))
            raw_meta, raw_answers, raw_locks = await pipe.execute()
        if not raw_meta:
            return None

        meta = json.loads(raw_meta)
        return InterviewSession(
            id=str(meta["id"]),
            user_id=str(meta.get("user_id") or ""),
            interview_type=str(meta.get("interview_type") or ""),
            difficulty=str(meta.get("difficulty") or ""),
            questions=tuple(Question(**item) for item in meta.get("questions") or []),
            answers={qid: Answer.from_dict(json.loads(raw)) for qid, raw in (raw_answers or {}).items()},
            processing_locks={qid: ProcessingLock(**json.loads(raw)) for qid, raw in (raw_locks or {}).items()},
            created_at=float(meta.get("created_at") or 0.0),
        )

    async def count_user_sessions(self, user_id: str) -> int:
        return int(await self._redis.scard(self._user_key(user_id)))

    async def reclaim_stale_lock(self, session_id: str, question_id: str, stale_before: float) -> bool:
        result = await self._reclaim(keys=[self._locks_key(session_id)], args=[question_id, repr(float(stale_before))])
        return int(result or 0) == 1

    async def try_acquire_lock(self, session_id: str, lock: ProcessingLock) -> bool:
        result = await self._acquire(
            keys=[self._meta_key(session_id), self._answers_key(session_id), self._locks_key(session_id)],
            args=[lock.question_id, json.dumps(asdict(lock))],
        )
        return int(result or 0) == 1

    async def release_lock(self, session_id: str, question_id: str, request_id: str) -> bool:
        result = await self._release(keys=[self._locks_key(session_id)], args=[question_id, request_id])
        return int(result or 0) == 1

    async def persist_answer(self, session_id: str, answer: Answer, request_id: str) -> bool:
        result = await self._persist(
            keys=[self._meta_key(session_id), self._answers_key(session_id), self._locks_key(session_id)],
            args=[answer.question_id, request_id, json.dumps(answer.to_dict(), default=str)],
        )
        return int(result or 0) == 1

    async def close(self) -> None:
        await self._redis.aclose()


def build_session_store(settings: Settings) -> SessionStore:
    if not settings.use_redis_session_store:
        return LocalSessionStore()

    if not settings.redis_url:
        raise RuntimeError("USE_REDIS_SESSION_STORE=true requires REDIS_URL")
    return RedisSessionStore(settings.redis_url)
