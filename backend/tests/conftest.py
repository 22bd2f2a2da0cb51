import asyncio
import base64
import json
import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from core.config import Settings  # noqa: E402
from app.interview.audio import store_upload  # noqa: E402
from app.interview.evaluator import ContentEvaluation, EvaluationResult  # noqa: E402
from app.interview.models import InterviewSession, Question  # noqa: E402
from app.interview.pipeline import AnswerEvaluationPipeline, AnswerSubmission  # noqa: E402
from app.interview.store import LocalSessionStore, RedisSessionStore  # noqa: E402
from app.services.transcription_service import Transcription  # noqa: E402
from app.system_metrics import reset_metrics  # noqa: E402


GOOD_TRANSCRIPT = (
    "I designed a caching layer with redis that cut checkout latency by forty percent "
    "and I measured it with load tests before and after the rollout to production"
)


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("ALLOW_UNVERIFIED_JWT_DEV", "true")
    monkeypatch.setenv("USE_REDIS_SESSION_STORE", "false")
    monkeypatch.setenv("DEEPGRAM_API_KEY", "test-key")
    monkeypatch.setenv("OPENROUTER_API_KEY", "test-key")
    reset_metrics()


def _jwt_for(claims: dict) -> str:
    def _enc(obj: dict) -> str:
        raw = json.dumps(obj, separators=(",", ":")).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")

    header = _enc({"alg": "none", "typ": "JWT"})
    payload = _enc(claims)
    return f"{header}.{payload}."


@pytest.fixture
def dev_jwt_token() -> str:
    return _jwt_for({"sub": "pytest-user", "iat": 0})


@pytest.fixture
def make_jwt():
    return _jwt_for


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        deepgram_api_key="test-key",
        openrouter_api_key="test-key",
        upload_dir=tmp_path / "uploads",
        allow_unverified_jwt_dev=True,
    )


class FakeTranscriber:
    def __init__(self, transcript: str = GOOD_TRANSCRIPT, confidence: float = 0.93, delay_sec: float = 0.0):
        self.transcript = transcript
        self.confidence = confidence
        self.delay_sec = delay_sec
        self.calls = 0
        self.started = asyncio.Event()
        self.gate: asyncio.Event | None = None
        self.error: Exception | None = None

    async def transcribe(self, audio: bytes, mime_type: str) -> Transcription:
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.delay_sec:
            await asyncio.sleep(self.delay_sec)
        if self.error is not None:
            raise self.error
        return Transcription(transcript=self.transcript, confidence=self.confidence, transcription_ms=120)


class FakeEvaluator:
    def __init__(self, relevance: int = 80, technical_depth: int = 70, clarity: int = 90):
        self.evaluation = ContentEvaluation(
            relevance=relevance,
            technicalDepth=technical_depth,
            clarity=clarity,
            strongPoints=["Quantified impact"],
            weakPoints=["Little detail on trade-offs"],
            feedback="Solid answer with measurable results.",
        )
        self.calls = 0
        self.error: Exception | None = None
        self.side_effect = None

    async def evaluate(self, question_text: str, transcript: str, interview_type: str, difficulty: str) -> EvaluationResult:
        self.calls += 1
        if self.side_effect is not None:
            await self.side_effect()
        if self.error is not None:
            raise self.error
        return EvaluationResult(evaluation=self.evaluation, evaluation_ms=340)


@pytest.fixture
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture
def evaluator() -> FakeEvaluator:
    return FakeEvaluator()


@pytest.fixture
def store() -> LocalSessionStore:
    return LocalSessionStore()


@pytest.fixture
def pipeline(settings, store, transcriber, evaluator) -> AnswerEvaluationPipeline:
    return AnswerEvaluationPipeline(settings=settings, store=store, transcriber=transcriber, evaluator=evaluator)


def build_store(kind: str):
    if kind == "redis":
        import fakeredis

        client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
        return RedisSessionStore(client=client)
    return LocalSessionStore()


@pytest.fixture(params=["local", "redis"])
def session_store(request):
    return build_store(request.param)


@pytest.fixture
def store_pipeline(settings, session_store, transcriber, evaluator) -> AnswerEvaluationPipeline:
    return AnswerEvaluationPipeline(settings=settings, store=session_store, transcriber=transcriber, evaluator=evaluator)


def build_session(session_id: str = "s-1", user_id: str = "pytest-user") -> InterviewSession:
    return InterviewSession(
        id=session_id,
        user_id=user_id,
        interview_type="technical",
        difficulty="medium",
        questions=(
            Question(id="q1", text="Tell me about a performance problem you solved.", category="technical"),
            Question(id="q2", text="How do you review code?", category="technical"),
        ),
    )


@pytest.fixture
def make_submission(settings):
    def _make(
        question_id: str = "q1",
        duration_sec: object = 30,
        size: int = 60000,
        mime_type: str = "audio/webm",
        session_id: str = "s-1",
        user_id: str = "pytest-user",
    ) -> AnswerSubmission:
        upload = store_upload(settings.upload_dir, "answer.webm", mime_type, b"\x00" * size)
        return AnswerSubmission(
            session_id=session_id,
            user_id=user_id,
            question_id=question_id,
            duration_sec=duration_sec,
            upload=upload,
        )

    return _make


@pytest.fixture
def make_session():
    return build_session
