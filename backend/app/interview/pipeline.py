from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import time

from core.config import Settings
from core.logger import log_event
from app.interview.audio import StoredUpload, discard_upload, validate_duration_and_size
from app.interview.errors import (
    AnswerEvaluationError,
    InvalidAudioMetadata,
    LockLost,
    LowAudioQuality,
    SessionAccessDenied,
    SessionNotFound,
    UnknownQuestion,
    UpstreamProviderError,
)
from app.interview.evaluator import ContentEvaluator
from app.interview.locks import AnswerPersister, SessionLockManager
from app.interview.models import AIMeta, Answer, InterviewSession, ProcessingLock, Question, SubmissionStatus
from app.interview.scorer import build_answer_scores
from app.interview.speech_metrics import analyze_speech
from app.interview.store import SessionStore
from app.services.transcription_service import Transcriber
from app.system_metrics import increment_metric, observe_provider_latency_ms

logger = logging.getLogger("app.interview.pipeline")

COMPONENT = "answer_pipeline"


@dataclass(frozen=True)
class AnswerSubmission:
    session_id: str
    user_id: str
    question_id: str
    duration_sec: object
    upload: StoredUpload


@dataclass(frozen=True)
class EvaluationOutcome:
    status: SubmissionStatus
    question_id: str
    answer: Answer | None = None
    message: str = ""

    @property
    def http_status(self) -> int:
        return {
            SubmissionStatus.EVALUATED: 201,
            SubmissionStatus.ALREADY_EVALUATED: 200,
            SubmissionStatus.PROCESSING: 202,
        }[self.status]


class AnswerEvaluationPipeline:
    """End-to-end evaluation of one recorded answer.

    validate -> lock -> transcribe -> speech metrics -> quality gate ->
    content evaluation -> aggregate -> persist. Each submission either ends
    with the answer committed (lock cleared by the same update) or with the
    session untouched and the lock released.
    """

    def __init__(
        self,
        settings: Settings,
        store: SessionStore,
        transcriber: Transcriber,
        evaluator: ContentEvaluator,
        lock_manager: SessionLockManager | None = None,
        persister: AnswerPersister | None = None,
    ):
        self.settings = settings
        self.store = store
        self.transcriber = transcriber
        self.evaluator = evaluator
        self.lock_manager = lock_manager or SessionLockManager(store, stale_after_sec=settings.lock_stale_after_sec)
        self.persister = persister or AnswerPersister(store)

    async def submit(self, submission: AnswerSubmission) -> EvaluationOutcome:
        increment_metric("answers_submitted")
        upload = submission.upload
        session_id = submission.session_id
        question_id = submission.question_id

        try:
            duration_sec = validate_duration_and_size(
                submission.duration_sec,
                upload.size,
                upload.mime_type,
                max_duration_sec=self.settings.max_duration_sec,
            )
        except InvalidAudioMetadata as exc:
            discard_upload(upload)
            increment_metric("answers_rejected_metadata")
            log_event(COMPONENT, "invalid_audio_metadata", session_id, question_id=question_id, reason=exc.reason)
            raise

        try:
            session, question = await self._load_question(submission)

            existing = session.answer_for(question_id)
            if existing is not None:
                return self._replay(session_id, existing, upload)

            attempt = await self.lock_manager.acquire(session_id, question_id)
            if attempt.reclaimed_stale:
                increment_metric("stale_locks_reclaimed")
            if not attempt.acquired:
                return await self._on_contended(session_id, question_id, upload)
        except AnswerEvaluationError:
            discard_upload(upload)
            raise
        except Exception as exc:
            discard_upload(upload)
            logger.exception("session store failed | session=%s question=%s", session_id, question_id)
            wrapped = UpstreamProviderError(reason=f"session store: {exc}")
            self._record_failure(session_id, question_id, wrapped)
            raise wrapped from exc

        lock = attempt.lock
        lock_held = True
        try:
            answer = await self._evaluate(session, question, duration_sec, upload)
            persisted, stored = await self.persister.persist(session_id, answer, lock)
            lock_held = False
            if persisted:
                increment_metric("answers_evaluated")
                log_event(
                    COMPONENT,
                    "answer_evaluated",
                    session_id,
                    question_id=question_id,
                    overall=answer.scores.overall,
                    transcription_ms=answer.ai_meta.transcription_ms,
                    evaluation_ms=answer.ai_meta.evaluation_ms,
                )
                return EvaluationOutcome(status=SubmissionStatus.EVALUATED, question_id=question_id, answer=answer)

            increment_metric("answers_persist_conflicts")
            if stored is not None:
                return self._replay(session_id, stored, upload)
            raise LockLost(reason="processing lock was reclaimed before the answer was persisted")
        except AnswerEvaluationError as exc:
            discard_upload(upload)
            self._record_failure(session_id, question_id, exc)
            raise
        except Exception as exc:
            discard_upload(upload)
            logger.exception("answer evaluation crashed | session=%s question=%s", session_id, question_id)
            wrapped = UpstreamProviderError(reason=str(exc))
            self._record_failure(session_id, question_id, wrapped)
            raise wrapped from exc
        finally:
            if lock_held:
                await self._release_quietly(session_id, lock)

    async def _load_question(self, submission: AnswerSubmission) -> tuple[InterviewSession, Question]:
        session = await self.store.get_session(submission.session_id)
        if session is None:
            raise SessionNotFound()
        if session.user_id != submission.user_id:
            raise SessionAccessDenied()
        question = session.find_question(submission.question_id)
        if question is None:
            raise UnknownQuestion()
        return session, question

    async def _evaluate(
        self,
        session: InterviewSession,
        question: Question,
        duration_sec: float,
        upload: StoredUpload,
    ) -> Answer:
        audio = await asyncio.to_thread(upload.read_bytes)
        transcription = await self.transcriber.transcribe(audio, upload.mime_type)
        observe_provider_latency_ms("transcription", transcription.transcription_ms)

        analysis = analyze_speech(transcription.transcript, duration_sec)
        word_count = analysis.metrics.word_count
        if word_count < self.settings.min_word_count or transcription.confidence < self.settings.min_transcript_confidence:
            raise LowAudioQuality(reason=f"word_count={word_count} confidence={transcription.confidence:.2f}")

        result = await self.evaluator.evaluate(
            question_text=question.text,
            transcript=transcription.transcript,
            interview_type=session.interview_type,
            difficulty=session.difficulty,
        )
        observe_provider_latency_ms("evaluation", result.evaluation_ms)
        evaluation = result.evaluation

        return Answer(
            question_id=question.id,
            transcript=transcription.transcript,
            duration_sec=duration_sec,
            speech_metrics=analysis.metrics,
            scores=build_answer_scores(
                relevance=evaluation.relevance,
                technical_depth=evaluation.technical_depth,
                clarity=evaluation.clarity,
                fluency=analysis.fluency_score,
                speech_flow_score=analysis.speech_flow_score,
            ),
            strong_points=tuple(evaluation.strong_points),
            weak_points=tuple(evaluation.weak_points),
            feedback=evaluation.feedback,
            ai_meta=AIMeta(
                transcription_ms=transcription.transcription_ms,
                evaluation_ms=result.evaluation_ms,
            ),
            audio_file=upload.to_audio_file(),
            evaluated_at=time.time(),
        )

    async def _on_contended(self, session_id: str, question_id: str, upload: StoredUpload) -> EvaluationOutcome:
        session = await self.store.get_session(session_id)
        existing = session.answer_for(question_id) if session is not None else None
        if existing is not None:
            return self._replay(session_id, existing, upload)

        discard_upload(upload)
        increment_metric("answers_lock_contended")
        log_event(COMPONENT, "lock_contended", session_id, question_id=question_id)
        return EvaluationOutcome(
            status=SubmissionStatus.PROCESSING,
            question_id=question_id,
            message="Answer is being processed. Retry in a few seconds.",
        )

    def _replay(self, session_id: str, answer: Answer, upload: StoredUpload) -> EvaluationOutcome:
        discard_upload(upload)
        increment_metric("answers_replayed")
        log_event(COMPONENT, "answer_replayed", session_id, question_id=answer.question_id)
        return EvaluationOutcome(
            status=SubmissionStatus.ALREADY_EVALUATED,
            question_id=answer.question_id,
            answer=answer,
        )

    def _record_failure(self, session_id: str, question_id: str, exc: AnswerEvaluationError) -> None:
        if isinstance(exc, LowAudioQuality):
            increment_metric("answers_rejected_quality")
        else:
            increment_metric("answers_provider_failures")
        log_event(
            COMPONENT,
            "answer_failed",
            session_id,
            level=logging.WARNING,
            question_id=question_id,
            error=type(exc).__name__,
            reason=exc.reason,
        )

    async def _release_quietly(self, session_id: str, lock: ProcessingLock) -> None:
        try:
            await self.lock_manager.release(session_id, lock)
        except Exception as exc:
            logger.warning("lock release failed | session=%s question=%s err=%s", session_id, lock.question_id, exc)
