import asyncio
import logging
import time
import uuid

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from core.logger import log_event
from app.auth import AuthenticatedUser, get_current_user
from app.interview.audio import is_allowed_upload, store_upload
from app.interview.errors import AnswerEvaluationError
from app.interview.models import Answer, InterviewSession, Question, SubmissionStatus
from app.interview.pipeline import AnswerSubmission, EvaluationOutcome
from app.interview.scorer import calculate_session_score
from app.schemas import (
    AnswerResultResponse,
    CreateInterviewRequest,
    ProcessingResponse,
    QuestionAudioRequest,
)

router = APIRouter(prefix="/api/interviews")
logger = logging.getLogger("app.api.interviews")

GREETING_QUESTION_ID = "greeting"


def _answer_payload(status: SubmissionStatus, answer: Answer) -> dict:
    metrics = answer.speech_metrics
    scores = answer.scores
    return AnswerResultResponse(
        status=status.value,
        questionId=answer.question_id,
        transcript=answer.transcript,
        scores={
            "relevance": scores.relevance,
            "technicalDepth": scores.technical_depth,
            "clarity": scores.clarity,
            "fluency": scores.fluency,
            "speechFlowScore": scores.speech_flow_score,
            "overall": scores.overall,
        },
        strongPoints=list(answer.strong_points),
        weakPoints=list(answer.weak_points),
        feedback=answer.feedback,
        speechMetrics={
            "wordCount": metrics.word_count,
            "fillerWordCount": metrics.filler_word_count,
            "pauseCount": metrics.pause_count,
            "wordsPerMinute": metrics.words_per_minute,
            "disfluencyRatio": metrics.disfluency_ratio,
        },
        aiMeta={
            "transcriptionMs": answer.ai_meta.transcription_ms,
            "evaluationMs": answer.ai_meta.evaluation_ms,
        },
    ).model_dump()


def _outcome_response(outcome: EvaluationOutcome) -> JSONResponse:
    if outcome.answer is None:
        content = ProcessingResponse(status=outcome.status.value, message=outcome.message).model_dump()
    else:
        content = _answer_payload(outcome.status, outcome.answer)
    return JSONResponse(status_code=outcome.http_status, content=content)


async def _owned_session(request: Request, session_id: str, user: AuthenticatedUser) -> InterviewSession:
    session = await request.app.state.session_store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Interview session not found.")
    if session.user_id != user.user_id:
        raise HTTPException(status_code=403, detail="Not authorized to access this session.")
    return session


@router.post("", status_code=201)
async def create_interview(
    payload: CreateInterviewRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
):
    settings = request.app.state.settings
    store = request.app.state.session_store

    if not settings.is_premium(user.user_id, user.email):
        created = await store.count_user_sessions(user.user_id)
        if created >= settings.max_interviews_per_user:
            return JSONResponse(
                status_code=403,
                content={
                    "detail": f"Interview limit reached. You can only create {settings.max_interviews_per_user} interviews per account.",
                    "code": "INTERVIEW_LIMIT_REACHED",
                    "maxInterviews": settings.max_interviews_per_user,
                },
            )

    question_ids = [item.id.strip() for item in payload.questions]
    if len(set(question_ids)) != len(question_ids):
        raise HTTPException(status_code=400, detail="Question ids must be unique.")

    session = InterviewSession(
        id=uuid.uuid4().hex,
        user_id=user.user_id,
        interview_type=payload.interview_type.value,
        difficulty=payload.difficulty.value,
        questions=tuple(
            Question(id=item.id.strip(), text=item.text.strip(), category=item.category.value)
            for item in payload.questions
        ),
        created_at=time.time(),
    )
    await store.create_session(session)
    log_event("interviews_api", "session_created", session.id, question_count=len(session.questions))
    return {
        "sessionId": session.id,
        "interviewType": session.interview_type,
        "difficulty": session.difficulty,
        "questions": [{"id": q.id, "text": q.text, "category": q.category} for q in session.questions],
    }


@router.get("/{session_id}")
async def get_interview(session_id: str, request: Request, user: AuthenticatedUser = Depends(get_current_user)):
    session = await _owned_session(request, session_id, user)
    answers = [session.answers[qid] for qid in session.answered_question_ids()]
    return {
        "sessionId": session.id,
        "interviewType": session.interview_type,
        "difficulty": session.difficulty,
        "status": session.status.value,
        "createdAt": session.created_at,
        "questions": [{"id": q.id, "text": q.text, "category": q.category} for q in session.questions],
        "answeredCount": len(answers),
        "answeredQuestionIds": session.answered_question_ids(),
        "overallScore": calculate_session_score(answers),
    }


@router.post("/{session_id}/answers")
async def submit_answer(
    session_id: str,
    request: Request,
    questionId: str = Form(...),
    durationSec: str = Form(...),
    audio: UploadFile = File(...),
    user: AuthenticatedUser = Depends(get_current_user),
):
    settings = request.app.state.settings
    question_id = str(questionId or "").strip()
    if not question_id:
        raise HTTPException(status_code=400, detail="questionId is required.")

    filename = audio.filename or "answer.webm"
    mime_type = str(audio.content_type or "audio/webm")
    if not is_allowed_upload(filename, mime_type):
        raise HTTPException(status_code=400, detail="Only webm, wav, mp3, m4a, and aac audio files are allowed.")

    data = await audio.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(status_code=400, detail="Audio file is too large.")
    upload = await asyncio.to_thread(store_upload, settings.upload_dir, filename, mime_type, data)

    submission = AnswerSubmission(
        session_id=session_id,
        user_id=user.user_id,
        question_id=question_id,
        duration_sec=durationSec,
        upload=upload,
    )
    try:
        outcome = await request.app.state.pipeline.submit(submission)
    except AnswerEvaluationError as exc:
        logger.warning(
            "answer submission failed | session=%s question=%s error=%s reason=%s",
            session_id,
            question_id,
            type(exc).__name__,
            exc.reason,
        )
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    return _outcome_response(outcome)


@router.post("/{session_id}/questions/audio")
async def synthesize_question_audio(
    session_id: str,
    payload: QuestionAudioRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
):
    session = await _owned_session(request, session_id, user)
    text = payload.text.strip()

    if payload.question_id != GREETING_QUESTION_ID:
        question = session.find_question(payload.question_id)
        if question is None:
            raise HTTPException(status_code=400, detail="Invalid questionId for this session.")
        canonical = question.text.strip()
        if not canonical:
            raise HTTPException(status_code=400, detail="Question text is not available.")
        if text != canonical:
            raise HTTPException(status_code=400, detail="Question text does not match session question.")
        text = canonical

    try:
        audio_bytes = await request.app.state.synthesizer.synthesize(text)
    except AnswerEvaluationError as exc:
        log_event("interviews_api", "question_tts_failed", session_id, question_id=payload.question_id, reason=exc.reason)
        raise HTTPException(status_code=502, detail="Question audio generation failed.")

    return Response(
        content=audio_bytes,
        media_type="audio/mpeg",
        headers={"Cache-Control": "private, max-age=300"},
    )
