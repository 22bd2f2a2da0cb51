import json

from app.interview.models import AIMeta, Answer, AudioFile, InterviewSession, ProcessingLock, Question, SessionStatus, SpeechMetrics
from app.interview.scorer import build_answer_scores


def test_answer_survives_json_serialization():
    answer = Answer(
        question_id="q1",
        transcript="hello world",
        duration_sec=12.5,
        speech_metrics=SpeechMetrics(word_count=2, words_per_minute=9.6, disfluency_ratio=0.5),
        scores=build_answer_scores(80, 70, 90, 57, 60),
        strong_points=("clear",),
        weak_points=("short",),
        feedback="ok",
        ai_meta=AIMeta(transcription_ms=10, evaluation_ms=20),
        audio_file=AudioFile("a.webm", "a-1.webm", "audio/webm", 100, "/tmp/a-1.webm"),
        evaluated_at=1.0,
    )

    restored = Answer.from_dict(json.loads(json.dumps(answer.to_dict())))
    assert restored == answer


def test_session_status_is_derived():
    session = InterviewSession(
        id="s",
        user_id="u",
        interview_type="behavioral",
        difficulty="easy",
        questions=(Question(id="q1", text="Why us?"),),
    )
    assert session.status == SessionStatus.IN_PROGRESS

    session.answers["q1"] = Answer(
        question_id="q1",
        transcript="",
        duration_sec=1.0,
        speech_metrics=SpeechMetrics(),
        scores=build_answer_scores(0, 0, 0, 0, 0),
    )
    assert session.status == SessionStatus.COMPLETED
    assert session.answered_question_ids() == ["q1"]
    assert session.find_question("missing") is None


def test_lock_is_stale_strictly_before_cutoff():
    lock = ProcessingLock(question_id="q1", request_id="r", started_at=100.0)
    assert lock.is_stale(100.5)
    assert not lock.is_stale(100.0)
    assert not lock.is_stale(99.0)
