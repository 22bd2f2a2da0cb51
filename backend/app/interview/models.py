from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
import time


class InterviewType(str, Enum):
    TECHNICAL = "technical"
    BEHAVIORAL = "behavioral"
    CASE = "case"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SubmissionStatus(str, Enum):
    EVALUATED = "evaluated"
    ALREADY_EVALUATED = "already_evaluated"
    PROCESSING = "processing"


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    category: str = InterviewType.BEHAVIORAL.value


@dataclass(frozen=True)
class ProcessingLock:
    question_id: str
    request_id: str
    started_at: float

    def is_stale(self, stale_before: float) -> bool:
        return self.started_at < stale_before


@dataclass(frozen=True)
class SpeechMetrics:
    word_count: int = 0
    filler_word_count: int = 0
    pause_count: int = 0
    words_per_minute: float = 0.0
    disfluency_ratio: float = 0.0


@dataclass(frozen=True)
class AnswerScores:
    relevance: int
    technical_depth: int
    clarity: int
    fluency: int
    speech_flow_score: int
    overall: int


@dataclass(frozen=True)
class AudioFile:
    original_name: str
    stored_name: str
    mime_type: str
    size: int
    storage_path: str


@dataclass(frozen=True)
class AIMeta:
    transcription_ms: int = 0
    evaluation_ms: int = 0


@dataclass(frozen=True)
class Answer:
    question_id: str
    transcript: str
    duration_sec: float
    speech_metrics: SpeechMetrics
    scores: AnswerScores
    strong_points: tuple[str, ...] = ()
    weak_points: tuple[str, ...] = ()
    feedback: str = ""
    ai_meta: AIMeta = field(default_factory=AIMeta)
    audio_file: AudioFile | None = None
    evaluated_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["strong_points"] = list(self.strong_points)
        payload["weak_points"] = list(self.weak_points)
        return payload

    @classmethod
    def from_dict(cls, data: dict) -> "Answer":
        audio = data.get("audio_file")
        return cls(
            question_id=str(data["question_id"]),
            transcript=str(data.get("transcript") or ""),
            duration_sec=float(data.get("duration_sec") or 0.0),
            speech_metrics=SpeechMetrics(**dict(data.get("speech_metrics") or {})),
            scores=AnswerScores(**dict(data["scores"])),
            strong_points=tuple(data.get("strong_points") or ()),
            weak_points=tuple(data.get("weak_points") or ()),
            feedback=str(data.get("feedback") or ""),
            ai_meta=AIMeta(**dict(data.get("ai_meta") or {})),
            audio_file=AudioFile(**audio) if isinstance(audio, dict) else None,
            evaluated_at=float(data.get("evaluated_at") or 0.0),
        )


@dataclass
class InterviewSession:
    id: str
    user_id: str
    interview_type: str
    difficulty: str
    questions: tuple[Question, ...]
    answers: dict[str, Answer] = field(default_factory=dict)
    processing_locks: dict[str, ProcessingLock] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    @property
    def status(self) -> SessionStatus:
        total = len(self.questions)
        if total > 0 and len(self.answers) >= total:
            return SessionStatus.COMPLETED
        return SessionStatus.IN_PROGRESS

    def find_question(self, question_id: str) -> Question | None:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def answer_for(self, question_id: str) -> Answer | None:
        return self.answers.get(question_id)

    def answered_question_ids(self) -> list[str]:
        return [question.id for question in self.questions if question.id in self.answers]
