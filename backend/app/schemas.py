from pydantic import BaseModel, ConfigDict, Field

from app.interview.models import Difficulty, InterviewType


class QuestionIn(BaseModel):
    id: str = Field(min_length=1)
    text: str = Field(min_length=1)
    category: InterviewType = InterviewType.BEHAVIORAL


class CreateInterviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    interview_type: InterviewType = Field(default=InterviewType.BEHAVIORAL, alias="type")
    difficulty: Difficulty = Difficulty.MEDIUM
    questions: list[QuestionIn] = Field(min_length=1)


class QuestionAudioRequest(BaseModel):
    question_id: str = Field(alias="questionId", min_length=1)
    text: str = Field(min_length=1)


class SpeechMetricsOut(BaseModel):
    wordCount: int
    fillerWordCount: int
    pauseCount: int
    wordsPerMinute: float
    disfluencyRatio: float


class ScoresOut(BaseModel):
    relevance: int
    technicalDepth: int
    clarity: int
    fluency: int
    speechFlowScore: int
    overall: int


class AIMetaOut(BaseModel):
    transcriptionMs: int
    evaluationMs: int


class AnswerResultResponse(BaseModel):
    status: str
    questionId: str
    transcript: str
    scores: ScoresOut
    strongPoints: list[str]
    weakPoints: list[str]
    feedback: str
    speechMetrics: SpeechMetricsOut
    aiMeta: AIMetaOut


class ProcessingResponse(BaseModel):
    status: str
    message: str
