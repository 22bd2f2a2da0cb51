from __future__ import annotations

import asyncio
from dataclasses import dataclass
import json
import logging
import math
import re
import time
from typing import Protocol

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.config import Settings
from app.interview.errors import EvaluationParseError, ProviderTimeout, UpstreamProviderError
from app.interview.speech_metrics import round_half_up

logger = logging.getLogger("app.interview.evaluator")

MAX_POINTS = 5

SYSTEM_PROMPT = "\n".join([
    "You evaluate interview answers.",
    "Return ONLY valid JSON.",
    "No markdown, no explanation, no backticks.",
    "Required schema:",
    '{"relevance":0,"technicalDepth":0,"clarity":0,"strongPoints":[""],"weakPoints":[""],"feedback":""}',
    "All score fields must be numbers from 0 to 100.",
])

_FENCED_JSON = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$", re.IGNORECASE)


class ContentEvaluation(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    relevance: int
    technical_depth: int = Field(alias="technicalDepth")
    clarity: int
    strong_points: list[str] = Field(default_factory=list, alias="strongPoints")
    weak_points: list[str] = Field(default_factory=list, alias="weakPoints")
    feedback: str = ""

    @field_validator("relevance", "technical_depth", "clarity", mode="before")
    @classmethod
    def _score(cls, value):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("score must be a number")
        if not math.isfinite(value):
            raise ValueError("score must be finite")
        return max(0, min(100, int(round_half_up(value))))

    @field_validator("strong_points", "weak_points", mode="before")
    @classmethod
    def _points(cls, value):
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("points must be a list")
        points = [item.strip() for item in value if isinstance(item, str) and item.strip()]
        return points[:MAX_POINTS]

    @field_validator("feedback", mode="before")
    @classmethod
    def _feedback(cls, value):
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("feedback must be a string")
        return value.strip()


@dataclass(frozen=True)
class EvaluationResult:
    evaluation: ContentEvaluation
    evaluation_ms: int = 0


class ContentEvaluator(Protocol):
    async def evaluate(
        self,
        question_text: str,
        transcript: str,
        interview_type: str,
        difficulty: str,
    ) -> EvaluationResult:
        ...


def parse_evaluation(content: str) -> ContentEvaluation:
    text = str(content or "").strip()
    if not text:
        raise EvaluationParseError(reason="Evaluation provider returned empty content.")

    fenced = _FENCED_JSON.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise EvaluationParseError(reason="Evaluation provider response was not valid JSON.") from exc
    if not isinstance(data, dict):
        raise EvaluationParseError(reason="Evaluation provider response was not a JSON object.")

    try:
        return ContentEvaluation.model_validate(data)
    except ValidationError as exc:
        raise EvaluationParseError(reason=f"Evaluation response failed schema validation: {exc.error_count()} errors") from exc


def build_user_prompt(question_text: str, transcript: str, interview_type: str, difficulty: str) -> str:
    return "\n".join([
        f"Interview Type: {interview_type}",
        f"Difficulty: {difficulty}",
        f"Question: {question_text}",
        "Candidate Answer:",
        transcript,
    ])


class OpenRouterContentEvaluator:
    """Scores answer content with a chat model behind an OpenAI-compatible API.

    One attempt per submission; the caller resubmits to retry.
    """

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None):
        self._model = settings.openrouter_model
        self._timeout_sec = settings.evaluation_timeout_sec
        self._configured = bool(settings.openrouter_api_key) or client is not None
        self.client = client or AsyncOpenAI(
            api_key=settings.openrouter_api_key or "missing",
            base_url=settings.openrouter_base_url,
            max_retries=0,
        )

    async def evaluate(
        self,
        question_text: str,
        transcript: str,
        interview_type: str,
        difficulty: str,
    ) -> EvaluationResult:
        if not self._configured:
            raise UpstreamProviderError(reason="OPENROUTER_API_KEY is not configured.")

        started = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self._model,
                    temperature=0.2,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {
                            "role": "user",
                            "content": build_user_prompt(question_text, transcript, interview_type, difficulty),
                        },
                    ],
                ),
                timeout=self._timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeout(reason="Evaluation provider timed out.") from exc
        except OpenAIError as exc:
            raise UpstreamProviderError(reason=f"Evaluation request failed: {exc}") from exc
        evaluation_ms = int((time.perf_counter() - started) * 1000)

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as exc:
            raise EvaluationParseError(reason="Evaluation provider returned no choices.") from exc

        evaluation = parse_evaluation(content)
        logger.info("content evaluation complete | ms=%s model=%s", evaluation_ms, self._model)
        return EvaluationResult(evaluation=evaluation, evaluation_ms=evaluation_ms)
