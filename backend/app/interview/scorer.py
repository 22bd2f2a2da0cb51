from __future__ import annotations

from app.interview.models import Answer, AnswerScores
from app.interview.speech_metrics import round_half_up, to_int_score

SCORE_WEIGHTS = {
    "relevance": 0.35,
    "technical_depth": 0.30,
    "clarity": 0.20,
    "fluency": 0.10,
    "speech_flow_score": 0.05,
}


def _safe_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except Exception:
        return default


def calculate_overall_score(
    relevance: float,
    technical_depth: float,
    clarity: float,
    fluency: float,
    speech_flow_score: float,
) -> int:
    weighted = (
        SCORE_WEIGHTS["relevance"] * _safe_float(relevance)
        + SCORE_WEIGHTS["technical_depth"] * _safe_float(technical_depth)
        + SCORE_WEIGHTS["clarity"] * _safe_float(clarity)
        + SCORE_WEIGHTS["fluency"] * _safe_float(fluency)
        + SCORE_WEIGHTS["speech_flow_score"] * _safe_float(speech_flow_score)
    )
    return to_int_score(weighted)


def build_answer_scores(
    relevance: int,
    technical_depth: int,
    clarity: int,
    fluency: int,
    speech_flow_score: int,
) -> AnswerScores:
    return AnswerScores(
        relevance=to_int_score(relevance),
        technical_depth=to_int_score(technical_depth),
        clarity=to_int_score(clarity),
        fluency=to_int_score(fluency),
        speech_flow_score=to_int_score(speech_flow_score),
        overall=calculate_overall_score(relevance, technical_depth, clarity, fluency, speech_flow_score),
    )


def calculate_session_score(answers: list[Answer]) -> int | None:
    """Session-level overall score for reports.

    Uses the mean of stored ``overall`` values; falls back to the answer
    weighting applied to mean sub-scores when an overall is missing.
    """
    items = [answer for answer in list(answers or []) if answer is not None]
    if not items:
        return None

    overall_values = [getattr(answer.scores, "overall", None) for answer in items]
    if all(value is not None for value in overall_values):
        return to_int_score(sum(_safe_float(value) for value in overall_values) / len(overall_values))

    count = len(items)
    means = {
        key: int(round_half_up(sum(_safe_float(getattr(answer.scores, key, 0)) for answer in items) / count))
        for key in SCORE_WEIGHTS
    }
    return calculate_overall_score(**means)
