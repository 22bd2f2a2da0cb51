from __future__ import annotations

from dataclasses import dataclass
import math
import re

from app.interview.models import SpeechMetrics

WORD_PATTERN = re.compile(r"\b[\w'-]+\b")

FILLER_WORDS = frozenset({"uh", "um", "like", "actually", "basically"})
FILLER_PHRASES = (("you", "know"),)

PAUSE_INTERVAL_SEC = 12.0
SHORT_ANSWER_WORDS = 20
MIN_WPM = 70.0
MAX_WPM = 185.0
PACE_PENALTY = 12
MAX_SHORT_ANSWER_PENALTY = 40
MAX_FLUENCY_PENALTY = 70
MAX_SPEECH_FLOW_PENALTY = 75


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(float(value) * factor + 0.5) / factor


def to_int_score(value) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return max(0, min(100, int(round_half_up(number))))


@dataclass(frozen=True)
class SpeechAnalysis:
    metrics: SpeechMetrics
    fluency_score: int
    speech_flow_score: int
    short_answer_penalty: int
    pace_penalty: int


def tokenize(transcript: str) -> list[str]:
    return [token.lower() for token in WORD_PATTERN.findall(str(transcript or ""))]


def count_fillers(tokens: list[str]) -> int:
    count = sum(1 for token in tokens if token in FILLER_WORDS)
    for phrase in FILLER_PHRASES:
        width = len(phrase)
        for index in range(len(tokens) - width + 1):
            if tuple(tokens[index:index + width]) == phrase:
                count += 1
    return count


def analyze_speech(transcript: str, duration_sec: float) -> SpeechAnalysis:
    """Derive fluency indicators from a transcript and its spoken duration.

    Scoring is penalty based: every indicator starts at 100 and loses points
    for filler words, long pauses, very short answers and an unusual pace.
    """
    tokens = tokenize(transcript)
    duration = max(0.0, float(duration_sec or 0.0))

    word_count = len(tokens)
    filler_word_count = count_fillers(tokens)
    words_per_minute = round_half_up(word_count / duration * 60.0, 2) if duration > 0 else 0.0
    pause_count = max(0, int(round_half_up(duration / PAUSE_INTERVAL_SEC)) - 1)
    if word_count > 0:
        disfluency_ratio = round_half_up((filler_word_count + pause_count) / word_count, 3)
    else:
        disfluency_ratio = 1.0

    short_answer_penalty = 0
    if word_count < SHORT_ANSWER_WORDS:
        short_answer_penalty = min(MAX_SHORT_ANSWER_PENALTY, (SHORT_ANSWER_WORDS - word_count) * 2)
    pace_penalty = PACE_PENALTY if (words_per_minute < MIN_WPM or words_per_minute > MAX_WPM) else 0

    fluency_penalty = min(
        MAX_FLUENCY_PENALTY,
        filler_word_count * 3 + pause_count * 2 + short_answer_penalty + pace_penalty,
    )
    speech_flow_penalty = min(
        MAX_SPEECH_FLOW_PENALTY,
        int(round_half_up(disfluency_ratio * 100)) + short_answer_penalty + pace_penalty,
    )

    return SpeechAnalysis(
        metrics=SpeechMetrics(
            word_count=word_count,
            filler_word_count=filler_word_count,
            pause_count=pause_count,
            words_per_minute=words_per_minute,
            disfluency_ratio=disfluency_ratio,
        ),
        fluency_score=to_int_score(100 - fluency_penalty),
        speech_flow_score=to_int_score(100 - speech_flow_penalty),
        short_answer_penalty=short_answer_penalty,
        pace_penalty=pace_penalty,
    )
