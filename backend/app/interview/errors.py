from __future__ import annotations


class AnswerEvaluationError(Exception):
    """Base class for failures that end an answer submission."""

    status_code = 500
    default_message = "Answer evaluation failed."

    def __init__(self, message: str | None = None, *, reason: str = ""):
        self.message = str(message or self.default_message)
        self.reason = str(reason or self.message)
        super().__init__(self.message)


class InvalidAudioMetadata(AnswerEvaluationError):
    status_code = 400
    default_message = "Audio duration is inconsistent with uploaded file size."


class LowAudioQuality(AnswerEvaluationError):
    status_code = 400
    default_message = "Audio quality is too low to evaluate. Please re-record your answer clearly."


class UpstreamProviderError(AnswerEvaluationError):
    status_code = 502
    default_message = "Answer evaluation failed. Please retry."


class TranscriptionFailed(UpstreamProviderError):
    pass


class EmptyTranscript(TranscriptionFailed):
    status_code = 400
    default_message = "We could not hear your answer clearly. Please speak clearly and record your response again."


class EvaluationParseError(UpstreamProviderError):
    pass


class ProviderTimeout(UpstreamProviderError):
    pass


class SpeechSynthesisFailed(UpstreamProviderError):
    default_message = "Question audio generation failed."


class LockLost(UpstreamProviderError):
    """The lock was reclaimed before the result could be persisted."""

    default_message = "Answer evaluation failed. Please retry."


class SessionNotFound(AnswerEvaluationError):
    status_code = 404
    default_message = "Interview session not found."


class SessionAccessDenied(AnswerEvaluationError):
    status_code = 403
    default_message = "Not authorized to access this session."


class UnknownQuestion(AnswerEvaluationError):
    status_code = 400
    default_message = "Invalid questionId for this session."
