import os
from dataclasses import dataclass, field
from pathlib import Path
from dotenv import load_dotenv

_BACKEND_ROOT = Path(__file__).resolve().parents[1]
_BACKEND_ENV_PATH = _BACKEND_ROOT / ".env"
load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=False)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name) or default).strip()


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in _TRUE_VALUES


def _env_float(name: str, default: float, minimum: float) -> float:
    try:
        value = float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        value = default
    return max(minimum, value)


def _env_set(name: str, lower: bool = False) -> frozenset[str]:
    items = []
    for item in _env_str(name).split(","):
        value = item.strip()
        if not value:
            continue
        items.append(value.lower() if lower else value)
    return frozenset(items)


@dataclass(frozen=True)
class Settings:
    env: str = "development"

    deepgram_api_key: str = ""
    deepgram_base_url: str = "https://api.deepgram.com"
    deepgram_stt_model: str = "nova-3"
    deepgram_tts_model: str = "aura-2-thalia-en"

    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "openai/gpt-4o-mini"

    transcription_timeout_sec: float = 20.0
    evaluation_timeout_sec: float = 25.0
    tts_timeout_sec: float = 15.0

    lock_stale_after_sec: float = 120.0
    max_duration_sec: float = 180.0
    min_word_count: int = 8
    min_transcript_confidence: float = 0.45

    upload_dir: Path = _BACKEND_ROOT / "uploads" / "answers"
    max_upload_bytes: int = 15 * 1024 * 1024

    use_redis_session_store: bool = False
    redis_url: str = ""

    max_interviews_per_user: int = 2
    quota_disabled: bool = False
    premium_user_ids: frozenset[str] = field(default_factory=frozenset)
    premium_emails: frozenset[str] = field(default_factory=frozenset)

    jwt_secret: str = ""
    allow_unverified_jwt_dev: bool = False

    cors_allow_origins: tuple[str, ...] = (
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    )

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    def is_premium(self, user_id: str, email: str = "") -> bool:
        if self.quota_disabled:
            return True
        if str(user_id or "").strip() in self.premium_user_ids:
            return True
        normalized_email = str(email or "").strip().lower()
        return bool(normalized_email) and normalized_email in self.premium_emails


def load_settings() -> Settings:
    """Resolve every tunable from the process environment once."""
    origins = tuple(sorted(_env_set("CORS_ALLOW_ORIGINS"))) or Settings.cors_allow_origins
    upload_dir = _env_str("ANSWER_UPLOAD_DIR")
    return Settings(
        env=_env_str("ENV", "development").lower(),
        deepgram_api_key=_env_str("DEEPGRAM_API_KEY"),
        deepgram_base_url=_env_str("DEEPGRAM_BASE_URL", Settings.deepgram_base_url).rstrip("/"),
        deepgram_stt_model=_env_str("DEEPGRAM_STT_MODEL", Settings.deepgram_stt_model),
        deepgram_tts_model=_env_str("DEEPGRAM_TTS_MODEL", Settings.deepgram_tts_model),
        openrouter_api_key=_env_str("OPENROUTER_API_KEY"),
        openrouter_base_url=_env_str("OPENROUTER_BASE_URL", Settings.openrouter_base_url).rstrip("/"),
        openrouter_model=_env_str("OPENROUTER_MODEL", Settings.openrouter_model),
        transcription_timeout_sec=_env_float("TRANSCRIPTION_TIMEOUT_SEC", 20.0, 1.0),
        evaluation_timeout_sec=_env_float("EVALUATION_TIMEOUT_SEC", 25.0, 1.0),
        tts_timeout_sec=_env_float("TTS_TIMEOUT_SEC", 15.0, 1.0),
        lock_stale_after_sec=_env_float("LOCK_STALE_AFTER_SEC", 120.0, 5.0),
        max_duration_sec=_env_float("MAX_ANSWER_DURATION_SEC", 180.0, 1.0),
        min_word_count=int(_env_float("MIN_ANSWER_WORD_COUNT", 8, 0)),
        min_transcript_confidence=_env_float("MIN_TRANSCRIPT_CONFIDENCE", 0.45, 0.0),
        upload_dir=Path(upload_dir) if upload_dir else Settings.upload_dir,
        max_upload_bytes=int(_env_float("MAX_ANSWER_UPLOAD_BYTES", 15 * 1024 * 1024, 1024)),
        use_redis_session_store=_env_flag("USE_REDIS_SESSION_STORE"),
        redis_url=_env_str("REDIS_URL"),
        max_interviews_per_user=int(_env_float("MAX_INTERVIEWS_PER_USER", 2, 0)),
        quota_disabled=_env_flag("INTERVIEW_QUOTA_DISABLED"),
        premium_user_ids=_env_set("PREMIUM_USER_IDS"),
        premium_emails=_env_set("PREMIUM_EMAILS", lower=True),
        jwt_secret=_env_str("JWT_SECRET"),
        allow_unverified_jwt_dev=_env_flag("ALLOW_UNVERIFIED_JWT_DEV"),
        cors_allow_origins=origins,
    )
