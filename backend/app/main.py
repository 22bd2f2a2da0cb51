import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from core.config import Settings, load_settings
from app.api.interviews import router as interviews_router
from app.interview.evaluator import ContentEvaluator, OpenRouterContentEvaluator
from app.interview.locks import SessionLockManager
from app.interview.pipeline import AnswerEvaluationPipeline
from app.interview.store import SessionStore, build_session_store
from app.services.transcription_service import DeepgramTranscriber, Transcriber
from app.services.tts_service import DeepgramSpeechSynthesizer
from app.system_metrics import get_metrics_snapshot

logger = logging.getLogger("app.main")


def create_app(
    settings: Settings | None = None,
    store: SessionStore | None = None,
    transcriber: Transcriber | None = None,
    evaluator: ContentEvaluator | None = None,
    synthesizer=None,
) -> FastAPI:
    settings = settings or load_settings()
    store = store or build_session_store(settings)
    transcriber = transcriber or DeepgramTranscriber(settings)
    evaluator = evaluator or OpenRouterContentEvaluator(settings)
    synthesizer = synthesizer or DeepgramSpeechSynthesizer(settings)

    app = FastAPI(title="Spoken Answer Evaluation")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    app.state.settings = settings
    app.state.session_store = store
    app.state.synthesizer = synthesizer
    app.state.pipeline = AnswerEvaluationPipeline(
        settings=settings,
        store=store,
        transcriber=transcriber,
        evaluator=evaluator,
        lock_manager=SessionLockManager(store, stale_after_sec=settings.lock_stale_after_sec),
    )

    @app.on_event("startup")
    async def startup_banner():
        logger.info("[SYSTEM] CORS allow_origins=%s", list(settings.cors_allow_origins))
        logger.info(
            "[SYSTEM] session_store=%s lock_stale_after_sec=%s timeouts stt=%s eval=%s tts=%s",
            type(store).__name__,
            settings.lock_stale_after_sec,
            settings.transcription_timeout_sec,
            settings.evaluation_timeout_sec,
            settings.tts_timeout_sec,
        )
        if not settings.deepgram_api_key:
            logger.warning("[SYSTEM] DEEPGRAM_API_KEY not set - transcription and question audio will fail")
        if not settings.openrouter_api_key:
            logger.warning("[SYSTEM] OPENROUTER_API_KEY not set - content evaluation will fail")

    @app.on_event("shutdown")
    async def shutdown_handler():
        for component in (transcriber, synthesizer, store):
            close = getattr(component, "aclose", None) or getattr(component, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as exc:
                logger.warning("[SYSTEM] shutdown close failed for %s: %s", type(component).__name__, exc)
        logger.info("[SYSTEM] shutdown complete")

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok", "service": "answer-evaluation"}

    @app.get("/api/metrics")
    async def metrics(request: Request):
        return get_metrics_snapshot({"session_store": type(request.app.state.session_store).__name__})

    app.include_router(interviews_router)
    return app


app = create_app()
