import threading
import time
from typing import Any


_lock = threading.Lock()
_metrics: dict[str, float] = {
    "answers_submitted": 0.0,
    "answers_evaluated": 0.0,
    "answers_replayed": 0.0,
    "answers_lock_contended": 0.0,
    "answers_rejected_metadata": 0.0,
    "answers_rejected_quality": 0.0,
    "answers_provider_failures": 0.0,
    "answers_persist_conflicts": 0.0,
    "stale_locks_reclaimed": 0.0,
    "transcription_total_ms": 0.0,
    "transcription_samples": 0.0,
    "evaluation_total_ms": 0.0,
    "evaluation_samples": 0.0,
}


def increment_metric(name: str, amount: float = 1.0) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        _metrics[key] = float(_metrics.get(key, 0.0)) + float(amount)


def observe_provider_latency_ms(provider: str, value_ms: float) -> None:
    latency = max(0.0, float(value_ms or 0.0))
    prefix = str(provider or "").strip()
    with _lock:
        _metrics[f"{prefix}_total_ms"] = float(_metrics.get(f"{prefix}_total_ms", 0.0)) + latency
        _metrics[f"{prefix}_samples"] = float(_metrics.get(f"{prefix}_samples", 0.0)) + 1.0


def reset_metrics() -> None:
    with _lock:
        for key in list(_metrics):
            _metrics[key] = 0.0


def get_metrics_snapshot(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    with _lock:
        data = dict(_metrics)

    transcription_samples = max(1.0, float(data.get("transcription_samples") or 0.0))
    evaluation_samples = max(1.0, float(data.get("evaluation_samples") or 0.0))

    payload: dict[str, Any] = {"generated_at": time.time()}
    for key, value in data.items():
        payload[key] = float(value) if key.endswith("_ms") else int(value)
    payload["avg_transcription_ms"] = round(float(data.get("transcription_total_ms") or 0.0) / transcription_samples, 2)
    payload["avg_evaluation_ms"] = round(float(data.get("evaluation_total_ms") or 0.0) / evaluation_samples, 2)

    if extra:
        payload.update(extra)
    return payload
