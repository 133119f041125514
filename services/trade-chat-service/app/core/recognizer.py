from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from app.core.metrics import metrics
from app.core.recognition import RecognitionResult, parse_recognition
from app.core.settings import SETTINGS

logger = logging.getLogger(__name__)


class RecognizerError(Exception):
    def __init__(self, code: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


def _recognizer_endpoint() -> str:
    return f"{SETTINGS.recognizer_url}/luis/v2.0/apps/{SETTINGS.recognizer_app_id}"


def _timeout_sec() -> float:
    return SETTINGS.recognizer_timeout_ms / 1000.0


def _headers(trace_id: str, request_id: str) -> dict[str, str]:
    headers = {"x-trace-id": trace_id, "x-request-id": request_id, "accept": "application/json"}
    if SETTINGS.recognizer_key:
        headers["Ocp-Apim-Subscription-Key"] = SETTINGS.recognizer_key
    return headers


async def fetch_recognition(text: str, trace_id: str, request_id: str) -> Any:
    params = {"q": text, "verbose": "true"}
    started = time.perf_counter()
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                _recognizer_endpoint(),
                params=params,
                headers=_headers(trace_id, request_id),
                timeout=_timeout_sec(),
            )
    except (httpx.TimeoutException, httpx.NetworkError) as exc:
        metrics.inc("ts_recognizer_total", {"result": "timeout"})
        logger.warning("recognizer call failed trace_id=%s: %s", trace_id, exc)
        raise RecognizerError("recognizer_unavailable", "recognizer did not respond") from exc

    took_ms = int((time.perf_counter() - started) * 1000)
    metrics.inc("ts_recognizer_latency_ms", value=max(0, took_ms))
    if response.status_code >= 400:
        metrics.inc("ts_recognizer_total", {"result": f"http_{response.status_code}"})
        raise RecognizerError(
            "recognizer_error",
            f"recognizer returned {response.status_code}",
            status_code=response.status_code,
        )
    try:
        payload = response.json()
    except ValueError as exc:
        metrics.inc("ts_recognizer_total", {"result": "invalid_json"})
        raise RecognizerError("recognizer_error", "recognizer returned invalid json") from exc
    metrics.inc("ts_recognizer_total", {"result": "ok"})
    return payload


async def recognize(text: str, trace_id: str, request_id: str) -> RecognitionResult:
    payload = await fetch_recognition(text, trace_id, request_id)
    return parse_recognition(payload)
