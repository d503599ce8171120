import logging
import os
from typing import Optional

import httpx

from outcome import Outcome

logger = logging.getLogger(__name__)

DEEP_ANALYSIS_URL = os.getenv("DEEP_ANALYSIS_URL", "http://127.0.0.1:8000")
DEEP_ANALYSIS_TIMEOUT = float(os.getenv("DEEP_ANALYSIS_TIMEOUT", "3.0"))


def turn_fallback() -> dict:
    return {"hireability_index": 0, "candidate_level": "Analyzing..."}


def report_fallback() -> dict:
    return {"hireability_index": 0, "candidate_level": "Analyzing...", "momentum": "Stable"}


def build_payload(
    avg_content_score: float,
    avg_eye_contact: float,
    avg_posture: float,
    avg_emotion_score: float,
    user_id: int,
) -> dict:
    return {
        "avg_content_score": avg_content_score,
        "avg_eye_contact": avg_eye_contact,
        "avg_posture": avg_posture,
        "avg_emotion_score": avg_emotion_score,
        "userId": user_id,
    }


class DeepAnalysisClient:
    """Client for the external hireability scoring service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or DEEP_ANALYSIS_URL).rstrip("/")
        self.timeout = DEEP_ANALYSIS_TIMEOUT if timeout is None else timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def analyze(self, payload: dict, fallback: dict) -> Outcome:
        try:
            async with self._client() as client:
                response = await client.post("/analyze", json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.warning(f"[DEEP] Analysis service offline: {e!r}")
            return Outcome.fallback(fallback, repr(e))

        if not isinstance(data, dict):
            logger.warning("[DEEP] Analysis service returned a non-object body")
            return Outcome.fallback(fallback, "unexpected response body")
        return Outcome.ok(data)

    async def train(self) -> None:
        try:
            async with self._client() as client:
                response = await client.post("/train")
                response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.info(f"[DEEP] Training trigger ignored: {e!r}")
