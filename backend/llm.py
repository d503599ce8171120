import json
import logging
import math
import os
import re
from dataclasses import dataclass
from typing import Optional

from google import genai

from outcome import Outcome

logger = logging.getLogger(__name__)

GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

DEFAULT_TURN_SCORE = 5
DEFAULT_TURN_REPLY = "Let's move forward."
DEFAULT_REPORT = "Report generated."

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class LLMUnavailable(RuntimeError):
    pass


class GeminiClient:
    """Async text generation on top of google-genai."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key if api_key is not None else os.getenv("GEMINI_API_KEY")
        self.model = model or GEMINI_MODEL
        self._client = None

    def _get_client(self) -> genai.Client:
        if not self.api_key:
            raise LLMUnavailable("GEMINI_API_KEY not configured")
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def generate(self, prompt: str):
        response = await self._get_client().aio.models.generate_content(
            model=self.model,
            contents=prompt,
        )
        return response.text

    async def list_models(self) -> list[dict]:
        pager = await self._get_client().aio.models.list()
        return [
            {"name": m.name, "display_name": getattr(m, "display_name", None)}
            async for m in pager
        ]


@dataclass
class TurnScore:
    score: float
    question: str


def _as_text(value) -> str:
    if callable(value):
        value = value()
    return value or ""


def _coerce_score(value, default: float) -> float:
    if not value:
        return default
    score = float(value)
    if not math.isfinite(score):
        raise ValueError(f"score is not a finite number: {value!r}")
    return score


def parse_turn_response(text: str) -> TurnScore:
    """Pull ``{"score", "question"}`` out of a model reply.

    Raises ValueError when there is no JSON object or it does not parse.
    """
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        raise ValueError("no JSON object in model output")
    data = json.loads(match.group())
    if not isinstance(data, dict):
        raise ValueError("model output is not a JSON object")
    return TurnScore(
        score=_coerce_score(data.get("score"), DEFAULT_TURN_SCORE),
        question=data.get("question") or DEFAULT_TURN_REPLY,
    )


class ContentScorer:
    """Runs turn and report prompts through the LLM with documented fallbacks."""

    def __init__(self, llm):
        self.llm = llm

    async def score_turn(self, prompt: str) -> Outcome:
        try:
            text = _as_text(await self.llm.generate(prompt))
            return Outcome.ok(parse_turn_response(text))
        except Exception as e:
            logger.warning(f"[LLM] Turn scoring fell back to defaults: {e}")
            return Outcome.fallback(TurnScore(DEFAULT_TURN_SCORE, DEFAULT_TURN_REPLY), str(e))

    async def write_report(self, prompt: str) -> Outcome:
        try:
            text = _as_text(await self.llm.generate(prompt))
        except Exception as e:
            logger.warning(f"[LLM] Report generation failed: {e}")
            return Outcome.fallback(DEFAULT_REPORT, str(e))
        if not text.strip():
            logger.warning("[LLM] Report generation returned empty text")
            return Outcome.fallback(DEFAULT_REPORT, "empty response")
        return Outcome.ok(text)
