import asyncio

import pytest

from conftest import FakeLLM
from llm import ContentScorer, GeminiClient, parse_turn_response


def run(coro):
    return asyncio.run(coro)


def test_parse_turn_response_from_surrounding_text():
    turn = parse_turn_response('Blah {"score": 8, "question": "Tell me about X"} blah')

    assert turn.score == 8
    assert turn.question == "Tell me about X"


def test_parse_turn_response_without_json():
    with pytest.raises(ValueError):
        parse_turn_response("I think the candidate did well.")


def test_score_turn_falls_back_on_plain_text():
    scorer = ContentScorer(FakeLLM(["Sorry, I cannot answer in JSON."]))

    outcome = run(scorer.score_turn("prompt"))

    assert outcome.degraded
    assert outcome.data.score == 5
    assert outcome.data.question == "Let's move forward."


def test_score_turn_falls_back_on_broken_json():
    scorer = ContentScorer(FakeLLM(['{"score": 8, "question": }']))

    outcome = run(scorer.score_turn("prompt"))

    assert outcome.degraded
    assert outcome.data.score == 5


def test_score_turn_falls_back_when_call_raises():
    scorer = ContentScorer(FakeLLM(error=RuntimeError("quota exceeded")))

    outcome = run(scorer.score_turn("prompt"))

    assert outcome.degraded
    assert "quota exceeded" in outcome.reason
    assert outcome.data.question == "Let's move forward."


def test_score_turn_accepts_callable_text():
    scorer = ContentScorer(FakeLLM([lambda: '```json\n{"score": 9, "question": "Why Rust?"}\n```']))

    outcome = run(scorer.score_turn("prompt"))

    assert not outcome.degraded
    assert outcome.data.score == 9
    assert outcome.data.question == "Why Rust?"


def test_score_turn_keeps_defaults_for_missing_fields():
    scorer = ContentScorer(FakeLLM(['{"score": 0, "question": ""}']))

    outcome = run(scorer.score_turn("prompt"))

    assert not outcome.degraded
    assert outcome.data.score == 5
    assert outcome.data.question == "Let's move forward."


def test_write_report_returns_text_verbatim():
    text = "Summary: solid.\nStrengths: APIs.\nImprove: testing."
    scorer = ContentScorer(FakeLLM([text]))

    outcome = run(scorer.write_report("prompt"))

    assert not outcome.degraded
    assert outcome.data == text


@pytest.mark.parametrize("llm", [FakeLLM(error=TimeoutError()), FakeLLM(["   "])])
def test_write_report_fallback(llm):
    outcome = run(ContentScorer(llm).write_report("prompt"))

    assert outcome.degraded
    assert outcome.data == "Report generated."


def test_gemini_client_without_key_degrades():
    scorer = ContentScorer(GeminiClient(api_key=""))

    outcome = run(scorer.score_turn("prompt"))

    assert outcome.degraded
    assert "GEMINI_API_KEY" in outcome.reason


@pytest.mark.parametrize("raw", ["NaN", "Infinity", "-Infinity", "1e400"])
def test_score_turn_rejects_non_finite_scores(raw):
    scorer = ContentScorer(FakeLLM([f'{{"score": {raw}, "question": "Q1"}}']))

    outcome = run(scorer.score_turn("prompt"))

    assert outcome.degraded
    assert outcome.data.score == 5
    assert outcome.data.question == "Let's move forward."
