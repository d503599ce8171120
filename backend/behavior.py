from dataclasses import dataclass
from typing import Iterable, Optional

GOOD_EYE_CONTACT = "Good"
GOOD_POSTURE = "Good Posture"
NEGATIVE_EMOTIONS = {"angry", "sad", "scared", "disgusted", "no face"}
POSITIVE_EMOTIONS = {"neutral", "happy", "surprised"}


@dataclass
class BehaviorScores:
    eye_score: float
    posture_score: float
    emotion_score: float
    composite_score: float
    status: str


def neutral_scores() -> BehaviorScores:
    return BehaviorScores(10, 10, 10, 10, "Normal")


def fallback_scores() -> BehaviorScores:
    return BehaviorScores(7, 7, 7, 7.0, "Normal")


def _label(value: Optional[str]) -> str:
    return (value or "").strip()


def score_latest(sample) -> BehaviorScores:
    """Score the most recent behaviour sample for turn prompting.

    ``sample`` is anything with ``eye_contact``, ``posture_alert`` and
    ``emotion`` attributes, or None when the session has no samples yet.
    """
    if sample is None:
        return neutral_scores()

    eye = _label(sample.eye_contact)
    posture = _label(sample.posture_alert)
    emotion = _label(sample.emotion)

    issues: list[str] = []
    score = 10

    eye_score = 10 if eye == GOOD_EYE_CONTACT else 4
    posture_score = 10 if posture == GOOD_POSTURE else 4

    if eye != GOOD_EYE_CONTACT:
        issues.append("not making eye contact (looking away)")
        score -= 3
    if posture != GOOD_POSTURE:
        issues.append("slouching/poor posture")
        score -= 3
    if emotion.lower() in NEGATIVE_EMOTIONS:
        issues.append(f"appearing {emotion}")
        score -= 2

    score = max(score, 0)
    if issues:
        status = f"USER BEHAVIOR ISSUES: The candidate is currently {' and '.join(issues)}."
    else:
        status = "User behavior is excellent."

    # The composite doubles as the emotion signal sent to deep analysis per turn.
    return BehaviorScores(eye_score, posture_score, score, score, status)


def aggregate_session(samples: Iterable) -> BehaviorScores:
    """Average every sample of a session for the final report.

    Uses a 10/5 rule, not the 10/4 rule of :func:`score_latest`. Report
    scores are built on these numbers.
    """
    samples = list(samples)
    if not samples:
        return neutral_scores()

    eye_total = posture_total = emotion_total = 0.0
    for s in samples:
        eye_total += 10 if _label(s.eye_contact) == GOOD_EYE_CONTACT else 5
        posture_total += 10 if _label(s.posture_alert) == GOOD_POSTURE else 5
        emotion_total += 10 if _label(s.emotion).lower() in POSITIVE_EMOTIONS else 5

    n = len(samples)
    eye, posture, emotion = eye_total / n, posture_total / n, emotion_total / n
    return BehaviorScores(
        eye_score=eye,
        posture_score=posture,
        emotion_score=emotion,
        composite_score=(eye + posture + emotion) / 3,
        status=f"Aggregated over {n} behavior samples.",
    )
