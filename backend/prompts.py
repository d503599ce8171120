from typing import Optional

DEFAULT_ROLE = "Software Developer"
NO_CV = "No CV uploaded."


def format_transcript(transcript: list[str]) -> str:
    return "\n".join(transcript)


def build_turn_prompt(
    persona: dict,
    job_description: Optional[str],
    knowledge_base: Optional[str],
    difficulty: str,
    behavior_status: str,
    transcript: list[str],
) -> str:
    return f"""You are a {persona.get("gender", "neutral")} interviewer with {persona.get("personality", "professional")} personality.
Role: {job_description or DEFAULT_ROLE}. Difficulty Level: {difficulty.upper()}.
Candidate CV: {knowledge_base or NO_CV}
Behavioral Observation: {behavior_status}

Conversation so far:
{format_transcript(transcript)}

TASK:
1. Rate the user's last answer (0-10).
2. Ask the next question based on CV.

Respond ONLY in JSON: {{"score": <number>, "question": "<text>"}}"""


def build_report_prompt(
    job_description: Optional[str],
    overall_score: float,
    deep_score: dict,
    transcript: list[str],
) -> str:
    return f"""Role: {job_description or DEFAULT_ROLE}.
Overall Score: {overall_score:.1f}/10.
Deep Analysis: Hireability {deep_score.get("hireability_index")}%, Level {deep_score.get("candidate_level")}.
Transcript:
{format_transcript(transcript)}

Write a professional recruiter report with: Summary, Strengths, and specific areas to improve."""
