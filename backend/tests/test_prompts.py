from prompts import build_report_prompt, build_turn_prompt
from sessions import default_persona


def test_turn_prompt_substitutes_defaults():
    prompt = build_turn_prompt(default_persona(), "", "", "medium", "Normal", [])

    assert "Role: Software Developer." in prompt
    assert "Candidate CV: No CV uploaded." in prompt
    assert "Difficulty Level: MEDIUM." in prompt
    assert '{"score": <number>, "question": "<text>"}' in prompt


def test_turn_prompt_includes_session_context():
    prompt = build_turn_prompt(
        default_persona("female"),
        "Data Engineer",
        "Five years of Spark.",
        "hard",
        "User behavior is excellent.",
        ["User: Hello there", "Interviewer: Tell me about Spark."],
    )

    assert "You are a female interviewer with professional personality." in prompt
    assert "Role: Data Engineer." in prompt
    assert "Difficulty Level: HARD." in prompt
    assert "Candidate CV: Five years of Spark." in prompt
    assert "Behavioral Observation: User behavior is excellent." in prompt
    assert "User: Hello there\nInterviewer: Tell me about Spark." in prompt


def test_report_prompt():
    prompt = build_report_prompt(
        None,
        7.0,
        {"hireability_index": 64, "candidate_level": "Junior"},
        ["User: I like Python"],
    )

    assert "Role: Software Developer." in prompt
    assert "Overall Score: 7.0/10." in prompt
    assert "Hireability 64%, Level Junior." in prompt
    assert "User: I like Python" in prompt
    assert "Summary, Strengths, and specific areas to improve" in prompt
