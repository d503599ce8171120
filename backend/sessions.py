import asyncio
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_DIFFICULTY = "medium"
DEFAULT_GENDER = "neutral"


def default_persona(gender: str = DEFAULT_GENDER) -> dict:
    return {"gender": gender, "personality": "professional", "tone": "professional"}


@dataclass
class SessionContext:
    """Mutable interview state owned by exactly one interview."""

    interview_id: int
    knowledge_base: str = ""
    job_description: str = ""
    transcript: list[str] = field(default_factory=list)
    persona: dict = field(default_factory=default_persona)
    difficulty: str = DEFAULT_DIFFICULTY
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)


class SessionContextStore:
    """Maps interview id to its context; nothing is shared between sessions."""

    def __init__(self):
        self._contexts: dict[int, SessionContext] = {}

    def create(self, interview_id: int, knowledge_base: str = "") -> SessionContext:
        ctx = SessionContext(interview_id=interview_id, knowledge_base=knowledge_base)
        self._contexts[interview_id] = ctx
        return ctx

    def get(self, interview_id: int) -> Optional[SessionContext]:
        return self._contexts.get(interview_id)

    def restore(
        self,
        interview_id: int,
        knowledge_base: str,
        job_description: str,
        difficulty: str,
        gender: str,
    ) -> SessionContext:
        """Rebuild a context that is no longer in memory, e.g. after a restart.

        The transcript cannot be recovered and starts empty.
        """
        existing = self._contexts.get(interview_id)
        if existing is not None:
            return existing
        ctx = SessionContext(
            interview_id=interview_id,
            knowledge_base=knowledge_base,
            job_description=job_description,
            persona=default_persona(gender),
            difficulty=difficulty,
        )
        self._contexts[interview_id] = ctx
        return ctx

    def discard(self, interview_id: int) -> None:
        self._contexts.pop(interview_id, None)

    def __contains__(self, interview_id: int) -> bool:
        return interview_id in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)
