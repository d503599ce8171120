from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Outcome:
    """Result of a best-effort call to an external service.

    ``degraded`` is True when ``data`` is a fallback value rather than what the
    upstream actually returned; ``reason`` then says why.
    """

    data: Any
    degraded: bool = False
    reason: Optional[str] = None

    @classmethod
    def ok(cls, data: Any) -> "Outcome":
        return cls(data=data)

    @classmethod
    def fallback(cls, data: Any, reason: str) -> "Outcome":
        return cls(data=data, degraded=True, reason=reason)
