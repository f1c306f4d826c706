from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

_ROLES = {"user", "assistant"}


@dataclass(frozen=True)
class ConversationTurn:
    role: str
    content: str

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise ValueError(f"Conversation role must be one of {sorted(_ROLES)}, got {self.role!r}.")


@dataclass(frozen=True)
class ConversationHistory:
    """Immutable, oldest-first window over the most recent turns."""

    turns: tuple[ConversationTurn, ...] = ()

    @classmethod
    def bounded(cls, turns: Iterable[ConversationTurn], limit: int) -> "ConversationHistory":
        rows = [turn for turn in turns if turn.content.strip()]
        if limit <= 0:
            return cls()
        return cls(turns=tuple(rows[-limit:]))

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(self.turns)

    def __len__(self) -> int:
        return len(self.turns)

    def as_messages(self) -> list[dict[str, str]]:
        return [{"role": turn.role, "content": turn.content} for turn in self.turns]
