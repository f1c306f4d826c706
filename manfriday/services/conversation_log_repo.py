from __future__ import annotations

from .conversation import ConversationHistory, ConversationTurn
from .postgrest import PostgrestClient


class ConversationLogRepository:
    TABLE = "conversation_turns"

    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    def recent_history(self, user_id: str, limit: int) -> ConversationHistory:
        if limit <= 0:
            return ConversationHistory()
        rows = self._client.select(
            self.TABLE,
            params={
                "select": "role,content,created_at",
                "user_id": f"eq.{user_id}",
                "order": "created_at.desc,id.desc",
                "limit": str(limit),
            },
        )
        turns: list[ConversationTurn] = []
        for row in reversed(rows):
            role = str(row.get("role") or "")
            content = str(row.get("content") or "")
            if role not in {"user", "assistant"}:
                continue
            turns.append(ConversationTurn(role=role, content=content))
        return ConversationHistory.bounded(turns, limit=limit)

    def append(self, user_id: str, turns: list[ConversationTurn]) -> None:
        if not turns:
            return
        self._client.insert(
            self.TABLE,
            body=[
                {"user_id": user_id, "role": turn.role, "content": turn.content}
                for turn in turns
            ],
        )
