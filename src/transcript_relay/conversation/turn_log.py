"""
Conversation turn log.

Append-only record of the AI conversation. Only the last turn is ever
mutated, which is how streaming agent output grows in place until final.
"""

from typing import Any

from transcript_relay.schemas import ConversationTurn, TurnRole


class ConversationLog:
    """Tracks conversation turns in arrival order."""

    def __init__(self) -> None:
        self._turns: list[ConversationTurn] = []

    @property
    def turns(self) -> list[ConversationTurn]:
        """Get all conversation turns."""
        return self._turns.copy()

    @property
    def last(self) -> ConversationTurn | None:
        return self._turns[-1] if self._turns else None

    def __len__(self) -> int:
        return len(self._turns)

    def add_turn(self, role: TurnRole, text: str = "", *, is_final: bool = False, **fields: Any) -> ConversationTurn:
        """
        Append a new turn.

        Args:
            role: Role of the speaker.
            text: Initial turn text.
            is_final: Whether the turn is already complete.
            **fields: Optional tool_use_request / tool_use_response.

        Returns:
            The created ConversationTurn.
        """
        turn = ConversationTurn(role=role, text=text, is_final=is_final, **fields)
        self._turns.append(turn)
        return turn

    def update_last_turn(self, **update: Any) -> ConversationTurn | None:
        """Apply a partial update to the last turn; no-op on an empty log."""
        if not self._turns:
            return None
        update.pop("timestamp", None)
        turn = self._turns[-1].model_copy(update=update)
        self._turns[-1] = turn
        return turn

    def clear(self) -> None:
        self._turns = []
