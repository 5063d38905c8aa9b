"""
Context window assembly for the completion provider.
"""
from typing import List

from support_chat.ledger import Ledger
from support_chat.models import ContextTurn

# Ledger roles as the provider names them
PROVIDER_ROLES = {"user": "user", "ai": "model"}


class ContextAssembler:
    """Builds the sliding window of recent messages sent with each turn."""

    def __init__(self, ledger: Ledger, window_size: int = 10):
        self.ledger = ledger
        self.window_size = window_size

    async def build_window(self, session_id: str, exclude_message_id: str) -> List[ContextTurn]:
        """Return up to ``window_size`` messages older than the one being
        answered, oldest first."""
        recent = await self.ledger.find_messages(
            session_id, limit=self.window_size, cursor=exclude_message_id
        )
        return [
            ContextTurn(role=PROVIDER_ROLES[m.role], text=m.content)
            for m in reversed(recent)
        ]
