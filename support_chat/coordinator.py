"""
Session coordinator: runs one message turn end to end.

A turn holds the per-session lock while it checks the quota, refreshes the
session marker, persists the user message, asks the provider for a reply,
persists the reply and drops the cached first history page. The lock is
released whatever happens.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Optional

from support_chat.cache import Cache, history_key, session_key, session_lock
from support_chat.claude_client import CompletionOutcome, CompletionProvider, generate_reply
from support_chat.config import Settings
from support_chat.context import ContextAssembler
from support_chat.errors import ChatValidationError, QuotaExceededError
from support_chat.ledger import Ledger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnResult:
    reply: str
    session_id: str
    outcome: CompletionOutcome


_UUID_PATTERN = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)


def parse_session_id(value: str, field: str = "sessionId") -> str:
    """Return *value* unchanged if it is a dashed 8-4-4-4-12 UUID string,
    otherwise raise ChatValidationError."""
    if not isinstance(value, str) or _UUID_PATTERN.fullmatch(value) is None:
        raise ChatValidationError([{"field": field, "message": "Invalid UUID"}])
    return value


class SessionCoordinator:
    def __init__(
        self,
        ledger: Ledger,
        cache: Cache,
        provider: CompletionProvider,
        settings: Settings,
    ):
        self.ledger = ledger
        self.cache = cache
        self.provider = provider
        self.settings = settings
        self.context = ContextAssembler(ledger, window_size=settings.context_window_size)

    def _validate(self, session_id: Optional[str], text: str) -> Optional[str]:
        max_length = self.settings.max_message_length
        if not isinstance(text, str) or not 1 <= len(text) <= max_length:
            raise ChatValidationError([{
                "field": "message",
                "message": f"Message must be between 1 and {max_length} characters",
            }])
        if session_id is None:
            return None
        return parse_session_id(session_id)

    async def handle_turn(self, session_id: Optional[str], text: str) -> TurnResult:
        session_id = self._validate(session_id, text) or str(uuid.uuid4())

        async with session_lock(self.cache, session_id, self.settings.lock_ttl_seconds):
            count = await self.ledger.count_messages(session_id)
            if count >= self.settings.session_message_limit:
                logger.warning(
                    "Session %s reached the message limit (%d)", session_id[:8], count
                )
                raise QuotaExceededError()

            await self.cache.set(
                session_key(session_id), "active", self.settings.session_ttl_seconds
            )
            await self.ledger.upsert_session(session_id)

            user_message = await self.ledger.create_message(session_id, "user", text)
            window = await self.context.build_window(session_id, user_message.id)

            result = await generate_reply(
                self.provider,
                window,
                text,
                timeout_seconds=self.settings.completion_timeout_seconds,
            )
            if result.is_fallback:
                logger.info(
                    "Using fallback reply for session %s (%s)",
                    session_id[:8],
                    result.outcome.value,
                )

            await self.ledger.create_message(session_id, "ai", result.text)
            await self.cache.delete(history_key(session_id))

        logger.info(
            "Turn completed for session %s (context=%d)", session_id[:8], len(window)
        )
        return TurnResult(reply=result.text, session_id=session_id, outcome=result.outcome)
