"""
History service: paginated, newest-first reads of a session's messages.

Only the first page (no cursor) is cached. The coordinator deletes that entry
after every turn; nothing here refreshes it.
"""
import logging
from typing import Optional

from support_chat.cache import Cache, history_key
from support_chat.config import Settings
from support_chat.coordinator import parse_session_id
from support_chat.errors import ChatValidationError
from support_chat.ledger import Ledger
from support_chat.models import HistoryPage

logger = logging.getLogger(__name__)


class HistoryService:
    def __init__(self, ledger: Ledger, cache: Cache, settings: Settings):
        self.ledger = ledger
        self.cache = cache
        self.settings = settings

    async def get_history(
        self,
        session_id: str,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> HistoryPage:
        session_id = parse_session_id(session_id)
        if cursor is not None:
            cursor = parse_session_id(cursor, field="cursor")
        if limit is None:
            limit = self.settings.history_default_limit
        if not 1 <= limit <= self.settings.history_max_limit:
            raise ChatValidationError([{
                "field": "limit",
                "message": f"Limit must be between 1 and {self.settings.history_max_limit}",
            }])

        cache_key = history_key(session_id)
        if cursor is None:
            cached = await self.cache.get(cache_key)
            if cached:
                logger.debug("History cache hit for session %s", session_id[:8])
                return HistoryPage.model_validate_json(cached)

        messages = await self.ledger.find_messages(session_id, limit=limit + 1, cursor=cursor)

        # The cursor is exclusive, so the next page starts after the last
        # message returned here
        next_cursor = None
        if len(messages) > limit:
            messages.pop()
            next_cursor = messages[-1].id

        page = HistoryPage(messages=messages, next_cursor=next_cursor)

        if cursor is None:
            await self.cache.set(
                cache_key,
                page.model_dump_json(by_alias=True, exclude_none=True),
                self.settings.history_cache_ttl_seconds,
            )
        return page
