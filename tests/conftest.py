"""Shared fixtures: a temporary SQLite ledger, an in-memory cache and
scripted completion providers."""
import asyncio
import time

import pytest
import pytest_asyncio

from support_chat.config import Settings
from support_chat.coordinator import SessionCoordinator
from support_chat.history import HistoryService
from support_chat.ledger import Ledger


class MemoryCache:
    """In-process implementation of the cache capability with TTLs."""

    def __init__(self):
        self.store: dict[str, tuple[str, float]] = {}
        self.ttls: dict[str, int] = {}
        self.calls: list[tuple[str, str]] = []

    def _live(self, key):
        entry = self.store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self.store[key]
            return None
        return value

    def put(self, key, value, ttl_seconds=60):
        self.store[key] = (value, time.monotonic() + ttl_seconds)
        self.ttls[key] = ttl_seconds

    def expire(self, key):
        self.store.pop(key, None)

    def has(self, key) -> bool:
        return self._live(key) is not None

    async def set_if_absent(self, key, value, ttl_seconds):
        self.calls.append(("set_if_absent", key))
        if self._live(key) is not None:
            return False
        self.put(key, value, ttl_seconds)
        return True

    async def get(self, key):
        self.calls.append(("get", key))
        return self._live(key)

    async def set(self, key, value, ttl_seconds):
        self.calls.append(("set", key))
        self.put(key, value, ttl_seconds)

    async def delete(self, key):
        self.calls.append(("delete", key))
        self.store.pop(key, None)

    async def close(self):
        pass


class ScriptedProvider:
    """Completion provider that records calls and replays canned replies."""

    def __init__(self, replies=None, error=None, delay=0.0):
        self.replies = list(replies or [])
        self.error = error
        self.delay = delay
        self.calls = []

    async def complete(self, system_preamble, prior_turns, new_message):
        self.calls.append({
            "system_preamble": system_preamble,
            "prior_turns": list(prior_turns),
            "new_message": new_message,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return f"Reply to: {new_message}"


class BlockingProvider(ScriptedProvider):
    """Provider that waits until ``release`` is set before replying."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def complete(self, system_preamble, prior_turns, new_message):
        self.started.set()
        await self.release.wait()
        return await super().complete(system_preamble, prior_turns, new_message)


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway database."""
    return Settings(
        database_path=str(tmp_path / "chat.db"),
        completion_timeout_seconds=1.0,
    )


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest_asyncio.fixture
async def ledger(settings):
    """Initialized ledger on a temporary database."""
    ledger = Ledger(settings.database_path)
    await ledger.init()
    return ledger


@pytest.fixture
def coordinator(ledger, cache, provider, settings):
    return SessionCoordinator(ledger, cache, provider, settings)


@pytest.fixture
def history_service(ledger, cache, settings):
    return HistoryService(ledger, cache, settings)


async def seed_messages(ledger, session_id, count):
    """Persist *count* alternating user/ai messages, return them oldest first."""
    await ledger.upsert_session(session_id)
    messages = []
    for i in range(count):
        role = "user" if i % 2 == 0 else "ai"
        messages.append(await ledger.create_message(session_id, role, f"message {i}"))
    return messages


@pytest.fixture
def seed(ledger):
    """``await seed(session_id, count)`` fills a session with messages."""
    async def _seed(session_id, count):
        return await seed_messages(ledger, session_id, count)
    return _seed


@pytest.fixture
def make_provider():
    return ScriptedProvider


@pytest.fixture
def blocking_provider():
    return BlockingProvider()
