"""
Errors surfaced by the chat service.

Each error carries the HTTP status and the ``{"error", "details"}`` body the
API returns for it. Provider failures are not represented here: they never
leave the completion boundary (see ``claude_client.generate_reply``).
"""
from typing import Any, Optional


class ChatError(Exception):
    """Base class for errors that reach the API boundary."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, details: Optional[Any] = None):
        super().__init__(self.error if details is None else f"{self.error}: {details}")
        self.details = details

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class ChatValidationError(ChatError):
    """Malformed input. Nothing was touched."""

    status_code = 400
    error = "Invalid input"


class ConflictError(ChatError):
    """Another turn for the same session is still in flight."""

    status_code = 429
    error = "Too Many Requests"

    def __init__(self, details: Optional[Any] = None):
        if details is None:
            details = {"message": "Previous message is still processing. Please wait."}
        super().__init__(details)


class QuotaExceededError(ChatError):
    """The session has reached its message cap."""

    status_code = 403
    error = "Limit Reached"

    def __init__(self, details: Optional[Any] = None):
        super().__init__(details if details is not None else "Conversation limit reached.")


class PersistenceError(ChatError):
    """The ledger store failed. The turn is abandoned, not retried."""

    status_code = 500
    error = "Internal Server Error"

    def to_body(self) -> dict[str, Any]:
        # Store internals are logged, not returned
        return {"error": self.error}
