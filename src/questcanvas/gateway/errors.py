"""Gateway error hierarchy.

Every failure crossing the persistence/validation boundary is a
``GatewayError`` tagged with the operation that failed. Callers catch the
narrowest class they can act on (``QuestNotFound``, ``SaveConflict``) and
fall back to the operation's base class otherwise.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for gateway failures."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"[{operation}] {message}")


class LoadFailure(GatewayError):
    """Raised when a quest or reference list cannot be fetched."""

    def __init__(self, message: str, operation: str = "load") -> None:
        super().__init__(operation, message)


class QuestNotFound(LoadFailure):
    """Raised when no quest with the requested id exists."""

    def __init__(self, quest_id: str) -> None:
        self.quest_id = quest_id
        super().__init__(f"Quest '{quest_id}' not found")


class SaveFailure(GatewayError):
    """Raised when a quest could not be persisted."""

    def __init__(self, message: str) -> None:
        super().__init__("save", message)


class SaveConflict(SaveFailure):
    """Raised when the store rejects a save because its copy changed."""

    def __init__(self, quest_id: str, message: str = "") -> None:
        self.quest_id = quest_id
        detail = f": {message}" if message else ""
        super().__init__(f"Quest '{quest_id}' was modified elsewhere{detail}")


class ValidationFailure(GatewayError):
    """Raised when the validator could not be reached or answered garbage."""

    def __init__(self, message: str) -> None:
        super().__init__("validate", message)
