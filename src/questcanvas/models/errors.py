"""Schema boundary errors for quest documents."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pydantic import ValidationError


class SchemaViolation(ValueError):
    """Raised when raw quest data does not match the document schema.

    Subclasses ``ValueError`` so pydantic validators can raise it directly
    and have it folded into a ``ValidationError``.

    Attributes:
        problems: Individual problems, one human-readable line each.
    """

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        self.problems = problems or [message]
        super().__init__(message)

    @classmethod
    def from_validation_error(cls, subject: str, error: ValidationError) -> SchemaViolation:
        """Flatten a pydantic ``ValidationError`` into a SchemaViolation.

        Args:
            subject: What was being parsed (e.g., "quest document").
            error: The pydantic error to flatten.

        Returns:
            SchemaViolation listing each failing location.
        """
        problems = []
        for item in error.errors():
            loc = ".".join(str(part) for part in item["loc"]) or "<root>"
            problems.append(f"{loc}: {item['msg']}")
        return cls(f"Invalid {subject}: {len(problems)} problem(s)", problems)
