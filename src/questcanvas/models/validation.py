"""Validation result contract shared by all quest validators."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ValidationIssue(BaseModel):
    """A single validation finding, optionally tied to a quest and a node."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    quest_id: str | None = None
    node_id: int | None = None
    field: str | None = None
    message: str

    def __str__(self) -> str:
        location = f"Node {self.node_id}: " if self.node_id is not None else ""
        if self.quest_id is not None:
            return f"[{self.quest_id}] {location}{self.message}"
        return f"{location}{self.message}"


class ValidationResult(BaseModel):
    """Outcome of validating a quest document.

    Attributes:
        valid: False as soon as any error is recorded.
        errors: Schema or structural errors.
        warnings: Findings that do not make the document invalid.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    valid: bool = True
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    def add_error(
        self,
        message: str,
        node_id: int | None = None,
        field: str | None = None,
        *,
        quest_id: str | None = None,
    ) -> None:
        self.valid = False
        self.errors.append(
            ValidationIssue(quest_id=quest_id, node_id=node_id, field=field, message=message)
        )

    def add_warning(
        self,
        message: str,
        node_id: int | None = None,
        field: str | None = None,
        *,
        quest_id: str | None = None,
    ) -> None:
        self.warnings.append(
            ValidationIssue(quest_id=quest_id, node_id=node_id, field=field, message=message)
        )

    def merge(self, other: ValidationResult, quest_id: str | None = None) -> None:
        """Append the findings of *other*, tagging them with *quest_id* if given."""
        update = {"quest_id": quest_id} if quest_id is not None else {}
        self.errors.extend(issue.model_copy(update=update) for issue in other.errors)
        self.warnings.extend(issue.model_copy(update=update) for issue in other.warnings)
        self.valid = self.valid and other.valid

    def issues_for_node(self, node_id: int) -> list[ValidationIssue]:
        """Errors and warnings attached to *node_id*."""
        return [i for i in (*self.errors, *self.warnings) if i.node_id == node_id]

    @property
    def summary(self) -> str:
        parts: list[str] = []
        if self.errors:
            parts.append(f"{len(self.errors)} error(s)")
        if self.warnings:
            parts.append(f"{len(self.warnings)} warning(s)")
        return ", ".join(parts) or "valid"
