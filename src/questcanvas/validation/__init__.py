"""Local quest validation."""

from questcanvas.validation.rules import validate_quest, validate_quests

__all__ = ["validate_quest", "validate_quests"]
