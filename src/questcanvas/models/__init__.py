"""Pydantic models for quest documents, variants and reference data.

The document model is the canonical side of the editor: everything the
canvas produces is converted back into these models before it leaves the
synchronization controller.
"""

from questcanvas.models.errors import SchemaViolation
from questcanvas.models.quest import (
    DEFAULT_LOCALE,
    NODE_TYPES,
    DialogMessage,
    DialogOption,
    NodePosition,
    NodeType,
    PositionMetadata,
    QuestDocument,
    QuestNode,
    QuestType,
    Repeatable,
    localized,
)
from questcanvas.models.reference import (
    NPC,
    REFERENCE_KINDS,
    Faction,
    Item,
    ReferenceCatalog,
    ReferenceEntry,
    Resource,
    WorldObject,
)
from questcanvas.models.validation import ValidationIssue, ValidationResult
from questcanvas.models.variants import (
    ActionVariant,
    ConditionVariant,
    SimpleAction,
    parse_action,
    parse_condition,
)

__all__ = [
    "DEFAULT_LOCALE",
    "NODE_TYPES",
    "NPC",
    "REFERENCE_KINDS",
    "ActionVariant",
    "ConditionVariant",
    "DialogMessage",
    "DialogOption",
    "Faction",
    "Item",
    "NodePosition",
    "NodeType",
    "PositionMetadata",
    "QuestDocument",
    "QuestNode",
    "QuestType",
    "ReferenceCatalog",
    "ReferenceEntry",
    "Repeatable",
    "Resource",
    "SchemaViolation",
    "SimpleAction",
    "ValidationIssue",
    "ValidationResult",
    "WorldObject",
    "localized",
    "parse_action",
    "parse_condition",
]
