"""Tagged variants for quest Conditions and Actions.

On the wire every condition and action is a single-key mapping whose key
names the variant::

    {"QuestCompleted": "PAT_Intro"}
    {"FactionStanding": {"Faction": "Guild", "MinLevel": 2}}
    {"ItemsGained": [{"Type": "Sword", "Count": 1}]}

Actions may additionally be bare strings (``"CompleteQuest"``). Each variant
is a pydantic model; the tag lives on the class and is recovered from the
single populated key when parsing. Mappings with more than one key, unknown
tags and malformed payloads raise ``SchemaViolation``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal, Self, TypeVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_pascal

from questcanvas.models.errors import SchemaViolation

SIMPLE_ACTIONS = ("AcceptQuest", "DeclineQuest", "PostponeQuest", "FailQuest", "CompleteQuest")
TERMINAL_ACTIONS = frozenset({"CompleteQuest", "FailQuest", "DeclineQuest"})

Comparison = Literal["equal", "not equal", "greater than", "smaller than"]
VariableOperation = Literal["set to", "unset", "increase by", "decrease by"]
SimpleActionName = Literal[
    "AcceptQuest", "DeclineQuest", "PostponeQuest", "FailQuest", "CompleteQuest"
]

I18nText = dict[str, str]


class _Payload(BaseModel):
    """Structured payload with PascalCase wire keys."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="forbid")


class _Variant(_Payload):
    """Base for single-key variants.

    ``shape`` controls how the payload maps onto fields:

    - ``"scalar"``: the payload is stored in ``value``
    - ``"list"``: the payload is a list stored in ``entries``
    - ``"struct"``: the payload mapping populates the model fields
    """

    tag: ClassVar[str]
    shape: ClassVar[Literal["scalar", "list", "struct"]] = "struct"

    @classmethod
    def from_payload(cls, payload: Any) -> Self:
        if cls.shape == "scalar":
            return cls(value=payload)  # type: ignore[call-arg]
        if cls.shape == "list":
            if not isinstance(payload, list):
                raise SchemaViolation(f"{cls.tag} expects a list payload")
            return cls(entries=payload)  # type: ignore[call-arg]
        if not isinstance(payload, Mapping):
            raise SchemaViolation(f"{cls.tag} expects a mapping payload")
        return cls.model_validate(dict(payload))

    def payload(self) -> Any:
        """Return the wire payload stored under the tag."""
        if self.shape == "scalar":
            return self.value  # type: ignore[attr-defined]
        if self.shape == "list":
            return [
                entry.model_dump(mode="json", by_alias=True, exclude_none=True)
                for entry in self.entries  # type: ignore[attr-defined]
            ]
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_wire(self) -> Any:
        """Serialize to the single-key wire mapping."""
        return {self.tag: self.payload()}


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class ConditionVariant(_Variant):
    """Base class for all condition variants."""


class QuestCompleted(ConditionVariant):
    tag = "QuestCompleted"
    shape = "scalar"

    value: str = Field(min_length=1)


class ResourceAvailability(ConditionVariant):
    tag = "ResourceAvailability"

    resource: str = Field(min_length=1)
    available: bool


class FactionStandingCondition(ConditionVariant):
    tag = "FactionStanding"

    faction: str = Field(min_length=1)
    min_level: int | None = None
    max_level: int | None = None


class TimePassed(ConditionVariant):
    """Elapsed time such as ``3d`` or ``12h`` (h, d, w, M, y)."""

    tag = "TimePassed"
    shape = "scalar"

    value: str = Field(pattern=r"^\d+[hdwMy]$")


class ItemLost(ConditionVariant):
    tag = "ItemLost"
    shape = "scalar"

    value: str = Field(min_length=1)


class InventoryEntry(_Payload):
    item_type: str = Field(alias="Type", min_length=1)
    min_count: int | None = Field(default=None, ge=0)
    quest_item: bool | None = None


class Inventory(ConditionVariant):
    tag = "Inventory"
    shape = "list"

    entries: list[InventoryEntry]


class Variable(ConditionVariant):
    tag = "Variable"

    name: str = Field(min_length=1)
    comparison: Comparison
    value: int


class EventTriggered(ConditionVariant):
    tag = "EventTriggered"

    event: str = Field(min_length=1)
    count: int = Field(ge=1)


class ItemUsedOnObject(ConditionVariant):
    tag = "ItemUsedOnObject"

    item: str = Field(min_length=1)
    object_id: str = Field(alias="Object", min_length=1)


class ItemUsedOnNPC(ConditionVariant):
    tag = "ItemUsedOnNPC"

    item: str = Field(min_length=1)
    npc: str = Field(alias="NPC", min_length=1)


CONDITION_VARIANTS: dict[str, type[ConditionVariant]] = {
    cls.tag: cls
    for cls in (
        QuestCompleted,
        ResourceAvailability,
        FactionStandingCondition,
        TimePassed,
        ItemLost,
        Inventory,
        Variable,
        EventTriggered,
        ItemUsedOnObject,
        ItemUsedOnNPC,
    )
}


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class ActionVariant(_Variant):
    """Base class for all action variants."""


class SimpleAction(ActionVariant):
    """A bare-string action such as ``CompleteQuest``."""

    tag = "SimpleAction"

    name: SimpleActionName

    def to_wire(self) -> Any:
        return self.name

    @property
    def is_terminal(self) -> bool:
        return self.name in TERMINAL_ACTIONS


class ItemCountEntry(_Payload):
    item_type: str = Field(alias="Type", min_length=1)
    count: int = Field(ge=1)
    quest_item: bool | None = None


class ItemsGained(ActionVariant):
    tag = "ItemsGained"
    shape = "list"

    entries: list[ItemCountEntry]


class ItemsLost(ActionVariant):
    tag = "ItemsLost"
    shape = "list"

    entries: list[ItemCountEntry]


class Currency(ActionVariant):
    """Signed currency delta."""

    tag = "Currency"
    shape = "scalar"

    value: int


class Experience(ActionVariant):
    tag = "Experience"
    shape = "scalar"

    value: int


class FactionStandingAction(ActionVariant):
    tag = "FactionStanding"

    faction: str = Field(min_length=1)
    points: int


class JournalEntry(ActionVariant):
    tag = "JournalEntry"
    shape = "scalar"

    value: I18nText


class SetVariable(ActionVariant):
    tag = "SetVariable"

    name: str = Field(min_length=1)
    operation: VariableOperation
    value: int | None = None

    @model_validator(mode="after")
    def value_required_unless_unset(self) -> SetVariable:
        """Only ``unset`` may omit the value."""
        if self.value is None and self.operation != "unset":
            msg = f"SetVariable '{self.operation}' requires a Value"
            raise ValueError(msg)
        return self


class QuestStageTitle(ActionVariant):
    tag = "QuestStageTitle"
    shape = "scalar"

    value: I18nText


class QuestStageDescription(ActionVariant):
    tag = "QuestStageDescription"
    shape = "scalar"

    value: I18nText


ACTION_VARIANTS: dict[str, type[ActionVariant]] = {
    cls.tag: cls
    for cls in (
        ItemsGained,
        ItemsLost,
        Currency,
        Experience,
        FactionStandingAction,
        JournalEntry,
        SetVariable,
        QuestStageTitle,
        QuestStageDescription,
    )
}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

VariantT = TypeVar("VariantT", bound=_Variant)


def _parse_tagged(raw: Any, registry: Mapping[str, type[VariantT]], kind: str) -> VariantT:
    if not isinstance(raw, Mapping):
        raise SchemaViolation(f"{kind} must be a single-key mapping, got {type(raw).__name__}")
    if len(raw) != 1:
        keys = ", ".join(sorted(str(k) for k in raw)) or "<none>"
        raise SchemaViolation(f"{kind} must have exactly one key, got: {keys}")
    ((tag, payload),) = raw.items()
    variant_cls = registry.get(tag)
    if variant_cls is None:
        raise SchemaViolation(f"Unknown {kind.lower()} type '{tag}'")
    try:
        return variant_cls.from_payload(payload)
    except ValidationError as e:
        problems = [
            f"{tag}.{'.'.join(str(p) for p in item['loc'])}: {item['msg']}" for item in e.errors()
        ]
        raise SchemaViolation(f"Invalid {tag} payload", problems) from e


def parse_condition(raw: Any) -> ConditionVariant:
    """Parse a wire condition into its variant.

    Raises:
        SchemaViolation: If the mapping is multi-key, unknown or malformed.
    """
    if isinstance(raw, ConditionVariant):
        return raw
    return _parse_tagged(raw, CONDITION_VARIANTS, "Condition")


def parse_action(raw: Any) -> ActionVariant:
    """Parse a wire action (bare string or single-key mapping) into its variant.

    Raises:
        SchemaViolation: If the action is unknown or malformed.
    """
    if isinstance(raw, ActionVariant):
        return raw
    if isinstance(raw, str):
        if raw not in SIMPLE_ACTIONS:
            raise SchemaViolation(f"Unknown action '{raw}'")
        return SimpleAction(name=raw)  # type: ignore[arg-type]
    return _parse_tagged(raw, ACTION_VARIANTS, "Action")


def _dump_variant(variant: _Variant) -> Any:
    return variant.to_wire()


Condition = Annotated[
    ConditionVariant,
    BeforeValidator(parse_condition),
    PlainSerializer(_dump_variant, return_type=Any),
]
Action = Annotated[
    ActionVariant,
    BeforeValidator(parse_action),
    PlainSerializer(_dump_variant, return_type=Any),
]


def action_name(action: ActionVariant) -> str:
    """Name an action the way it appears on the wire (tag or bare string)."""
    if isinstance(action, SimpleAction):
        return action.name
    return action.tag
