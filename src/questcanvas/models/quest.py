"""Canonical quest document models.

A quest document is the artifact shipped to the game's content pipeline:
an ordered list of typed nodes that reference their successors by node id.
The wire form keeps the original PascalCase keys (``QuestID``,
``QuestNodes``, ``NextNodes``, ...); Python attributes are snake_case and
both spellings are accepted on input.

Position metadata is a separate, purely presentational artifact keyed by
quest id. It uses camelCase keys (``questId``, ``nodePositions``).
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel, to_pascal

from questcanvas.models.errors import SchemaViolation
from questcanvas.models.variants import Action, Condition, I18nText

DEFAULT_LOCALE = "en-US"
REQUIRED_LOCALES = ("en-US", "de-DE")
QUEST_ID_PATTERN = r"^[A-Z][A-Za-z0-9.\-_:]*$"

QuestType = Literal[
    "SideQuest",
    "MainQuest",
    "CompanionQuest",
    "FactionQuest",
    "DistrictQuest",
    "MasteryQuest",
]
Repeatable = Literal["never", "daily", "weekly", "always"]
NodeType = Literal[
    "EntryPoint",
    "Dialog",
    "PlayerDecisionDialog",
    "Decision",
    "ConditionWatcher",
    "ConditionBranch",
    "Actions",
    "QuestProgress",
    "QuestAvailable",
]
NODE_TYPES: tuple[str, ...] = NodeType.__args__  # type: ignore[attr-defined]

NodeId = Annotated[int, Field(ge=0)]


def localized(text: I18nText | None, locale: str = DEFAULT_LOCALE) -> str:
    """Pick the text for *locale*, falling back to en-US, then any locale."""
    if not text:
        return ""
    if locale in text:
        return text[locale]
    if DEFAULT_LOCALE in text:
        return text[DEFAULT_LOCALE]
    return next(iter(text.values()))


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump using wire keys, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DialogMessage(_WireModel):
    """One line of a Dialog node."""

    speaker: str
    text: I18nText


class DialogOption(_WireModel):
    """A player choice on a Decision-like node; owns its successors."""

    text: I18nText
    next_nodes: list[NodeId] | None = None
    default_option: bool | None = None
    conditions: list[Condition] | None = None


class QuestNode(_WireModel):
    """A node of the quest state machine.

    Which successor field is meaningful depends on ``node_type``; see
    ``questcanvas.graph.routing``. Unknown keys pass through untouched.
    """

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="allow")

    node_id: NodeId = Field(alias="NodeID")
    node_type: NodeType
    next_nodes: list[NodeId] | None = None
    next_nodes_if_true: list[NodeId] | None = None
    next_nodes_if_false: list[NodeId] | None = None
    conditions: list[Condition] | None = None
    conditions_required: Literal["all"] | Annotated[int, Field(ge=1)] | None = None
    conversation_partner: str | None = None
    speaker: str | None = None
    text: I18nText | None = None
    options: list[DialogOption] | None = None
    messages: list[DialogMessage] | None = None
    actions: list[Action] | None = None
    quest_stage_title: I18nText | None = None
    quest_stage_description: I18nText | None = None


class QuestDocument(_WireModel):
    """The canonical quest artifact."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="allow")

    quest_type_version: int | None = None
    quest_version: int | None = None
    quest_id: str = Field(alias="QuestID", pattern=QUEST_ID_PATTERN, max_length=100, frozen=True)
    quest_type: QuestType
    display_name: I18nText = Field(default_factory=dict)
    repeatable: Repeatable = "never"
    nodes: list[QuestNode] = Field(default_factory=list, alias="QuestNodes")

    @model_validator(mode="after")
    def node_ids_unique(self) -> QuestDocument:
        """Reject documents that reuse a node id."""
        seen: set[int] = set()
        duplicates: list[int] = []
        for node in self.nodes:
            if node.node_id in seen:
                duplicates.append(node.node_id)
            seen.add(node.node_id)
        if duplicates:
            raise SchemaViolation(f"Duplicate NodeID(s): {sorted(set(duplicates))}")
        return self

    @classmethod
    def from_wire(cls, data: Any) -> QuestDocument:
        """Parse a wire-form document.

        Raises:
            SchemaViolation: If the data does not match the schema.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise SchemaViolation.from_validation_error("quest document", e) from e

    def node(self, node_id: int) -> QuestNode | None:
        """Look up a node by id."""
        for node in self.nodes:
            if node.node_id == node_id:
                return node
        return None

    @property
    def node_ids(self) -> list[int]:
        return [node.node_id for node in self.nodes]


class NodePosition(BaseModel):
    x: float
    y: float


class PositionMetadata(BaseModel):
    """Editor-only node positions for one quest."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    quest_id: str
    node_positions: dict[int, NodePosition] = Field(default_factory=dict)

    @field_validator("node_positions", mode="before")
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:
        """Stored metadata may carry ``null`` for a quest without positions."""
        return {} if v is None else v

    def to_wire(self) -> dict[str, Any]:
        return {
            "questId": self.quest_id,
            "nodePositions": {
                str(node_id): {"x": pos.x, "y": pos.y}
                for node_id, pos in self.node_positions.items()
            },
        }
