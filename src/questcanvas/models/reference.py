"""Read-only reference data (items, factions, resources, NPCs, objects).

Reference entries only provide human-friendly labels for ids stored in
conditions and actions. The sync core never validates against them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal

from questcanvas.models.quest import DEFAULT_LOCALE, localized
from questcanvas.models.variants import I18nText

ReferenceKind = Literal["items", "factions", "resources", "npcs", "objects"]
REFERENCE_KINDS: tuple[str, ...] = ("items", "factions", "resources", "npcs", "objects")


class ReferenceEntry(BaseModel):
    """Common shape of every reference entry."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="allow")

    display_name: I18nText = Field(default_factory=dict)
    description: I18nText | None = None

    @property
    def ref_id(self) -> str:
        raise NotImplementedError


class Item(ReferenceEntry):
    item_id: str = Field(alias="ItemID")
    category: str | None = None
    stackable: bool | None = None
    max_stack: int | None = None

    @property
    def ref_id(self) -> str:
        return self.item_id


class Faction(ReferenceEntry):
    faction_id: str = Field(alias="FactionID")
    faction_type: str | None = None
    max_level: int | None = None
    initial_standing: int | None = None

    @property
    def ref_id(self) -> str:
        return self.faction_id


class Resource(ReferenceEntry):
    resource_id: str = Field(alias="ResourceID")
    category: str | None = None

    @property
    def ref_id(self) -> str:
        return self.resource_id


class NPC(ReferenceEntry):
    npc_id: str = Field(alias="NPCID")
    title: I18nText | None = None
    location: str | None = None
    faction_id: str | None = Field(default=None, alias="FactionID")

    @property
    def ref_id(self) -> str:
        return self.npc_id


class WorldObject(ReferenceEntry):
    object_id: str = Field(alias="ObjectID")

    @property
    def ref_id(self) -> str:
        return self.object_id


REFERENCE_MODELS: dict[str, type[ReferenceEntry]] = {
    "items": Item,
    "factions": Faction,
    "resources": Resource,
    "npcs": NPC,
    "objects": WorldObject,
}


def parse_reference_entries(kind: str, raw: list[dict[str, Any]] | None) -> list[ReferenceEntry]:
    """Validate raw reference entries of *kind*.

    Raises:
        KeyError: If *kind* is not a reference kind.
        pydantic.ValidationError: If an entry is malformed.
    """
    model = REFERENCE_MODELS[kind]
    return [model.model_validate(entry) for entry in raw or []]


@dataclass
class ReferenceCatalog:
    """Id lookup over all reference kinds, used for display labels."""

    entries: dict[str, dict[str, ReferenceEntry]] = field(default_factory=dict)

    @classmethod
    def from_lists(cls, lists: dict[str, list[ReferenceEntry]]) -> ReferenceCatalog:
        return cls(
            entries={kind: {e.ref_id: e for e in items} for kind, items in lists.items()}
        )

    def ids(self, kind: str) -> set[str]:
        return set(self.entries.get(kind, {}))

    def has(self, kind: str, ref_id: str) -> bool:
        return ref_id in self.entries.get(kind, {})

    @property
    def is_empty(self) -> bool:
        return not any(self.entries.values())

    def label(self, kind: str, ref_id: str, locale: str = DEFAULT_LOCALE) -> str:
        """Display name for *ref_id*, or the id itself when unknown."""
        entry = self.entries.get(kind, {}).get(ref_id)
        if entry is None:
            return ref_id
        return localized(entry.display_name, locale) or ref_id
