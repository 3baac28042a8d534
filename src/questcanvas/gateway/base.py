"""Quest gateway protocol and shared types.

The gateway is everything outside the editor core: quest persistence,
position metadata, reference data and document validation. The
synchronization controller only talks to this protocol.

Implementations:
    - HttpQuestGateway (http.py): the quest editor REST API
    - FileQuestGateway (filesystem.py): YAML files plus a SQLite metadata store
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from questcanvas.models.quest import PositionMetadata, QuestDocument
    from questcanvas.models.reference import ReferenceEntry
    from questcanvas.models.validation import ValidationResult


@dataclass(frozen=True)
class LoadedQuest:
    """A quest document together with its stored node positions.

    Attributes:
        document: The canonical quest.
        metadata: Stored positions, or None when the quest has never been
            laid out.
    """

    document: QuestDocument
    metadata: PositionMetadata | None = None


@runtime_checkable
class QuestGateway(Protocol):
    """Protocol for quest persistence and validation backends."""

    async def list_quests(self) -> list[str]:
        """Ids of all stored quests."""
        ...

    async def load_quest(self, quest_id: str) -> LoadedQuest:
        """Fetch a quest and its position metadata.

        Raises:
            QuestNotFound: If no quest has this id.
            LoadFailure: On any other failure.
        """
        ...

    async def save_quest(
        self,
        quest_id: str,
        document: QuestDocument,
        metadata: PositionMetadata | None = None,
    ) -> ValidationResult:
        """Persist a quest (even an invalid one) and return its validation.

        Raises:
            SaveConflict: If the stored copy changed underneath us.
            SaveFailure: On any other failure.
        """
        ...

    async def validate(self, document: QuestDocument) -> ValidationResult:
        """Validate a document without saving it.

        Raises:
            ValidationFailure: If the validator is unavailable.
        """
        ...

    async def list_reference_data(self, kind: str) -> list[ReferenceEntry]:
        """Reference entries of *kind* (items, factions, resources, npcs, objects).

        Raises:
            LoadFailure: If the list cannot be fetched.
        """
        ...
