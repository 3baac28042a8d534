"""Quest gateway over local YAML files.

Layout::

    quests_dir/**/*.yaml|*.yml    one quest per file, found by its QuestID
    data_dir/items.yaml           reference lists (a missing file is empty)
    data_dir/factions.yaml
    data_dir/resources.yaml
    data_dir/npcs.yaml
    data_dir/objects.yaml

Node positions go to a ``SqliteMetadataStore``. Validation runs the local
rules against the reference data in ``data_dir``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from questcanvas.gateway.base import LoadedQuest
from questcanvas.gateway.errors import (
    GatewayError,
    LoadFailure,
    QuestNotFound,
    SaveConflict,
    SaveFailure,
    ValidationFailure,
)
from questcanvas.models.errors import SchemaViolation
from questcanvas.models.quest import QuestDocument
from questcanvas.models.reference import (
    REFERENCE_KINDS,
    ReferenceCatalog,
    parse_reference_entries,
)
from questcanvas.models.validation import ValidationResult
from questcanvas.observability.logging import get_logger
from questcanvas.validation.rules import validate_quest, validate_quests

if TYPE_CHECKING:
    from collections.abc import Iterator

    from questcanvas.gateway.metadata_store import SqliteMetadataStore
    from questcanvas.models.quest import PositionMetadata
    from questcanvas.models.reference import ReferenceEntry

log = get_logger(__name__)

QUEST_SUFFIXES = (".yaml", ".yml")
_UNSAFE_FILENAME_CHARS = str.maketrans({":": "_", "/": "_", "\\": "_", " ": "_"})
_UNREADABLE = (OSError, YAMLError, SchemaViolation)


def sanitize_filename(quest_id: str) -> str:
    """Quest id with path separators, colons and spaces replaced by ``_``."""
    return quest_id.translate(_UNSAFE_FILENAME_CHARS)


class FileQuestGateway:
    """Quests as YAML files, positions in SQLite, validation in-process.

    Args:
        quests_dir: Directory searched recursively for quest files.
        data_dir: Directory holding the reference YAML lists.
        metadata_store: Position store; without one, positions are neither
            loaded nor saved.
    """

    def __init__(
        self,
        quests_dir: Path,
        data_dir: Path | None = None,
        metadata_store: SqliteMetadataStore | None = None,
    ) -> None:
        self.quests_dir = quests_dir
        self.data_dir = data_dir
        self._metadata = metadata_store
        self._reader = YAML(typ="safe")
        self._writer = YAML()
        self._writer.default_flow_style = False
        self._writer.indent(mapping=2, sequence=4, offset=2)
        self._writer.width = 4096

    async def aclose(self) -> None:
        """Close the metadata store."""
        if self._metadata is not None:
            self._metadata.close()

    # -- files -------------------------------------------------------------

    def _quest_files(self) -> Iterator[Path]:
        if not self.quests_dir.is_dir():
            return
        for path in sorted(self.quests_dir.rglob("*")):
            if path.is_file() and path.suffix in QUEST_SUFFIXES:
                yield path

    def _read_yaml(self, path: Path) -> Any:
        with path.open("r", encoding="utf-8") as f:
            return self._reader.load(f)

    def _parse_quest_file(self, path: Path) -> QuestDocument:
        return QuestDocument.from_wire(self._read_yaml(path))

    def _read_quest_file(self, path: Path) -> QuestDocument | None:
        """Parse *path*; unreadable or non-quest files yield None."""
        try:
            return self._parse_quest_file(path)
        except _UNREADABLE as e:
            log.debug("quest_file_skipped", path=str(path), error=str(e))
            return None

    def _find(self, quest_id: str) -> tuple[Path, QuestDocument] | None:
        for path in self._quest_files():
            document = self._read_quest_file(path)
            if document is not None and document.quest_id == quest_id:
                return path, document
        return None

    def _write_atomic(self, path: Path, data: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            self._writer.dump(data, f)
        os.replace(tmp, path)

    # -- QuestGateway ------------------------------------------------------

    async def list_quests(self) -> list[str]:
        return [
            document.quest_id
            for document in map(self._read_quest_file, self._quest_files())
            if document is not None
        ]

    async def load_quest(self, quest_id: str) -> LoadedQuest:
        found = self._find(quest_id)
        if found is None:
            raise QuestNotFound(quest_id)
        path, document = found

        metadata = None
        if self._metadata is not None:
            try:
                metadata = self._metadata.get(quest_id)
            except LoadFailure as e:
                log.warning("metadata_load_failed", quest_id=quest_id, error=str(e))

        log.info("quest_loaded", quest_id=quest_id, path=str(path), nodes=len(document.nodes))
        return LoadedQuest(document=document, metadata=metadata)

    async def save_quest(
        self,
        quest_id: str,
        document: QuestDocument,
        metadata: PositionMetadata | None = None,
    ) -> ValidationResult:
        """Write the quest file (even when invalid) and its positions.

        Raises:
            SaveFailure: If the id does not match the document or the file
                cannot be written.
            SaveConflict: If the stored file carries a newer QuestVersion.
        """
        if document.quest_id != quest_id:
            raise SaveFailure(f"Quest id mismatch: '{quest_id}' vs '{document.quest_id}'")

        found = self._find(quest_id)
        if found is not None:
            path, stored = found
            if (stored.quest_version or 0) > (document.quest_version or 0):
                raise SaveConflict(
                    quest_id,
                    f"stored QuestVersion {stored.quest_version} is newer "
                    f"than {document.quest_version}",
                )
        else:
            path = self.quests_dir / f"{sanitize_filename(quest_id)}.yaml"

        result = await self.validate(document)

        try:
            self._write_atomic(path, document.to_wire())
        except (OSError, YAMLError) as e:
            log.error("quest_save_failed", quest_id=quest_id, path=str(path), error=str(e))
            raise SaveFailure(f"Failed to write {path}: {e}") from e

        if metadata is not None and self._metadata is not None:
            try:
                self._metadata.save(metadata.model_copy(update={"quest_id": quest_id}))
            except SaveFailure as e:
                log.warning("metadata_save_failed", quest_id=quest_id, error=str(e))

        log.info("quest_saved", quest_id=quest_id, path=str(path), valid=result.valid)
        return result

    async def delete_quest(self, quest_id: str) -> None:
        found = self._find(quest_id)
        if found is None:
            raise QuestNotFound(quest_id)
        found[0].unlink()
        if self._metadata is not None:
            self._metadata.delete(quest_id)

    async def validate(self, document: QuestDocument) -> ValidationResult:
        try:
            catalog = await self.reference_catalog()
        except GatewayError as e:
            raise ValidationFailure(f"Reference data unavailable: {e}") from e
        return validate_quest(document, catalog)

    async def validate_all(self) -> tuple[int, ValidationResult]:
        """Validate every quest file, each alone and then against each other.

        Files that cannot be parsed become errors instead of being skipped.

        Returns:
            The number of quests checked and the combined result.
        """
        try:
            catalog = await self.reference_catalog()
        except GatewayError as e:
            raise ValidationFailure(f"Reference data unavailable: {e}") from e

        documents: list[QuestDocument] = []
        load_errors = ValidationResult()
        for path in self._quest_files():
            try:
                documents.append(self._parse_quest_file(path))
            except _UNREADABLE as e:
                load_errors.add_error(f"failed to load {path}: {e}")

        result = validate_quests(documents, catalog)
        result.merge(load_errors)
        log.info(
            "quests_validated",
            quests=len(documents),
            errors=len(result.errors),
            warnings=len(result.warnings),
        )
        return len(documents), result

    async def list_reference_data(self, kind: str) -> list[ReferenceEntry]:
        if kind not in REFERENCE_KINDS:
            raise LoadFailure(f"Unknown reference kind '{kind}'", operation="reference")
        if self.data_dir is None:
            return []
        path = self.data_dir / f"{kind}.yaml"
        if not path.exists():
            return []
        try:
            return parse_reference_entries(kind, self._read_yaml(path))
        except (OSError, YAMLError, ValidationError, TypeError) as e:
            raise LoadFailure(
                f"Failed to load {kind} from {path}: {e}", operation="reference"
            ) from e

    async def reference_catalog(self) -> ReferenceCatalog:
        """All reference lists as one lookup."""
        return ReferenceCatalog.from_lists(
            {kind: await self.list_reference_data(kind) for kind in REFERENCE_KINDS}
        )
