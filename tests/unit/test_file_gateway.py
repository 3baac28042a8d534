"""Tests for the YAML file quest gateway."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from ruamel.yaml import YAML

from questcanvas.gateway import (
    FileQuestGateway,
    LoadFailure,
    QuestNotFound,
    SaveConflict,
    SaveFailure,
    SqliteMetadataStore,
)
from questcanvas.gateway.filesystem import sanitize_filename
from questcanvas.models import NodePosition, PositionMetadata, QuestDocument

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture
def gateway(quest_workspace: Path) -> Iterator[FileQuestGateway]:
    store = SqliteMetadataStore(quest_workspace / "editor.db")
    yield FileQuestGateway(quest_workspace / "quests", quest_workspace / "data", store)
    store.close()


def _read(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return YAML(typ="safe").load(f)


def test_sanitize_filename() -> None:
    assert sanitize_filename("PAT:Intro/2 a\\b") == "PAT_Intro_2_a_b"


class TestListing:
    @pytest.mark.asyncio()
    async def test_lists_quests_recursively(
        self, gateway: FileQuestGateway, quest_workspace: Path, quest_data: dict[str, Any]
    ) -> None:
        nested = quest_workspace / "quests" / "act2"
        nested.mkdir()
        quest_data["QuestID"] = "PAT_Act2"
        with (nested / "act2.yml").open("w", encoding="utf-8") as f:
            YAML().dump(quest_data, f)

        assert sorted(await gateway.list_quests()) == ["PAT_Act2", "PAT_Intro"]

    @pytest.mark.asyncio()
    async def test_skips_unparsable_and_foreign_files(
        self, gateway: FileQuestGateway, quest_workspace: Path
    ) -> None:
        quests_dir = quest_workspace / "quests"
        (quests_dir / "broken.yaml").write_text("QuestID: [unclosed\n", encoding="utf-8")
        (quests_dir / "notes.yaml").write_text("- just\n- a list\n", encoding="utf-8")
        (quests_dir / "readme.txt").write_text("QuestID: PAT_Txt\n", encoding="utf-8")

        assert await gateway.list_quests() == ["PAT_Intro"]

    @pytest.mark.asyncio()
    async def test_missing_directory_is_empty(self, tmp_path: Path) -> None:
        gateway = FileQuestGateway(tmp_path / "nowhere")

        assert await gateway.list_quests() == []


class TestLoadAndSave:
    @pytest.mark.asyncio()
    async def test_load(self, gateway: FileQuestGateway) -> None:
        loaded = await gateway.load_quest("PAT_Intro")

        assert loaded.document.node_ids == [0, 1, 2, 3, 4, 5]
        assert loaded.metadata == PositionMetadata(quest_id="PAT_Intro")

    @pytest.mark.asyncio()
    async def test_load_missing(self, gateway: FileQuestGateway) -> None:
        with pytest.raises(QuestNotFound):
            await gateway.load_quest("PAT_Missing")

    @pytest.mark.asyncio()
    async def test_save_rewrites_existing_file(
        self, gateway: FileQuestGateway, quest_workspace: Path, quest_document: QuestDocument
    ) -> None:
        edited = quest_document.model_copy(update={"repeatable": "weekly"})
        metadata = PositionMetadata(
            quest_id="PAT_Intro", node_positions={2: NodePosition(x=3, y=4)}
        )

        result = await gateway.save_quest("PAT_Intro", edited, metadata)

        assert result.valid
        assert result.errors == []
        assert result.warnings == []
        on_disk = _read(quest_workspace / "quests" / "pat_intro.yaml")
        assert on_disk == edited.to_wire()
        loaded = await gateway.load_quest("PAT_Intro")
        assert loaded.document.repeatable == "weekly"
        assert loaded.metadata is not None
        assert loaded.metadata.node_positions[2] == NodePosition(x=3, y=4)

    @pytest.mark.asyncio()
    async def test_save_new_quest_uses_sanitized_name(
        self, gateway: FileQuestGateway, quest_workspace: Path, quest_data: dict[str, Any]
    ) -> None:
        quest_data["QuestID"] = "PAT:Side"
        document = QuestDocument.from_wire(quest_data)

        await gateway.save_quest("PAT:Side", document)

        assert (quest_workspace / "quests" / "PAT_Side.yaml").exists()
        assert sorted(await gateway.list_quests()) == ["PAT:Side", "PAT_Intro"]

    @pytest.mark.asyncio()
    async def test_invalid_quest_is_still_saved(
        self, gateway: FileQuestGateway, quest_workspace: Path, quest_data: dict[str, Any]
    ) -> None:
        quest_data["QuestNodes"][4]["NextNodes"] = [42]
        document = QuestDocument.from_wire(quest_data)

        result = await gateway.save_quest("PAT_Intro", document)

        assert not result.valid
        on_disk = _read(quest_workspace / "quests" / "pat_intro.yaml")
        assert on_disk["QuestNodes"][4]["NextNodes"] == [42]

    @pytest.mark.asyncio()
    async def test_id_mismatch(
        self, gateway: FileQuestGateway, quest_document: QuestDocument
    ) -> None:
        with pytest.raises(SaveFailure, match="mismatch"):
            await gateway.save_quest("PAT_Other", quest_document)

    @pytest.mark.asyncio()
    async def test_older_version_conflicts(
        self, gateway: FileQuestGateway, quest_workspace: Path, quest_document: QuestDocument
    ) -> None:
        before = (quest_workspace / "quests" / "pat_intro.yaml").read_text(encoding="utf-8")
        stale = quest_document.model_copy(update={"quest_version": 0, "repeatable": "always"})

        with pytest.raises(SaveConflict):
            await gateway.save_quest("PAT_Intro", stale)

        after = (quest_workspace / "quests" / "pat_intro.yaml").read_text(encoding="utf-8")
        assert after == before

    @pytest.mark.asyncio()
    async def test_delete(self, gateway: FileQuestGateway, quest_workspace: Path) -> None:
        await gateway.delete_quest("PAT_Intro")

        assert not (quest_workspace / "quests" / "pat_intro.yaml").exists()
        with pytest.raises(QuestNotFound):
            await gateway.delete_quest("PAT_Intro")


class TestReferenceData:
    @pytest.mark.asyncio()
    async def test_lists_entries(self, gateway: FileQuestGateway) -> None:
        npcs = await gateway.list_reference_data("npcs")

        assert [npc.ref_id for npc in npcs] == ["NPC_Mira"]

    @pytest.mark.asyncio()
    async def test_missing_file_is_empty(self, gateway: FileQuestGateway) -> None:
        assert await gateway.list_reference_data("factions") == []

    @pytest.mark.asyncio()
    async def test_unknown_kind(self, gateway: FileQuestGateway) -> None:
        with pytest.raises(LoadFailure, match="Unknown reference kind"):
            await gateway.list_reference_data("weapons")

    @pytest.mark.asyncio()
    async def test_malformed_file(self, gateway: FileQuestGateway, quest_workspace: Path) -> None:
        (quest_workspace / "data" / "items.yaml").write_text("- Name: x\n", encoding="utf-8")

        with pytest.raises(LoadFailure) as exc_info:
            await gateway.list_reference_data("items")

        assert exc_info.value.operation == "reference"

    @pytest.mark.asyncio()
    async def test_catalog_labels(self, gateway: FileQuestGateway) -> None:
        catalog = await gateway.reference_catalog()

        assert catalog.label("npcs", "NPC_Mira", "de-DE") == "Mira die Schreiberin"


class TestValidate:
    @pytest.mark.asyncio()
    async def test_known_references_pass(
        self, gateway: FileQuestGateway, quest_document: QuestDocument
    ) -> None:
        result = await gateway.validate(quest_document)

        assert result.valid
        assert result.warnings == []

    @pytest.mark.asyncio()
    async def test_unknown_reference_is_error(
        self, gateway: FileQuestGateway, quest_data: dict[str, Any]
    ) -> None:
        quest_data["QuestNodes"][1]["ConversationPartner"] = "NPC_Ghost"

        result = await gateway.validate(QuestDocument.from_wire(quest_data))

        assert not result.valid
        assert [str(e) for e in result.errors] == [
            "Node 1: unknown conversation partner: NPC_Ghost"
        ]

    @pytest.mark.asyncio()
    async def test_without_reference_data_only_warns(
        self, quest_workspace: Path, quest_document: QuestDocument
    ) -> None:
        gateway = FileQuestGateway(quest_workspace / "quests")

        result = await gateway.validate(quest_document)

        assert result.valid
        assert len(result.warnings) == 2


class TestValidateAll:
    @pytest.mark.asyncio()
    async def test_single_valid_quest(self, gateway: FileQuestGateway) -> None:
        count, result = await gateway.validate_all()

        assert count == 1
        assert result.valid, [str(e) for e in result.errors]

    @pytest.mark.asyncio()
    async def test_copied_quest_file_is_reported(
        self, gateway: FileQuestGateway, quest_workspace: Path, quest_data: dict[str, Any]
    ) -> None:
        with (quest_workspace / "quests" / "copy.yaml").open("w", encoding="utf-8") as f:
            YAML().dump(quest_data, f)

        count, result = await gateway.validate_all()

        assert count == 2
        assert not result.valid
        assert [str(e) for e in result.errors] == [
            "duplicate QuestID 'PAT_Intro' found 2 times",
            "duplicate DisplayName 'The Lost Ledger' (en-US) in quests: PAT_Intro, PAT_Intro",
            "duplicate DisplayName 'Das verlorene Hauptbuch' (de-DE) in quests: "
            "PAT_Intro, PAT_Intro",
        ]

    @pytest.mark.asyncio()
    async def test_unparsable_file_is_an_error(
        self, gateway: FileQuestGateway, quest_workspace: Path
    ) -> None:
        (quest_workspace / "quests" / "broken.yaml").write_text(
            "QuestID: [unclosed\n", encoding="utf-8"
        )

        count, result = await gateway.validate_all()

        assert count == 1
        assert not result.valid
        [error] = result.errors
        assert error.message.startswith("failed to load ")
        assert "broken.yaml" in error.message
