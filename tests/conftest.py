"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest
from ruamel.yaml import YAML

from questcanvas.gateway import LoadedQuest, QuestNotFound
from questcanvas.models import PositionMetadata, QuestDocument, ValidationResult

QUEST_ID = "PAT_Intro"


def _text(en: str, de: str) -> dict[str, str]:
    return {"en-US": en, "de-DE": de}


def sample_quest_data() -> dict[str, Any]:
    """A small valid quest: entry, dialog, decision, accept and decline paths."""
    return {
        "QuestTypeVersion": 1,
        "QuestVersion": 1,
        "QuestID": QUEST_ID,
        "QuestType": "SideQuest",
        "DisplayName": _text("The Lost Ledger", "Das verlorene Hauptbuch"),
        "Repeatable": "never",
        "QuestNodes": [
            {"NodeID": 0, "NodeType": "EntryPoint", "NextNodes": [1]},
            {
                "NodeID": 1,
                "NodeType": "Dialog",
                "ConversationPartner": "NPC_Mira",
                "Messages": [
                    {"Speaker": "NPC_Mira", "Text": _text("Seen my ledger?", "Mein Buch?")},
                    {"Speaker": "Player", "Text": _text("Seen what?", "Was denn?")},
                ],
                "NextNodes": [2],
            },
            {
                "NodeID": 2,
                "NodeType": "PlayerDecisionDialog",
                "Options": [
                    {"Text": _text("I'll help.", "Ich helfe."), "NextNodes": [3]},
                    {"Text": _text("Not now.", "Nicht jetzt."), "NextNodes": [5]},
                ],
            },
            {
                "NodeID": 3,
                "NodeType": "Actions",
                "Actions": [
                    "AcceptQuest",
                    {"JournalEntry": _text("Mira lost her ledger.", "Mira hat ihr Buch verloren.")},
                    {"QuestStageDescription": _text("Find the ledger.", "Finde das Buch.")},
                ],
                "NextNodes": [4],
            },
            {
                "NodeID": 4,
                "NodeType": "Actions",
                "Actions": ["CompleteQuest", {"Experience": 100}],
            },
            {
                "NodeID": 5,
                "NodeType": "Actions",
                "Actions": [
                    {"JournalEntry": _text("I turned Mira down.", "Ich habe Mira abgewiesen.")},
                    "DeclineQuest",
                ],
            },
        ],
    }


class FakeGateway:
    """In-memory QuestGateway with knobs for failure and slow validation."""

    def __init__(self, quests: dict[str, LoadedQuest] | None = None) -> None:
        self.quests = dict(quests or {})
        self.saved: list[tuple[str, QuestDocument, PositionMetadata | None]] = []
        self.validated: list[QuestDocument] = []
        self.validation_result = ValidationResult()
        self.validate_gate: asyncio.Event | None = None
        self.save_error: Exception | None = None
        self.validate_error: Exception | None = None

    async def list_quests(self) -> list[str]:
        return list(self.quests)

    async def load_quest(self, quest_id: str) -> LoadedQuest:
        if quest_id not in self.quests:
            raise QuestNotFound(quest_id)
        return self.quests[quest_id]

    async def save_quest(
        self,
        quest_id: str,
        document: QuestDocument,
        metadata: PositionMetadata | None = None,
    ) -> ValidationResult:
        if self.save_error is not None:
            raise self.save_error
        self.saved.append((quest_id, document, metadata))
        self.quests[quest_id] = LoadedQuest(document=document, metadata=metadata)
        return self.validation_result.model_copy(deep=True)

    async def validate(self, document: QuestDocument) -> ValidationResult:
        self.validated.append(document)
        # The outcome is fixed when the call starts, not when the gate opens.
        error = self.validate_error
        if self.validate_gate is not None:
            await self.validate_gate.wait()
        if error is not None:
            raise error
        return self.validation_result.model_copy(deep=True)

    async def list_reference_data(self, kind: str) -> list[Any]:
        return []


@pytest.fixture
def quest_data() -> dict[str, Any]:
    """Wire-form sample quest (fresh copy per test)."""
    return sample_quest_data()


@pytest.fixture
def quest_document(quest_data: dict[str, Any]) -> QuestDocument:
    return QuestDocument.from_wire(quest_data)


@pytest.fixture
def fake_gateway(quest_document: QuestDocument) -> FakeGateway:
    """Gateway that already holds the sample quest."""
    return FakeGateway({QUEST_ID: LoadedQuest(document=quest_document)})


@pytest.fixture
def npc_data() -> list[dict[str, Any]]:
    return [
        {"NPCID": "NPC_Mira", "DisplayName": _text("Mira the Scribe", "Mira die Schreiberin")},
    ]


@pytest.fixture
def quest_workspace(
    tmp_path: Path, quest_data: dict[str, Any], npc_data: list[dict[str, Any]]
) -> Path:
    """A directory with quests/, data/ and a questcanvas.yaml pointing at them."""
    yaml = YAML()
    quests_dir = tmp_path / "quests"
    data_dir = tmp_path / "data"
    quests_dir.mkdir()
    data_dir.mkdir()

    with (quests_dir / "pat_intro.yaml").open("w", encoding="utf-8") as f:
        yaml.dump(quest_data, f)
    with (data_dir / "npcs.yaml").open("w", encoding="utf-8") as f:
        yaml.dump(npc_data, f)
    with (tmp_path / "questcanvas.yaml").open("w", encoding="utf-8") as f:
        yaml.dump(
            {
                "quests_dir": "quests",
                "data_dir": "data",
                "metadata_db": "editor.db",
                "settle_ms": 10,
            },
            f,
        )
    return tmp_path


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove QC_* overrides the developer's shell may carry."""
    for name in ("QC_API_URL", "QC_DATA_DIR", "QC_SETTLE_MS", "QC_LOCALE", "QC_CONFIG"):
        monkeypatch.delenv(name, raising=False)
