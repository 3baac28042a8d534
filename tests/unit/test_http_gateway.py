"""Tests for the REST quest gateway."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from questcanvas.gateway import (
    HttpQuestGateway,
    LoadFailure,
    QuestNotFound,
    SaveConflict,
    SaveFailure,
    ValidationFailure,
)
from questcanvas.gateway.http import DEFAULT_API_URL
from questcanvas.models import NPC, PositionMetadata, QuestDocument

if TYPE_CHECKING:
    from collections.abc import Callable


def _gateway(handler: Callable[[httpx.Request], httpx.Response]) -> HttpQuestGateway:
    return HttpQuestGateway("http://editor.test/", transport=httpx.MockTransport(handler))


class TestConstruction:
    def test_base_url_trailing_slash_stripped(self) -> None:
        assert _gateway(lambda r: httpx.Response(200)).base_url == "http://editor.test"

    def test_base_url_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QC_API_URL", "http://from-env:9000")

        assert HttpQuestGateway().base_url == "http://from-env:9000"

    def test_default_base_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("QC_API_URL", raising=False)

        assert HttpQuestGateway().base_url == DEFAULT_API_URL


class TestListQuests:
    @pytest.mark.asyncio()
    async def test_returns_ids(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/api/quests"
            return httpx.Response(200, json=["PAT_Intro", "PAT_Other"])

        async with _gateway(handler) as gateway:
            assert await gateway.list_quests() == ["PAT_Intro", "PAT_Other"]

    @pytest.mark.asyncio()
    async def test_null_body_is_empty(self) -> None:
        async with _gateway(lambda r: httpx.Response(200, json=None)) as gateway:
            assert await gateway.list_quests() == []

    @pytest.mark.asyncio()
    async def test_server_error(self) -> None:
        async with _gateway(lambda r: httpx.Response(500, text="boom")) as gateway:
            with pytest.raises(LoadFailure, match="HTTP 500"):
                await gateway.list_quests()

    @pytest.mark.asyncio()
    async def test_invalid_json(self) -> None:
        async with _gateway(lambda r: httpx.Response(200, text="<html>")) as gateway:
            with pytest.raises(LoadFailure, match="Invalid JSON"):
                await gateway.list_quests()

    @pytest.mark.asyncio()
    async def test_connect_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _gateway(handler) as gateway:
            with pytest.raises(LoadFailure, match="Cannot connect"):
                await gateway.list_quests()


class TestLoadQuest:
    @pytest.mark.asyncio()
    async def test_loads_document_and_metadata(self, quest_data: dict[str, Any]) -> None:
        body = {
            "quest": quest_data,
            "metadata": {"questId": "PAT_Intro", "nodePositions": {"0": {"x": 1, "y": 2}}},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/quests/PAT_Intro"
            return httpx.Response(200, json=body)

        async with _gateway(handler) as gateway:
            loaded = await gateway.load_quest("PAT_Intro")

        assert loaded.document.quest_id == "PAT_Intro"
        assert loaded.metadata is not None
        assert loaded.metadata.node_positions[0].y == 2

    @pytest.mark.asyncio()
    async def test_quest_id_is_escaped(self, quest_data: dict[str, Any]) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.raw_path.decode())
            return httpx.Response(200, json={"quest": quest_data})

        async with _gateway(handler) as gateway:
            await gateway.load_quest("PAT:Intro/2")

        assert seen == ["/api/quests/PAT%3AIntro%2F2"]

    @pytest.mark.asyncio()
    async def test_missing_metadata(self, quest_data: dict[str, Any]) -> None:
        async with _gateway(lambda r: httpx.Response(200, json={"quest": quest_data})) as gateway:
            loaded = await gateway.load_quest("PAT_Intro")

        assert loaded.metadata is None

    @pytest.mark.asyncio()
    async def test_bad_metadata_is_ignored(self, quest_data: dict[str, Any]) -> None:
        body = {"quest": quest_data, "metadata": {"nodePositions": "nonsense"}}

        async with _gateway(lambda r: httpx.Response(200, json=body)) as gateway:
            loaded = await gateway.load_quest("PAT_Intro")

        assert loaded.metadata is None

    @pytest.mark.asyncio()
    async def test_not_found(self) -> None:
        async with _gateway(lambda r: httpx.Response(404)) as gateway:
            with pytest.raises(QuestNotFound) as exc_info:
                await gateway.load_quest("PAT_Missing")

        assert exc_info.value.quest_id == "PAT_Missing"
        assert exc_info.value.operation == "load"

    @pytest.mark.asyncio()
    async def test_schema_violation(self, quest_data: dict[str, Any]) -> None:
        quest_data["QuestNodes"][0]["NodeType"] = "Cutscene"

        async with _gateway(lambda r: httpx.Response(200, json={"quest": quest_data})) as gateway:
            with pytest.raises(LoadFailure, match="does not match the schema"):
                await gateway.load_quest("PAT_Intro")

    @pytest.mark.asyncio()
    async def test_missing_quest_field(self) -> None:
        async with _gateway(lambda r: httpx.Response(200, json={"metadata": None})) as gateway:
            with pytest.raises(LoadFailure, match="no 'quest' field"):
                await gateway.load_quest("PAT_Intro")

    @pytest.mark.asyncio()
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with _gateway(handler) as gateway:
            with pytest.raises(LoadFailure, match="timed out"):
                await gateway.load_quest("PAT_Intro")


class TestSaveQuest:
    @pytest.mark.asyncio()
    async def test_puts_quest_and_metadata(self, quest_document: QuestDocument) -> None:
        bodies: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PUT"
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200, json={"valid": False, "errors": [{"nodeId": 3, "message": "bad"}]}
            )

        metadata = PositionMetadata.model_validate(
            {"questId": "PAT_Intro", "nodePositions": {"3": {"x": 4, "y": 5}}}
        )
        async with _gateway(handler) as gateway:
            result = await gateway.save_quest("PAT_Intro", quest_document, metadata)

        assert not result.valid
        assert result.errors[0].node_id == 3
        assert bodies[0]["quest"] == quest_document.to_wire()
        assert bodies[0]["metadata"] == {
            "questId": "PAT_Intro",
            "nodePositions": {"3": {"x": 4.0, "y": 5.0}},
        }

    @pytest.mark.asyncio()
    async def test_metadata_omitted_when_none(self, quest_document: QuestDocument) -> None:
        bodies: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"valid": True, "errors": []})

        async with _gateway(handler) as gateway:
            await gateway.save_quest("PAT_Intro", quest_document)

        assert "metadata" not in bodies[0]

    @pytest.mark.asyncio()
    async def test_conflict(self, quest_document: QuestDocument) -> None:
        async with _gateway(lambda r: httpx.Response(409, text="stale")) as gateway:
            with pytest.raises(SaveConflict) as exc_info:
                await gateway.save_quest("PAT_Intro", quest_document)

        assert exc_info.value.operation == "save"
        assert "stale" in str(exc_info.value)

    @pytest.mark.asyncio()
    async def test_transport_error_is_save_failure(self, quest_document: QuestDocument) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.RemoteProtocolError("reset", request=request)

        async with _gateway(handler) as gateway:
            with pytest.raises(SaveFailure, match="failed"):
                await gateway.save_quest("PAT_Intro", quest_document)

    @pytest.mark.asyncio()
    async def test_malformed_result(self, quest_document: QuestDocument) -> None:
        async with _gateway(lambda r: httpx.Response(200, json={"valid": "maybe"})) as gateway:
            with pytest.raises(SaveFailure, match="Malformed validation result"):
                await gateway.save_quest("PAT_Intro", quest_document)

    @pytest.mark.asyncio()
    async def test_delete(self) -> None:
        methods: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            return httpx.Response(204)

        async with _gateway(handler) as gateway:
            await gateway.delete_quest("PAT_Intro")

        assert methods == ["DELETE"]


class TestValidate:
    @pytest.mark.asyncio()
    async def test_posts_document(self, quest_document: QuestDocument) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/validate"
            assert json.loads(request.content)["QuestID"] == "PAT_Intro"
            return httpx.Response(
                200, json={"valid": True, "errors": [], "warnings": [{"message": "hm"}]}
            )

        async with _gateway(handler) as gateway:
            result = await gateway.validate(quest_document)

        assert result.valid
        assert result.warnings[0].message == "hm"

    @pytest.mark.asyncio()
    async def test_failure(self, quest_document: QuestDocument) -> None:
        async with _gateway(lambda r: httpx.Response(503)) as gateway:
            with pytest.raises(ValidationFailure, match="HTTP 503"):
                await gateway.validate(quest_document)


class TestReferenceData:
    @pytest.mark.asyncio()
    async def test_lists_entries(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/npcs"
            return httpx.Response(
                200, json=[{"NPCID": "NPC_Mira", "DisplayName": {"en-US": "Mira"}}]
            )

        async with _gateway(handler) as gateway:
            entries = await gateway.list_reference_data("npcs")

        assert isinstance(entries[0], NPC)
        assert entries[0].ref_id == "NPC_Mira"

    @pytest.mark.asyncio()
    async def test_unknown_kind(self) -> None:
        async with _gateway(lambda r: httpx.Response(200, json=[])) as gateway:
            with pytest.raises(LoadFailure) as exc_info:
                await gateway.list_reference_data("weapons")

        assert exc_info.value.operation == "reference"

    @pytest.mark.asyncio()
    async def test_malformed_entries(self) -> None:
        async with _gateway(lambda r: httpx.Response(200, json=[{"Name": "x"}])) as gateway:
            with pytest.raises(LoadFailure, match="Malformed items"):
                await gateway.list_reference_data("items")
