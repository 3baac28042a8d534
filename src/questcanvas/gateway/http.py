"""Quest gateway over the quest editor REST API.

Endpoints:
    GET    /api/quests                  -> ["QuestID", ...]
    GET    /api/quests/{id}             -> {"quest": {...}, "metadata": {...}}
    PUT    /api/quests/{id}             <- {"quest": {...}, "metadata": {...}}
                                        -> ValidationResult
    DELETE /api/quests/{id}
    POST   /api/validate                <- quest -> ValidationResult
    GET    /api/{items|factions|resources|npcs|objects}
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

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
from questcanvas.models.quest import PositionMetadata, QuestDocument
from questcanvas.models.reference import REFERENCE_KINDS, parse_reference_entries
from questcanvas.models.validation import ValidationResult
from questcanvas.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from questcanvas.models.reference import ReferenceEntry

log = get_logger(__name__)

DEFAULT_API_URL = "http://localhost:8080"
_DEFAULT_TIMEOUT = 30.0
_BODY_PREVIEW = 200


def _preview(response: httpx.Response) -> str:
    return response.text[:_BODY_PREVIEW].strip()


class HttpQuestGateway:
    """Async client for the quest editor backend.

    Args:
        base_url: Server URL. Falls back to the ``QC_API_URL`` env var, then
            ``http://localhost:8080``.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (e.g. ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        # Strip trailing slash for consistent URL construction
        self._base_url = (base_url or os.environ.get("QC_API_URL") or DEFAULT_API_URL).rstrip("/")
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self._base_url, timeout=timeout, transport=transport
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HttpQuestGateway:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # -- transport ---------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: Callable[[str], GatewayError],
        *,
        json: Any = None,
    ) -> httpx.Response:
        """Send a request, mapping transport failures to *error_cls*."""
        log.debug("gateway_request", method=method, path=path)
        try:
            return await self._client.request(method, path, json=json)
        except httpx.ConnectError as e:
            log.error("gateway_connect_error", base_url=self._base_url, error=str(e))
            raise error_cls(f"Cannot connect to {self._base_url}: {e}") from e
        except httpx.TimeoutException as e:
            log.error("gateway_timeout", path=path, timeout=self._timeout)
            raise error_cls(f"Request {method} {path} timed out after {self._timeout}s") from e
        except httpx.RequestError as e:
            log.error("gateway_request_error", path=path, error=str(e))
            raise error_cls(f"Request {method} {path} failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response, error_cls: Callable[[str], GatewayError]) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise error_cls(f"Invalid JSON response: {_preview(response)!r}") from e

    @staticmethod
    def _quest_path(quest_id: str) -> str:
        return f"/api/quests/{quote(quest_id, safe='')}"

    # -- QuestGateway ------------------------------------------------------

    async def list_quests(self) -> list[str]:
        response = await self._request("GET", "/api/quests", LoadFailure)
        if response.status_code != 200:
            raise LoadFailure(
                f"Listing quests returned HTTP {response.status_code}: {_preview(response)}"
            )
        data = self._json(response, LoadFailure)
        return [str(quest_id) for quest_id in data or []]

    async def load_quest(self, quest_id: str) -> LoadedQuest:
        response = await self._request("GET", self._quest_path(quest_id), LoadFailure)
        if response.status_code == 404:
            raise QuestNotFound(quest_id)
        if response.status_code != 200:
            log.error("quest_load_failed", quest_id=quest_id, status_code=response.status_code)
            raise LoadFailure(
                f"Loading '{quest_id}' returned HTTP {response.status_code}: {_preview(response)}"
            )

        payload = self._json(response, LoadFailure)
        if not isinstance(payload, dict) or "quest" not in payload:
            raise LoadFailure(f"Response for '{quest_id}' has no 'quest' field")
        try:
            document = QuestDocument.from_wire(payload["quest"])
        except SchemaViolation as e:
            raise LoadFailure(f"Quest '{quest_id}' does not match the schema: {e.problems}") from e

        metadata = None
        if payload.get("metadata") is not None:
            try:
                metadata = PositionMetadata.model_validate(payload["metadata"])
            except ValidationError as e:
                log.warning("metadata_parse_failed", quest_id=quest_id, error=str(e))

        log.info("quest_loaded", quest_id=quest_id, nodes=len(document.nodes))
        return LoadedQuest(document=document, metadata=metadata)

    async def save_quest(
        self,
        quest_id: str,
        document: QuestDocument,
        metadata: PositionMetadata | None = None,
    ) -> ValidationResult:
        body: dict[str, Any] = {"quest": document.to_wire()}
        if metadata is not None:
            body["metadata"] = metadata.to_wire()

        response = await self._request("PUT", self._quest_path(quest_id), SaveFailure, json=body)
        if response.status_code == 409:
            raise SaveConflict(quest_id, _preview(response))
        if response.status_code != 200:
            log.error("quest_save_failed", quest_id=quest_id, status_code=response.status_code)
            raise SaveFailure(
                f"Saving '{quest_id}' returned HTTP {response.status_code}: {_preview(response)}"
            )
        result = self._parse_result(response, SaveFailure)
        log.info("quest_saved", quest_id=quest_id, valid=result.valid)
        return result

    async def delete_quest(self, quest_id: str) -> None:
        response = await self._request("DELETE", self._quest_path(quest_id), SaveFailure)
        if response.status_code == 404:
            raise QuestNotFound(quest_id)
        if response.status_code not in (200, 204):
            raise SaveFailure(
                f"Deleting '{quest_id}' returned HTTP {response.status_code}: {_preview(response)}"
            )

    async def validate(self, document: QuestDocument) -> ValidationResult:
        response = await self._request(
            "POST", "/api/validate", ValidationFailure, json=document.to_wire()
        )
        if response.status_code != 200:
            raise ValidationFailure(
                f"Validation returned HTTP {response.status_code}: {_preview(response)}"
            )
        return self._parse_result(response, ValidationFailure)

    async def list_reference_data(self, kind: str) -> list[ReferenceEntry]:
        if kind not in REFERENCE_KINDS:
            raise LoadFailure(f"Unknown reference kind '{kind}'", operation="reference")
        response = await self._request("GET", f"/api/{kind}", LoadFailure)
        if response.status_code != 200:
            raise LoadFailure(
                f"Listing {kind} returned HTTP {response.status_code}: {_preview(response)}",
                operation="reference",
            )
        try:
            return parse_reference_entries(kind, self._json(response, LoadFailure))
        except ValidationError as e:
            raise LoadFailure(f"Malformed {kind} entries: {e}", operation="reference") from e

    def _parse_result(
        self, response: httpx.Response, error_cls: Callable[[str], GatewayError]
    ) -> ValidationResult:
        try:
            return ValidationResult.model_validate(self._json(response, error_cls))
        except ValidationError as e:
            raise error_cls(f"Malformed validation result: {e}") from e
