"""Gateways between the editor core and quest storage/validation backends."""

from questcanvas.gateway.base import LoadedQuest, QuestGateway
from questcanvas.gateway.errors import (
    GatewayError,
    LoadFailure,
    QuestNotFound,
    SaveConflict,
    SaveFailure,
    ValidationFailure,
)
from questcanvas.gateway.factory import create_gateway, fetch_catalog
from questcanvas.gateway.filesystem import FileQuestGateway
from questcanvas.gateway.http import HttpQuestGateway
from questcanvas.gateway.metadata_store import SqliteMetadataStore

__all__ = [
    "FileQuestGateway",
    "GatewayError",
    "HttpQuestGateway",
    "LoadFailure",
    "LoadedQuest",
    "QuestGateway",
    "QuestNotFound",
    "SaveConflict",
    "SaveFailure",
    "SqliteMetadataStore",
    "ValidationFailure",
    "create_gateway",
    "fetch_catalog",
]
