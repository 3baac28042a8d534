"""Factory for creating quest gateways from editor configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from questcanvas.gateway.filesystem import FileQuestGateway
from questcanvas.gateway.http import HttpQuestGateway
from questcanvas.gateway.metadata_store import SqliteMetadataStore
from questcanvas.models.reference import REFERENCE_KINDS, ReferenceCatalog
from questcanvas.observability.logging import get_logger

if TYPE_CHECKING:
    from questcanvas.config import EditorConfig
    from questcanvas.gateway.base import QuestGateway

log = get_logger(__name__)


def create_gateway(config: EditorConfig) -> FileQuestGateway | HttpQuestGateway:
    """Create the gateway *config* asks for.

    With ``api_url`` set, quests come from the editor backend over HTTP;
    otherwise from YAML files under ``quests_dir``.
    """
    if config.api_url:
        log.debug("gateway_created", kind="http", base_url=config.api_url)
        return HttpQuestGateway(config.api_url)

    log.debug(
        "gateway_created",
        kind="files",
        quests_dir=str(config.quests_dir),
        data_dir=str(config.data_dir),
    )
    return FileQuestGateway(
        config.quests_dir,
        config.data_dir,
        SqliteMetadataStore(config.metadata_db),
    )


async def fetch_catalog(gateway: QuestGateway) -> ReferenceCatalog:
    """Collect every reference list into one label lookup.

    Raises:
        LoadFailure: If a list cannot be fetched.
    """
    lists = {kind: await gateway.list_reference_data(kind) for kind in REFERENCE_KINDS}
    return ReferenceCatalog.from_lists(lists)
