"""Synchronization controller between the canvas graph and the quest document.

The controller owns the live ``GraphState`` and the latest committed
``QuestDocument``. Interactive edits mutate the graph and (re)start a single
debounce timer; when the settle window elapses the graph is converted back
into a document, handed to the ``on_flush`` consumer and sent for
validation.

States:

- EMPTY: nothing loaded; edits raise ``NoQuestLoaded``
- LOADED: graph and committed document agree
- DIRTY: edits are waiting for the settle window

Every flush and every load bumps the edit generation. Validation and save
results are applied only while their generation is still current, so a
slow answer about an older document never overwrites a newer one.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from functools import partial
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from questcanvas.gateway.errors import GatewayError, LoadFailure, SaveFailure, ValidationFailure
from questcanvas.graph.converter import (
    clone_data,
    edge_id as build_edge_id,
    graph_metadata,
    option_count,
    to_document,
    to_graph,
)
from questcanvas.graph.errors import (
    ConnectionRejected,
    EdgeEndpointError,
    EdgeNotFound,
    GraphNodeNotFound,
    IdSpaceExhausted,
    NoQuestLoaded,
    RoutingHandleError,
)
from questcanvas.graph.model import NODE_ID_LIMIT, GraphEdge, GraphNode, Position, parse_node_id
from questcanvas.graph.routing import parse_handle, route_fits
from questcanvas.models.errors import SchemaViolation
from questcanvas.models.quest import NODE_TYPES
from questcanvas.observability.logging import get_logger, quest_context
from questcanvas.sync.history import DEFAULT_HISTORY_LIMIT, EditHistory
from questcanvas.sync.scheduler import FlushScheduler

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from questcanvas.gateway.base import QuestGateway
    from questcanvas.graph.errors import ConversionAnomaly
    from questcanvas.graph.model import GraphState
    from questcanvas.graph.routing import Route
    from questcanvas.models.quest import PositionMetadata, QuestDocument
    from questcanvas.models.validation import ValidationResult

log = get_logger(__name__)

DEFAULT_SETTLE_DELAY = 0.1


class SyncState(StrEnum):
    EMPTY = "empty"
    LOADED = "loaded"
    DIRTY = "dirty"


@dataclass(frozen=True)
class FlushEvent:
    """A committed document produced from the canvas.

    Attributes:
        document: The rebuilt quest document.
        metadata: Positions of every node on the canvas at flush time.
        generation: Edit generation this flush created.
        anomalies: Graph items that could not contribute to the document.
    """

    document: QuestDocument
    metadata: PositionMetadata
    generation: int
    anomalies: tuple[ConversionAnomaly, ...] = ()


class SyncController:
    """Keeps a canvas graph and its quest document in sync.

    Args:
        gateway: Backend for loading, saving and validation. Optional for
            purely local use; validation is skipped without one.
        on_flush: Called with each ``FlushEvent``.
        on_validation: Called with each applied validation result.
        settle_delay: Debounce window in seconds.
        history_limit: Maximum number of undo snapshots.
    """

    def __init__(
        self,
        gateway: QuestGateway | None = None,
        *,
        on_flush: Callable[[FlushEvent], None] | None = None,
        on_validation: Callable[[ValidationResult], None] | None = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._gateway = gateway
        self._on_flush = on_flush
        self._on_validation = on_validation
        self._scheduler = FlushScheduler(settle_delay, self._flush)
        self._history = EditHistory(history_limit)
        self._graph: GraphState | None = None
        self._document: QuestDocument | None = None
        self._metadata: PositionMetadata | None = None
        self._generation = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self.validation: ValidationResult | None = None
        self.anomalies: list[ConversionAnomaly] = []
        self.last_error: GatewayError | None = None

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        if self._graph is None:
            return SyncState.EMPTY
        return SyncState.DIRTY if self._scheduler.pending else SyncState.LOADED

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def graph(self) -> GraphState | None:
        """Detached copy of the live graph."""
        return self._graph.copy() if self._graph is not None else None

    @property
    def document(self) -> QuestDocument | None:
        """Latest committed document (pending edits not included)."""
        return self._document

    @property
    def metadata(self) -> PositionMetadata | None:
        return self._metadata

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    def _require_graph(self) -> GraphState:
        if self._graph is None:
            raise NoQuestLoaded()
        return self._graph

    def _require_gateway(self, error_cls: Callable[[str], GatewayError]) -> QuestGateway:
        if self._gateway is None:
            raise error_cls("No gateway configured")
        return self._gateway

    # -- loading -----------------------------------------------------------

    def load(
        self,
        document: QuestDocument,
        metadata: PositionMetadata | None = None,
        *,
        force: bool = False,
    ) -> bool:
        """Show *document* on the canvas. Not a user edit; never flushes.

        A repeat load of the quest already shown, at the same or an older
        QuestVersion, is ignored so local edits survive. Otherwise the graph
        is replaced, any pending flush is discarded and undo history cleared.

        Returns:
            Whether the document was loaded.
        """
        current = self._document
        if (
            not force
            and current is not None
            and current.quest_id == document.quest_id
            and (document.quest_version or 0) <= (current.quest_version or 0)
        ):
            log.debug(
                "load_ignored",
                quest_id=document.quest_id,
                quest_version=document.quest_version,
            )
            return False

        discarded = self._scheduler.cancel()
        self._graph = to_graph(document, metadata)
        self._document = document
        self._metadata = graph_metadata(document.quest_id, self._graph)
        self._history.clear()
        self.anomalies = []
        self.validation = None
        self._generation += 1
        log.info(
            "quest_shown",
            quest_id=document.quest_id,
            nodes=len(self._graph.nodes),
            edges=len(self._graph.edges),
            discarded_pending=discarded,
        )
        self._request_validation(document)
        return True

    async def load_quest(self, quest_id: str, *, force: bool = False) -> bool:
        """Fetch *quest_id* through the gateway and load it.

        Raises:
            QuestNotFound: If the quest does not exist.
            LoadFailure: On any other gateway failure. Local state is kept.
        """
        gateway = self._require_gateway(LoadFailure)
        try:
            loaded = await gateway.load_quest(quest_id)
        except GatewayError as e:
            self.last_error = e
            log.error("quest_load_failed", quest_id=quest_id, error=str(e))
            raise
        self.last_error = None
        return self.load(loaded.document, loaded.metadata, force=force)

    def unload(self) -> None:
        """Back to EMPTY; pending edits are dropped."""
        self._scheduler.cancel()
        self._graph = None
        self._document = None
        self._metadata = None
        self._history.clear()
        self.anomalies = []
        self.validation = None
        self._generation += 1

    # -- node edits --------------------------------------------------------

    def add_node(
        self,
        node_type: str,
        x: float = 0.0,
        y: float = 0.0,
        data: Mapping[str, Any] | None = None,
    ) -> str:
        """Add a node with the next free id.

        Returns:
            The new node's graph id.

        Raises:
            IdSpaceExhausted: If the next id would reach ``NODE_ID_LIMIT``.
            SchemaViolation: If *node_type* is unknown.
        """
        graph = self._require_graph()
        if node_type not in NODE_TYPES:
            raise SchemaViolation(f"Unknown node type '{node_type}'")
        current_max = graph.max_node_id()
        new_id = current_max + 1
        if new_id >= NODE_ID_LIMIT:
            raise IdSpaceExhausted(current_max=current_max, limit=NODE_ID_LIMIT)

        payload = clone_data(data or {})
        payload["NodeID"] = new_id
        payload["NodeType"] = node_type
        self._history.push(graph)
        graph.nodes.append(GraphNode(id=str(new_id), position=Position(x=x, y=y), data=payload))
        self._touch("add_node", node_id=new_id)
        return str(new_id)

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every edge touching it."""
        graph = self._require_graph()
        node = graph.get_node(node_id)
        if node is None:
            raise GraphNodeNotFound(node_id)
        self._history.push(graph)
        graph.nodes.remove(node)
        graph.edges = [e for e in graph.edges if node_id not in (e.source, e.target)]
        self._touch("remove_node", node_id=node_id)

    def move_node(self, node_id: str, x: float, y: float) -> None:
        graph = self._require_graph()
        node = graph.get_node(node_id)
        if node is None:
            raise GraphNodeNotFound(node_id)
        self._history.push(graph)
        node.position = Position(x=x, y=y)
        self._touch("move_node", node_id=node_id)

    def update_node_data(self, node_id: str, data: Mapping[str, Any]) -> None:
        """Replace a node's fields. ``NodeID`` always stays the node's own id."""
        graph = self._require_graph()
        node = graph.get_node(node_id)
        if node is None:
            raise GraphNodeNotFound(node_id)
        payload = clone_data(data)
        own_id = parse_node_id(node_id)
        if own_id is not None:
            payload["NodeID"] = own_id
        self._history.push(graph)
        node.data = payload
        self._touch("update_node_data", node_id=node_id)

    # -- edge edits --------------------------------------------------------

    def _check_connection(
        self, graph: GraphState, source: str, target: str, routing_handle: str | None
    ) -> Route:
        source_node = graph.get_node(source)
        target_node = graph.get_node(target)
        if source_node is None and target_node is None:
            raise EdgeEndpointError(source, target, "both")
        if source_node is None:
            raise EdgeEndpointError(source, target, "source")
        if target_node is None:
            raise EdgeEndpointError(source, target, "target")
        if target_node.node_type == "EntryPoint":
            raise ConnectionRejected(source, target, "EntryPoint nodes cannot have predecessors")

        route = parse_handle(routing_handle)
        if route is None:
            raise RoutingHandleError(source, target, "unknown routing handle", routing_handle)
        if not route_fits(source_node.node_type, route, option_count(source_node.data)):
            raise RoutingHandleError(
                source,
                target,
                f"handle {routing_handle!r} does not fit {source_node.node_type} node",
                routing_handle,
            )
        return route

    @staticmethod
    def _find_edge(
        graph: GraphState, source: str, target: str, handle: str | None, *, skip: str | None = None
    ) -> GraphEdge | None:
        for edge in graph.edges:
            if edge.id == skip:
                continue
            if (edge.source, edge.target, edge.routing_handle or None) == (source, target, handle):
                return edge
        return None

    @staticmethod
    def _free_edge_id(graph: GraphState, base: str) -> str:
        taken = {edge.id for edge in graph.edges}
        if base not in taken:
            return base
        suffix = 1
        while f"{base}#{suffix}" in taken:
            suffix += 1
        return f"{base}#{suffix}"

    def add_edge(self, source: str, target: str, routing_handle: str | None = None) -> str:
        """Connect two nodes through *routing_handle*.

        Connecting an already connected pair through the same handle is a
        no-op that returns the existing edge id.

        Raises:
            EdgeEndpointError: If an endpoint does not exist.
            RoutingHandleError: If the handle does not fit the source node.
            ConnectionRejected: If the target is an EntryPoint.
        """
        graph = self._require_graph()
        route = self._check_connection(graph, source, target, routing_handle)
        handle = route.handle
        existing = self._find_edge(graph, source, target, handle)
        if existing is not None:
            return existing.id

        new_id = self._free_edge_id(graph, build_edge_id(source, target, route))
        self._history.push(graph)
        graph.edges.append(
            GraphEdge(id=new_id, source=source, target=target, routing_handle=handle)
        )
        self._touch("add_edge", edge_id=new_id)
        return new_id

    def remove_edge(self, edge_id: str) -> None:
        graph = self._require_graph()
        edge = graph.get_edge(edge_id)
        if edge is None:
            raise EdgeNotFound(edge_id)
        self._history.push(graph)
        graph.edges.remove(edge)
        self._touch("remove_edge", edge_id=edge_id)

    def reconnect_edge(
        self,
        edge_id: str,
        source: str,
        target: str,
        routing_handle: str | None = None,
    ) -> str:
        """Move an edge to new endpoints, keeping its place in edge order.

        Returns:
            The edge's new id (or the id of an identical edge that already
            existed, in which case the reconnected edge is dropped).
        """
        graph = self._require_graph()
        edge = graph.get_edge(edge_id)
        if edge is None:
            raise EdgeNotFound(edge_id)
        route = self._check_connection(graph, source, target, routing_handle)
        handle = route.handle

        self._history.push(graph)
        existing = self._find_edge(graph, source, target, handle, skip=edge_id)
        if existing is not None:
            graph.edges.remove(edge)
            self._touch("reconnect_edge", edge_id=existing.id)
            return existing.id

        index = graph.edges.index(edge)
        graph.edges.pop(index)
        new_id = self._free_edge_id(graph, build_edge_id(source, target, route))
        graph.edges.insert(
            index, GraphEdge(id=new_id, source=source, target=target, routing_handle=handle)
        )
        self._touch("reconnect_edge", edge_id=new_id)
        return new_id

    def undo(self) -> bool:
        """Restore the graph as it was before the latest edit.

        Returns:
            Whether there was anything to undo.
        """
        self._require_graph()
        snapshot = self._history.pop()
        if snapshot is None:
            return False
        self._graph = snapshot
        self._touch("undo")
        return True

    def _touch(self, edit: str, **context: Any) -> None:
        self._scheduler.schedule()
        log.debug("graph_edited", edit=edit, **context)

    # -- flushing ----------------------------------------------------------

    def flush(self) -> FlushEvent | None:
        """Flush pending edits now instead of waiting for the settle window.

        Returns:
            The flush event, or None when nothing was pending.
        """
        if not self._scheduler.cancel():
            return None
        return self._flush()

    def _flush(self) -> FlushEvent | None:
        if self._graph is None or self._document is None:
            return None
        anomalies: list[ConversionAnomaly] = []
        document = to_document(self._graph, self._document, anomalies=anomalies)
        metadata = graph_metadata(document.quest_id, self._graph)
        self._document = document
        self._metadata = metadata
        self._generation += 1
        self.anomalies = anomalies

        event = FlushEvent(
            document=document,
            metadata=metadata,
            generation=self._generation,
            anomalies=tuple(anomalies),
        )
        log.debug(
            "quest_flushed",
            quest_id=document.quest_id,
            generation=self._generation,
            nodes=len(document.nodes),
            anomalies=len(anomalies),
        )
        if self._on_flush is not None:
            self._on_flush(event)
        self._request_validation(document)
        return event

    # -- validation and saving ---------------------------------------------

    def _request_validation(self, document: QuestDocument) -> None:
        if self._gateway is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("validation_deferred", reason="no running event loop")
            return
        generation = self._generation
        task = loop.create_task(self._validate(self._gateway, document, generation))
        self._tasks.add(task)
        task.add_done_callback(partial(self._validation_done, generation=generation))

    async def _validate(
        self, gateway: QuestGateway, document: QuestDocument, generation: int
    ) -> None:
        with quest_context(document.quest_id):
            try:
                result = await gateway.validate(document)
            except GatewayError as e:
                if generation != self._generation:
                    log.debug(
                        "stale_validation_failure_discarded",
                        generation=generation,
                        current=self._generation,
                        error=str(e),
                    )
                    return
                self.last_error = e
                log.warning("validation_failed", error=str(e))
                return
            self.apply_validation(result, generation)

    def _validation_done(self, task: asyncio.Task[None], generation: int) -> None:
        """Retrieve the outcome of a background validation task.

        Anything other than a GatewayError escaping the task is a bug in the
        validator; it is logged and, while still current, kept as last_error.
        """
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        log.error("validation_crashed", generation=generation, error=repr(error))
        if generation == self._generation:
            self.last_error = ValidationFailure(f"Validator crashed: {error!r}")

    def apply_validation(self, result: ValidationResult, generation: int) -> bool:
        """Apply *result* if it belongs to the current edit generation.

        Conversion anomalies of the latest flush are appended as warnings.

        Returns:
            False when the result was stale and discarded.
        """
        if generation != self._generation:
            log.debug(
                "stale_validation_discarded", generation=generation, current=self._generation
            )
            return False
        merged = result.model_copy(deep=True)
        for anomaly in self.anomalies:
            merged.warnings.append(anomaly.as_issue())
        self.validation = merged
        if self._on_validation is not None:
            self._on_validation(merged)
        return True

    async def validate_now(self) -> ValidationResult | None:
        """Validate the committed document and wait for the answer.

        Returns:
            The applied result, or None if an edit made it stale meanwhile.

        Raises:
            ValidationFailure: If the validator is unavailable.
        """
        if self._document is None:
            raise NoQuestLoaded()
        gateway = self._require_gateway(ValidationFailure)
        generation = self._generation
        try:
            result = await gateway.validate(self._document)
        except GatewayError as e:
            if generation == self._generation:
                self.last_error = e
            raise
        return self.validation if self.apply_validation(result, generation) else None

    async def save(self) -> ValidationResult:
        """Flush pending edits, then persist the committed document.

        Raises:
            SaveConflict: If the backend copy changed underneath us.
            SaveFailure: On any other failure. Local state is kept either way.
        """
        self._require_graph()
        gateway = self._require_gateway(SaveFailure)
        self.flush()
        document = self._document
        if document is None:
            raise NoQuestLoaded()
        generation = self._generation
        try:
            result = await gateway.save_quest(document.quest_id, document, self._metadata)
        except GatewayError as e:
            self.last_error = e
            log.error("quest_save_failed", quest_id=document.quest_id, error=str(e))
            raise
        self.last_error = None
        log.info("quest_saved", quest_id=document.quest_id, valid=result.valid)
        self.apply_validation(result, generation)
        return result

    async def drain(self) -> None:
        """Wait for all in-flight validation requests."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
