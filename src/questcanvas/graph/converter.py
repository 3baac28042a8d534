"""Conversion between quest documents and canvas graphs.

``to_graph`` projects a document plus position metadata onto the canvas;
``to_document`` rebuilds the canonical document from the canvas. Both are
pure: they never mutate their inputs and never raise on odd graph input.

Anything in the graph that cannot contribute to a document (an unparseable
node id, an edge to a non-numeric target, a handle that does not fit the
source node's type) is dropped. When the caller passes an ``anomalies``
list, each dropped item is appended to it so it can be shown as a warning.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from questcanvas.graph.errors import (
    ConversionAnomaly,
    InvalidNodeData,
    MalformedReference,
    NodeFallback,
)
from questcanvas.graph.model import GraphEdge, GraphNode, GraphState, Position, parse_node_id
from questcanvas.graph.routing import (
    NEXT_NODES,
    NEXT_NODES_IF_FALSE,
    NEXT_NODES_IF_TRUE,
    ROUTING_KEYS,
    Route,
    parse_handle,
    route_fits,
    routing_policy,
    successor_routes,
)
from questcanvas.models.errors import SchemaViolation
from questcanvas.models.quest import NodePosition, PositionMetadata, QuestDocument, QuestNode
from questcanvas.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

log = get_logger(__name__)

# Keys the front end injects into node data for rendering only
TRANSIENT_FIELDS = frozenset({"highlighted", "selected", "dragging", "validationIssues"})

GRID_COLUMNS = 5
GRID_ORIGIN = 100
GRID_DX = 220
GRID_DY = 150


def fallback_position(index: int) -> Position:
    """Grid position for the node at *index* of the document's node list."""
    return Position(
        x=GRID_ORIGIN + (index % GRID_COLUMNS) * GRID_DX,
        y=GRID_ORIGIN + (index // GRID_COLUMNS) * GRID_DY,
    )


def edge_id(source: int | str, target: int | str, route: Route) -> str:
    """Canonical edge id for a connection."""
    if route.kind == "option":
        return f"{source}-opt{route.option_index}-{target}"
    if route.kind == "branch":
        return f"{source}-{'true' if route.branch else 'false'}-{target}"
    return f"{source}-{target}"


def strip_transient(data: Mapping[str, Any]) -> dict[str, Any]:
    """Drop UI-only keys from node data.

    Removes the known transient keys and anything starting with ``_``.
    """
    return {
        key: value
        for key, value in data.items()
        if key not in TRANSIENT_FIELDS and not str(key).startswith("_")
    }


def prune_empty(mapping: Mapping[str, Any]) -> dict[str, Any]:
    """Drop ``None``, empty strings and empty collections from a mapping.

    Only the top level is pruned; nested payloads such as i18n texts are
    kept as they are.
    """
    return {
        key: value
        for key, value in mapping.items()
        if value is not None and not (isinstance(value, (str, list, dict)) and len(value) == 0)
    }


def canonical_wire(document: QuestDocument) -> dict[str, Any]:
    """Wire form with empty optional node and option fields omitted.

    Two documents that differ only in emitted-versus-omitted empty fields
    have equal canonical forms.
    """
    wire = document.to_wire()
    nodes = []
    for node in wire.get("QuestNodes", []):
        pruned = prune_empty(node)
        if isinstance(pruned.get("Options"), list):
            pruned["Options"] = [
                prune_empty(opt) if isinstance(opt, dict) else opt for opt in pruned["Options"]
            ]
        nodes.append(pruned)
    wire["QuestNodes"] = nodes
    return wire


# ---------------------------------------------------------------------------
# Document -> graph
# ---------------------------------------------------------------------------


def to_graph(document: QuestDocument, metadata: PositionMetadata | None = None) -> GraphState:
    """Project a quest document onto the canvas.

    Args:
        document: The quest to display.
        metadata: Stored node positions; nodes without one are laid out on
            a five-column grid by their index in the document.

    Returns:
        A new GraphState. Inputs are not modified.
    """
    positions = metadata.node_positions if metadata is not None else {}
    nodes: list[GraphNode] = []
    edges: list[GraphEdge] = []
    seen_edge_ids: dict[str, int] = {}

    for index, node in enumerate(document.nodes):
        stored = positions.get(node.node_id)
        position = (
            Position(x=stored.x, y=stored.y) if stored is not None else fallback_position(index)
        )
        nodes.append(GraphNode(id=str(node.node_id), position=position, data=node.to_wire()))

        for route, target in successor_routes(node):
            base_id = edge_id(node.node_id, target, route)
            count = seen_edge_ids.get(base_id, 0)
            seen_edge_ids[base_id] = count + 1
            edges.append(
                GraphEdge(
                    id=base_id if count == 0 else f"{base_id}#{count}",
                    source=str(node.node_id),
                    target=str(target),
                    routing_handle=route.handle,
                )
            )

    return GraphState(nodes=nodes, edges=edges)


# ---------------------------------------------------------------------------
# Graph -> document
# ---------------------------------------------------------------------------


@dataclass
class _Successors:
    plain: list[int] = field(default_factory=list)
    options: dict[int, list[int]] = field(default_factory=dict)
    if_true: list[int] = field(default_factory=list)
    if_false: list[int] = field(default_factory=list)

    def add(self, route: Route, target: int) -> None:
        if route.kind == "option" and route.option_index is not None:
            self.options.setdefault(route.option_index, []).append(target)
        elif route.kind == "branch":
            (self.if_true if route.branch else self.if_false).append(target)
        else:
            self.plain.append(target)


def option_count(data: Mapping[str, Any]) -> int:
    """Number of options carried in wire-form node data."""
    options = data.get("Options")
    return len(options) if isinstance(options, list) else 0


def _collect_successors(
    graph: GraphState,
    node_ids: dict[str, int],
    node_types: dict[str, str | None],
    option_counts: dict[str, int],
    sink: list[ConversionAnomaly],
) -> dict[str, _Successors]:
    """Group edges by source node and routing slot, in edge order."""
    successors: dict[str, _Successors] = {gid: _Successors() for gid in node_ids}

    for edge in graph.edges:
        source_id = node_ids.get(edge.source)
        if source_id is None:
            sink.append(
                MalformedReference(
                    reference=str(edge.source),
                    role="source",
                    edge_id=edge.id,
                    reason="source is not a node with a numeric id",
                )
            )
            continue
        target = parse_node_id(edge.target)
        if target is None:
            sink.append(
                MalformedReference(
                    reference=str(edge.target),
                    role="target",
                    edge_id=edge.id,
                    source_node=source_id,
                    reason="target is not a numeric node id",
                )
            )
            continue
        route = parse_handle(edge.routing_handle)
        if route is None:
            sink.append(
                MalformedReference(
                    reference=str(edge.routing_handle),
                    role="handle",
                    edge_id=edge.id,
                    source_node=source_id,
                    reason="unknown routing handle",
                )
            )
            continue
        node_type = node_types.get(edge.source)
        if not route_fits(node_type, route, option_counts.get(edge.source, 0)):
            sink.append(
                MalformedReference(
                    reference=str(edge.routing_handle),
                    role="handle",
                    edge_id=edge.id,
                    source_node=source_id,
                    reason=f"handle does not fit {node_type} node",
                )
            )
            continue
        successors[edge.source].add(route, target)

    return successors


def _rebuild_option(option: Any, targets: list[int] | None) -> Any:
    if not isinstance(option, dict):
        return option
    rebuilt = strip_transient(option)
    if targets:
        rebuilt[NEXT_NODES] = list(targets)
    return prune_empty(rebuilt)


def _routed_payload(
    base: Mapping[str, Any], node_id: int, node_type: str | None, succ: _Successors
) -> dict[str, Any]:
    """Replace the routing fields of *base* with the successors drawn on the canvas."""
    payload = strip_transient(base)
    for key in ROUTING_KEYS:
        payload.pop(key, None)
    payload["NodeID"] = node_id
    if node_type is not None:
        payload["NodeType"] = node_type

    policy = routing_policy(node_type)
    options = payload.get("Options")
    if policy == "options":
        if isinstance(options, list) and options:
            payload["Options"] = [
                _rebuild_option(opt, succ.options.get(index)) for index, opt in enumerate(options)
            ]
    elif policy == "branch":
        if succ.if_true:
            payload[NEXT_NODES_IF_TRUE] = list(succ.if_true)
        if succ.if_false:
            payload[NEXT_NODES_IF_FALSE] = list(succ.if_false)
    elif succ.plain:
        payload[NEXT_NODES] = list(succ.plain)

    return prune_empty(payload)


def _build_node(
    gnode: GraphNode,
    node_id: int,
    node_type: str | None,
    succ: _Successors,
    previous: QuestNode | None,
    sink: list[ConversionAnomaly],
) -> QuestNode | None:
    """Build a quest node from graph data, falling back when the data is invalid."""
    problems: list[str] = []
    # None labels the graph's own data.
    candidates: list[tuple[NodeFallback | None, Mapping[str, Any]]] = [(None, gnode.data)]
    if previous is not None:
        candidates.append(("previous", previous.to_wire()))
    candidates.append(("minimal", {}))

    for label, base in candidates:
        try:
            node = QuestNode.model_validate(_routed_payload(base, node_id, node_type, succ))
        except ValidationError as e:
            problems.extend(SchemaViolation.from_validation_error("node", e).problems)
            continue
        if label is not None:
            sink.append(InvalidNodeData(node_id=node_id, problems=problems, fallback=label))
        return node

    sink.append(InvalidNodeData(node_id=node_id, problems=problems, fallback="dropped"))
    return None


def to_document(
    graph: GraphState,
    previous: QuestDocument,
    *,
    anomalies: list[ConversionAnomaly] | None = None,
) -> QuestDocument:
    """Rebuild the canonical document from the canvas.

    Quest-level fields come from *previous*; node fields come from each
    graph node's data (transient UI keys stripped). Successors are rebuilt
    from edges grouped by ``(source, routing handle)`` in edge-list order:

    - no handle: ``NextNodes``
    - ``option-{i}``: ``Options[i].NextNodes``; an option without edges keeps
      its stored successors
    - ``branch-true``/``branch-false``: ``NextNodesIfTrue``/``NextNodesIfFalse``

    Empty successor lists and other empty optional fields are omitted.

    Args:
        graph: Current canvas state.
        previous: Last committed document.
        anomalies: Optional list that receives every dropped reference.

    Returns:
        A new QuestDocument. Never raises on malformed graph input.
    """
    sink: list[ConversionAnomaly] = anomalies if anomalies is not None else []
    start = len(sink)

    node_ids: dict[str, int] = {}
    seen_ids: set[int] = set()
    for gnode in graph.nodes:
        parsed = parse_node_id(gnode.id)
        if parsed is None or parsed in seen_ids:
            sink.append(
                MalformedReference(
                    reference=gnode.id,
                    role="node",
                    reason="duplicate node id" if parsed is not None else "not a numeric node id",
                )
            )
            continue
        seen_ids.add(parsed)
        node_ids[gnode.id] = parsed

    previous_nodes = {node.node_id: node for node in previous.nodes}
    node_types: dict[str, str | None] = {}
    option_counts: dict[str, int] = {}
    for gnode in graph.nodes:
        if gnode.id not in node_ids:
            continue
        prev = previous_nodes.get(node_ids[gnode.id])
        node_types[gnode.id] = gnode.node_type or (prev.node_type if prev else None)
        option_counts[gnode.id] = option_count(gnode.data)

    successors = _collect_successors(graph, node_ids, node_types, option_counts, sink)

    nodes: list[QuestNode] = []
    for gnode in graph.nodes:
        if gnode.id not in node_ids:
            continue
        node_id = node_ids[gnode.id]
        node = _build_node(
            gnode,
            node_id,
            node_types[gnode.id],
            successors[gnode.id],
            previous_nodes.get(node_id),
            sink,
        )
        if node is not None:
            nodes.append(node)

    if len(sink) > start:
        log.debug(
            "graph_conversion_anomalies",
            quest_id=previous.quest_id,
            count=len(sink) - start,
        )

    return previous.model_copy(update={"nodes": nodes})


def graph_metadata(quest_id: str, graph: GraphState) -> PositionMetadata:
    """Position metadata for every node currently on the canvas."""
    positions: dict[int, NodePosition] = {}
    for gnode in graph.nodes:
        node_id = parse_node_id(gnode.id)
        if node_id is None:
            continue
        positions[node_id] = NodePosition(x=gnode.position.x, y=gnode.position.y)
    return PositionMetadata(quest_id=quest_id, node_positions=positions)


def clone_data(data: Mapping[str, Any]) -> dict[str, Any]:
    """Deep copy node data so callers cannot alias graph state."""
    return copy.deepcopy(dict(data))
