"""Graph package - the canvas side of a quest.

Holds the interactive graph model, the per-node-type routing rules and the
pure conversion functions between graphs and quest documents.
"""

from questcanvas.graph.converter import (
    canonical_wire,
    fallback_position,
    graph_metadata,
    strip_transient,
    to_document,
    to_graph,
)
from questcanvas.graph.errors import (
    ConnectionRejected,
    ConversionAnomaly,
    EdgeEndpointError,
    EdgeNotFound,
    GraphEditError,
    GraphNodeNotFound,
    IdSpaceExhausted,
    InvalidNodeData,
    MalformedReference,
    NoQuestLoaded,
    RoutingHandleError,
)
from questcanvas.graph.model import (
    NODE_ID_LIMIT,
    GraphEdge,
    GraphNode,
    GraphState,
    Position,
    parse_node_id,
)
from questcanvas.graph.routing import (
    BRANCH_FALSE,
    BRANCH_TRUE,
    Route,
    option_handle,
    parse_handle,
    routing_policy,
)

__all__ = [
    "BRANCH_FALSE",
    "BRANCH_TRUE",
    "NODE_ID_LIMIT",
    "ConnectionRejected",
    "ConversionAnomaly",
    "EdgeEndpointError",
    "EdgeNotFound",
    "GraphEdge",
    "GraphEditError",
    "GraphNode",
    "GraphNodeNotFound",
    "GraphState",
    "IdSpaceExhausted",
    "InvalidNodeData",
    "MalformedReference",
    "NoQuestLoaded",
    "Position",
    "Route",
    "RoutingHandleError",
    "canonical_wire",
    "fallback_position",
    "graph_metadata",
    "option_handle",
    "parse_handle",
    "parse_node_id",
    "routing_policy",
    "strip_transient",
    "to_document",
    "to_graph",
]
