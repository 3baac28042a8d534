"""Interactive graph representation of a quest.

This is the editable mirror of a quest document: positioned nodes whose
``data`` holds a denormalized, wire-form copy of the quest node's fields,
and edges whose optional routing handle says which successor slot of the
source node they stand for.

``to_dict``/``from_dict`` use the canvas library's key names
(``sourceHandle`` for the routing handle) so a front end can exchange
state directly.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

# Node ids must stay below this bound (signed 32-bit range of the game runtime).
NODE_ID_LIMIT = 2**31 - 1


def parse_node_id(raw: Any) -> int | None:
    """Parse a graph node id into a document node id.

    Returns None for anything that is not a non-negative base-10 integer
    (including bools and floats with a fractional part).
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw >= 0 else None
    if isinstance(raw, str):
        text = raw.strip()
        if text.isdecimal() and text.isascii():
            return int(text)
    return None


@dataclass
class Position:
    x: float
    y: float


@dataclass
class GraphNode:
    """A positioned node on the canvas.

    Attributes:
        id: Stringified document node id.
        position: Canvas coordinates.
        data: Wire-form node fields (``NodeID``, ``NodeType``, ...), plus any
            transient UI keys the front end injects.
    """

    id: str
    position: Position
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def node_type(self) -> str | None:
        value = self.data.get("NodeType")
        return value if isinstance(value, str) else None


@dataclass
class GraphEdge:
    """A drawn connection.

    Attributes:
        id: Edge identifier, unique within a graph.
        source: Source graph node id.
        target: Target graph node id.
        routing_handle: None for the plain successor list, ``option-{i}``,
            ``branch-true`` or ``branch-false``.
    """

    id: str
    source: str
    target: str
    routing_handle: str | None = None


@dataclass
class GraphState:
    """All nodes and edges currently on the canvas."""

    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    def __repr__(self) -> str:
        return f"GraphState(nodes={len(self.nodes)}, edges={len(self.edges)})"

    def get_node(self, node_id: str) -> GraphNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def has_node(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    def get_edge(self, edge_id: str) -> GraphEdge | None:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def edges_from(self, node_id: str) -> list[GraphEdge]:
        return [e for e in self.edges if e.source == node_id]

    def edges_touching(self, node_id: str) -> list[GraphEdge]:
        return [e for e in self.edges if node_id in (e.source, e.target)]

    def max_node_id(self) -> int:
        """Highest parseable node id, or -1 for an empty graph."""
        ids = [parse_node_id(n.id) for n in self.nodes]
        return max((i for i in ids if i is not None), default=-1)

    def copy(self) -> GraphState:
        """Deep copy, detached from this state."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [
                {
                    "id": n.id,
                    "position": {"x": n.position.x, "y": n.position.y},
                    "data": copy.deepcopy(n.data),
                }
                for n in self.nodes
            ],
            "edges": [
                {
                    "id": e.id,
                    "source": e.source,
                    "target": e.target,
                    "sourceHandle": e.routing_handle,
                }
                for e in self.edges
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GraphState:
        nodes = [
            GraphNode(
                id=str(n["id"]),
                position=Position(x=n["position"]["x"], y=n["position"]["y"]),
                data=copy.deepcopy(n.get("data") or {}),
            )
            for n in data.get("nodes", [])
        ]
        edges = [
            GraphEdge(
                id=str(e.get("id") or f"{e['source']}-{e['target']}"),
                source=str(e["source"]),
                target=str(e["target"]),
                routing_handle=e.get("sourceHandle"),
            )
            for e in data.get("edges", [])
        ]
        return cls(nodes=nodes, edges=edges)
