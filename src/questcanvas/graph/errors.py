"""Graph edit and conversion error types.

Two families live here:

- Conversion anomalies (``MalformedReference``, ``InvalidNodeData``) are
  never raised by the converter. They are collected while converting a
  graph back into a document and can be shown as recoverable warnings.
- Edit rejections (``IdSpaceExhausted``, ``EdgeEndpointError``, ...) are
  raised by the synchronization controller when an interactive edit cannot
  be applied. No mutation happens when one is raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from questcanvas.models.validation import ValidationIssue

NodeFallback = Literal["previous", "minimal", "dropped"]


class ConversionAnomaly(Exception):
    """Base class for recoverable graph-to-document anomalies."""

    def as_issue(self) -> ValidationIssue:
        """Render as a validation warning."""
        raise NotImplementedError


@dataclass
class MalformedReference(ConversionAnomaly):
    """A graph reference that could not contribute to the document.

    Attributes:
        reference: The offending raw value (node id, target or handle).
        role: Which part of the graph carried it.
        edge_id: Edge the reference belongs to, if any.
        source_node: Parsed source node id when known.
        reason: Short explanation.
    """

    reference: str
    role: Literal["node", "source", "target", "handle"]
    edge_id: str | None = None
    source_node: int | None = None
    reason: str = ""

    def __post_init__(self) -> None:
        msg = f"Dropped {self.role} reference '{self.reference}'"
        if self.edge_id:
            msg += f" on edge '{self.edge_id}'"
        if self.reason:
            msg += f": {self.reason}"
        super().__init__(msg)

    def as_issue(self) -> ValidationIssue:
        return ValidationIssue(node_id=self.source_node, message=str(self))


@dataclass
class InvalidNodeData(ConversionAnomaly):
    """Node data that no longer forms a valid quest node.

    Attributes:
        node_id: The affected node.
        problems: Schema problems found in the data.
        fallback: What was emitted instead.
    """

    node_id: int
    problems: list[str] = field(default_factory=list)
    fallback: NodeFallback = "previous"

    def __post_init__(self) -> None:
        super().__init__(
            f"Node {self.node_id} has invalid data ({len(self.problems)} problem(s)); "
            f"used {self.fallback} version"
        )

    def as_issue(self) -> ValidationIssue:
        detail = "; ".join(self.problems[:3])
        return ValidationIssue(node_id=self.node_id, message=f"{self} {detail}".strip())


class GraphEditError(Exception):
    """Base class for rejected interactive edits."""


class NoQuestLoaded(GraphEditError):
    """Raised when editing while no quest is loaded."""

    def __init__(self) -> None:
        super().__init__("No quest is loaded")


@dataclass
class IdSpaceExhausted(GraphEditError):
    """Raised when a new node id would reach the id limit.

    Attributes:
        current_max: Highest node id in use.
        limit: Exclusive upper bound for node ids.
    """

    current_max: int
    limit: int

    def __post_init__(self) -> None:
        super().__init__(
            f"Node id space exhausted: next id {self.current_max + 1} would reach {self.limit}"
        )


@dataclass
class GraphNodeNotFound(GraphEditError):
    node_id: str

    def __post_init__(self) -> None:
        super().__init__(f"Node '{self.node_id}' not found")


@dataclass
class EdgeNotFound(GraphEditError):
    edge_id: str

    def __post_init__(self) -> None:
        super().__init__(f"Edge '{self.edge_id}' not found")


@dataclass
class EdgeEndpointError(GraphEditError):
    """Raised when an edge would reference non-existent endpoints.

    Attributes:
        source: Source node id.
        target: Target node id.
        missing: Which endpoint is missing ("source", "target", or "both").
    """

    source: str
    target: str
    missing: Literal["source", "target", "both"]

    def __post_init__(self) -> None:
        if self.missing == "both":
            msg = f"Edge endpoints not found: '{self.source}' and '{self.target}'"
        elif self.missing == "source":
            msg = f"Edge source not found: '{self.source}'"
        else:
            msg = f"Edge target not found: '{self.target}'"
        super().__init__(msg)


@dataclass
class ConnectionRejected(GraphEditError):
    """Raised when a connection is structurally not allowed."""

    source: str
    target: str
    reason: str

    def __post_init__(self) -> None:
        super().__init__(f"Cannot connect '{self.source}' -> '{self.target}': {self.reason}")


@dataclass
class RoutingHandleError(ConnectionRejected):
    """Raised when a routing handle does not fit the source node's type."""

    handle: str | None = None
