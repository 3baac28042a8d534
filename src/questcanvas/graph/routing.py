"""Per-node-type successor routing.

Each node type stores its successors in exactly one place:

- Decision-like nodes (``PlayerDecisionDialog``, ``Decision``) keep them in
  ``options[i].next_nodes``; graph edges carry ``option-{i}`` handles.
- ``ConditionBranch`` keeps two lists, ``next_nodes_if_true`` and
  ``next_nodes_if_false``; edges carry ``branch-true``/``branch-false``.
- Every other type uses the node-level ``next_nodes``; edges carry no handle.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Iterator

    from questcanvas.models.quest import QuestNode

DECISION_NODE_TYPES = frozenset({"PlayerDecisionDialog", "Decision"})
BRANCH_NODE_TYPES = frozenset({"ConditionBranch"})

BRANCH_TRUE = "branch-true"
BRANCH_FALSE = "branch-false"
_OPTION_HANDLE = re.compile(r"^option-(\d+)$")

# Wire keys of node-level successor fields
NEXT_NODES = "NextNodes"
NEXT_NODES_IF_TRUE = "NextNodesIfTrue"
NEXT_NODES_IF_FALSE = "NextNodesIfFalse"
ROUTING_KEYS = (NEXT_NODES, NEXT_NODES_IF_TRUE, NEXT_NODES_IF_FALSE)

RoutingPolicy = Literal["plain", "options", "branch"]


@dataclass(frozen=True)
class Route:
    """A parsed routing handle.

    Attributes:
        kind: "plain", "option" or "branch".
        option_index: Option index for ``option`` routes.
        branch: True/False arm for ``branch`` routes.
    """

    kind: Literal["plain", "option", "branch"]
    option_index: int | None = None
    branch: bool | None = None

    @property
    def handle(self) -> str | None:
        if self.kind == "option":
            return option_handle(self.option_index or 0)
        if self.kind == "branch":
            return BRANCH_TRUE if self.branch else BRANCH_FALSE
        return None


PLAIN = Route("plain")


def option_handle(index: int) -> str:
    return f"option-{index}"


def parse_handle(handle: str | None) -> Route | None:
    """Parse a routing handle; None means the handle is malformed."""
    if handle is None or handle == "":
        return PLAIN
    if handle == BRANCH_TRUE:
        return Route("branch", branch=True)
    if handle == BRANCH_FALSE:
        return Route("branch", branch=False)
    match = _OPTION_HANDLE.match(handle)
    if match:
        return Route("option", option_index=int(match.group(1)))
    return None


def routing_policy(node_type: str | None) -> RoutingPolicy:
    """Where *node_type* stores its successors."""
    if node_type in DECISION_NODE_TYPES:
        return "options"
    if node_type in BRANCH_NODE_TYPES:
        return "branch"
    return "plain"


def route_fits(node_type: str | None, route: Route, option_count: int) -> bool:
    """Whether an edge with *route* may leave a node of *node_type*."""
    policy = routing_policy(node_type)
    if policy == "options":
        return (
            route.kind == "option"
            and route.option_index is not None
            and route.option_index < option_count
        )
    if policy == "branch":
        return route.kind == "branch"
    return route.kind == "plain"


def successor_routes(node: QuestNode) -> Iterator[tuple[Route, int]]:
    """Yield ``(route, target)`` for every successor *node* routes to.

    Only the field its node type routes through is considered. Order follows
    the document: options in index order, true arm before false arm.
    """
    policy = routing_policy(node.node_type)
    if policy == "options":
        for index, option in enumerate(node.options or []):
            for target in option.next_nodes or []:
                yield Route("option", option_index=index), target
    elif policy == "branch":
        for target in node.next_nodes_if_true or []:
            yield Route("branch", branch=True), target
        for target in node.next_nodes_if_false or []:
            yield Route("branch", branch=False), target
    else:
        for target in node.next_nodes or []:
            yield PLAIN, target


def all_successors(node: QuestNode) -> list[int]:
    """Every node id referenced from *node*, whatever field holds it.

    Unlike ``successor_routes`` this includes misplaced fields (e.g. a
    node-level ``next_nodes`` on a Decision) so validators can see them.
    """
    targets: list[int] = []
    targets.extend(node.next_nodes or [])
    targets.extend(node.next_nodes_if_true or [])
    targets.extend(node.next_nodes_if_false or [])
    for option in node.options or []:
        targets.extend(option.next_nodes or [])
    return targets
