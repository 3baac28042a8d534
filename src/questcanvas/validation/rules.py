"""Structural and reference checks for quest documents.

These are pure, deterministic functions over a ``QuestDocument``. Each
``check_*`` function appends its findings to a shared ``ValidationResult``;
``validate_quest`` runs them all in a fixed order. ``validate_quests`` checks
a whole set of quests: each one alone, then the rules that span quests.

Unique node ids are enforced by the document model itself and are not
re-checked here.
"""

from __future__ import annotations

from collections import Counter, deque
from typing import TYPE_CHECKING

from questcanvas.graph.routing import DECISION_NODE_TYPES, all_successors
from questcanvas.models.quest import REQUIRED_LOCALES
from questcanvas.models.validation import ValidationResult
from questcanvas.models.variants import (
    TERMINAL_ACTIONS,
    FactionStandingAction,
    FactionStandingCondition,
    Inventory,
    ItemLost,
    ItemsGained,
    ItemsLost,
    ItemUsedOnNPC,
    ItemUsedOnObject,
    JournalEntry,
    QuestCompleted,
    QuestStageDescription,
    QuestStageTitle,
    ResourceAvailability,
    action_name,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

    from questcanvas.models.quest import QuestDocument, QuestNode
    from questcanvas.models.reference import ReferenceCatalog
    from questcanvas.models.variants import ConditionVariant, I18nText

PLAYER_SPEAKER = "Player"

__all__ = [
    "check_condition_branches",
    "check_decisions",
    "check_entry_points",
    "check_journal_at_flow_end",
    "check_journal_at_flow_start",
    "check_next_node_lists",
    "check_no_cycles",
    "check_quest_references",
    "check_references",
    "check_terminal_actions",
    "check_translations",
    "check_unique_display_names",
    "check_unique_quest_ids",
    "check_unique_stage_descriptions",
    "validate_quest",
    "validate_quests",
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _successor_lists(node: QuestNode) -> Iterator[tuple[str, list[int]]]:
    """Every successor list of *node* with a readable name."""
    yield "NextNodes", node.next_nodes or []
    yield "NextNodesIfTrue", node.next_nodes_if_true or []
    yield "NextNodesIfFalse", node.next_nodes_if_false or []
    for index, option in enumerate(node.options or []):
        yield f"option {index + 1} NextNodes", option.next_nodes or []


def has_action(node: QuestNode, name: str) -> bool:
    return any(action_name(action) == name for action in node.actions or [])


def terminal_action_count(node: QuestNode) -> int:
    return sum(1 for action in node.actions or [] if action_name(action) in TERMINAL_ACTIONS)


def is_terminal(node: QuestNode) -> bool:
    return node.node_type == "Actions" and terminal_action_count(node) > 0


def _node_conditions(node: QuestNode) -> Iterator[ConditionVariant]:
    yield from node.conditions or []
    for option in node.options or []:
        yield from option.conditions or []


# ---------------------------------------------------------------------------
# Structural checks
# ---------------------------------------------------------------------------


def check_next_node_lists(document: QuestDocument, result: ValidationResult) -> None:
    """Successor references must exist, not point back at their node, and not repeat.

    Also requires every non-EntryPoint node to have an incoming connection
    and every EntryPoint to have none.
    """
    node_ids = set(document.node_ids)
    incoming: set[int] = set()

    for node in document.nodes:
        for list_name, targets in _successor_lists(node):
            seen: set[int] = set()
            for target in targets:
                incoming.add(target)
                if target not in node_ids:
                    result.add_error(
                        f"{list_name} references non-existent NodeID {target}",
                        node_id=node.node_id,
                    )
                if target == node.node_id:
                    result.add_error(f"node references itself in {list_name}", node_id=node.node_id)
                if target in seen:
                    result.add_error(f"duplicate edge to NodeID {target}", node_id=node.node_id)
                seen.add(target)

    for node in document.nodes:
        if node.node_type == "EntryPoint":
            if node.node_id in incoming:
                result.add_error("EntryPoint node must not have incoming connections", node.node_id)
        elif node.node_id not in incoming:
            result.add_error("non-EntryPoint node has no incoming connections", node.node_id)


def check_entry_points(document: QuestDocument, result: ValidationResult) -> None:
    if not any(node.node_type == "EntryPoint" for node in document.nodes):
        result.add_error("quest must have at least one EntryPoint node")


def check_terminal_actions(document: QuestDocument, result: ValidationResult) -> None:
    """Terminal Actions nodes end the flow; every other Actions node continues it."""
    for node in document.nodes:
        if node.node_type != "Actions":
            continue
        terminal = terminal_action_count(node)
        has_successors = bool(node.next_nodes)
        if terminal and has_successors:
            result.add_error("terminal action node should not have NextNodes", node.node_id)
        if not terminal and not has_successors:
            result.add_error(
                "non-terminal Actions node must have NextNodes "
                "(quest flow ends with unspecified behaviour)",
                node.node_id,
            )
        if terminal > 1:
            result.add_error("Actions node has more than one terminal action", node.node_id)


def check_decisions(document: QuestDocument, result: ValidationResult) -> None:
    for node in document.nodes:
        if node.node_type not in DECISION_NODE_TYPES:
            continue
        if node.next_nodes:
            result.add_error(
                f"{node.node_type} must not have top-level NextNodes; "
                "use NextNodes in each option instead",
                node.node_id,
            )
        for index, option in enumerate(node.options or []):
            if not option.next_nodes:
                result.add_error(f"option {index + 1} must have NextNodes", node.node_id)


def check_condition_branches(document: QuestDocument, result: ValidationResult) -> None:
    for node in document.nodes:
        if node.node_type != "ConditionBranch":
            continue
        if node.next_nodes:
            result.add_error(
                "ConditionBranch must not have top-level NextNodes; "
                "use NextNodesIfTrue and NextNodesIfFalse instead",
                node.node_id,
            )
        if not node.conditions:
            result.add_error("ConditionBranch must have at least one condition", node.node_id)
        if not node.next_nodes_if_true and not node.next_nodes_if_false:
            result.add_error(
                "ConditionBranch must have at least one of NextNodesIfTrue or NextNodesIfFalse",
                node.node_id,
            )


def check_no_cycles(document: QuestDocument, result: ValidationResult) -> None:
    """Quest flow must be acyclic.

    Uses Kahn's algorithm over every successor list, so misplaced lists
    count as edges too.
    """
    node_ids = set(document.node_ids)
    in_degree: dict[int, int] = dict.fromkeys(node_ids, 0)
    successors: dict[int, list[int]] = {node_id: [] for node_id in node_ids}
    for node in document.nodes:
        for target in all_successors(node):
            if target in node_ids:
                in_degree[target] += 1
                successors[node.node_id].append(target)

    queue = deque(sorted(node_id for node_id, degree in in_degree.items() if degree == 0))
    processed = 0
    while queue:
        current = queue.popleft()
        processed += 1
        for target in successors[current]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                queue.append(target)

    if processed < len(node_ids):
        cycle_nodes = sorted(node_id for node_id, degree in in_degree.items() if degree > 0)
        shown = ", ".join(str(node_id) for node_id in cycle_nodes[:5])
        result.add_error(f"quest contains a cycle (loops are not allowed) involving nodes {shown}")


def check_journal_at_flow_start(document: QuestDocument, result: ValidationResult) -> None:
    """The first Actions node after each EntryPoint opens the journal.

    It must carry both a JournalEntry and a QuestStageDescription action.
    """
    by_id = {node.node_id: node for node in document.nodes}
    for entry in document.nodes:
        if entry.node_type != "EntryPoint":
            continue

        first_actions: QuestNode | None = None
        visited: set[int] = set()
        queue = deque(all_successors(entry))
        while queue:
            current = by_id.get(queue.popleft())
            if current is None or current.node_id in visited:
                continue
            visited.add(current.node_id)
            if current.node_type == "Actions":
                first_actions = current
                break
            queue.extend(all_successors(current))

        if first_actions is None:
            result.add_error("EntryPoint flow has no Actions node", entry.node_id)
            continue
        if not has_action(first_actions, "JournalEntry"):
            result.add_error(
                "first Actions node in flow must have JournalEntry action", first_actions.node_id
            )
        if not has_action(first_actions, "QuestStageDescription"):
            result.add_error(
                "first Actions node in flow must have QuestStageDescription action",
                first_actions.node_id,
            )


def check_journal_at_flow_end(document: QuestDocument, result: ValidationResult) -> None:
    """Each terminal node's chain of preceding Actions nodes includes a JournalEntry."""
    by_id = {node.node_id: node for node in document.nodes}
    predecessors: dict[int, list[int]] = {}
    for node in document.nodes:
        for target in all_successors(node):
            predecessors.setdefault(target, []).append(node.node_id)

    for node in document.nodes:
        if not is_terminal(node):
            continue
        chain = [node]
        visited = {node.node_id}
        pending = deque([node.node_id])
        while pending:
            for prev_id in predecessors.get(pending.popleft(), []):
                prev = by_id.get(prev_id)
                if prev_id in visited or prev is None or prev.node_type != "Actions":
                    continue
                visited.add(prev_id)
                chain.append(prev)
                pending.append(prev_id)

        if not any(has_action(member, "JournalEntry") for member in chain):
            result.add_error(
                "terminal Actions chain must contain a JournalEntry action", node.node_id
            )


# ---------------------------------------------------------------------------
# Translation checks
# ---------------------------------------------------------------------------


def _node_texts(node: QuestNode) -> Iterator[tuple[str, I18nText | None]]:
    yield "Text", node.text
    yield "QuestStageTitle", node.quest_stage_title
    yield "QuestStageDescription", node.quest_stage_description
    for index, message in enumerate(node.messages or []):
        yield f"message {index + 1} Text", message.text
    for index, option in enumerate(node.options or []):
        yield f"option {index + 1} Text", option.text
    for action in node.actions or []:
        if isinstance(action, (JournalEntry, QuestStageTitle, QuestStageDescription)):
            yield f"{action.tag} action", action.value


def check_translations(document: QuestDocument, result: ValidationResult) -> None:
    """Every text present must carry all required locales (warnings only)."""
    texts: list[tuple[int | None, str, I18nText | None]] = [
        (None, "DisplayName", document.display_name)
    ]
    for node in document.nodes:
        texts.extend((node.node_id, name, text) for name, text in _node_texts(node))

    for node_id, name, text in texts:
        if not text:
            continue
        for locale in REQUIRED_LOCALES:
            if not text.get(locale):
                result.add_warning(
                    f"{name} is missing the {locale} translation", node_id=node_id, field=name
                )


# ---------------------------------------------------------------------------
# Reference checks
# ---------------------------------------------------------------------------


def _node_references(node: QuestNode) -> Iterator[tuple[str, str, str]]:
    """Yield ``(kind, id, description)`` for each reference-data id in *node*."""
    if node.conversation_partner:
        yield "npcs", node.conversation_partner, "conversation partner"
    if node.speaker and node.speaker != PLAYER_SPEAKER:
        yield "npcs", node.speaker, "speaker"
    for message in node.messages or []:
        if message.speaker != PLAYER_SPEAKER:
            yield "npcs", message.speaker, "speaker in message"

    for condition in _node_conditions(node):
        if isinstance(condition, ResourceAvailability):
            yield "resources", condition.resource, "resource in ResourceAvailability"
        elif isinstance(condition, ItemUsedOnObject):
            yield "items", condition.item, "item in ItemUsedOnObject"
            yield "objects", condition.object_id, "object in ItemUsedOnObject"
        elif isinstance(condition, ItemUsedOnNPC):
            yield "items", condition.item, "item in ItemUsedOnNPC"
            yield "npcs", condition.npc, "NPC in ItemUsedOnNPC"
        elif isinstance(condition, FactionStandingCondition):
            yield "factions", condition.faction, "faction in FactionStanding condition"
        elif isinstance(condition, Inventory):
            for entry in condition.entries:
                yield "items", entry.item_type, "item type in Inventory"
        elif isinstance(condition, ItemLost):
            yield "items", condition.value, "item in ItemLost"

    for action in node.actions or []:
        if isinstance(action, FactionStandingAction):
            yield "factions", action.faction, "faction in FactionStanding action"
        elif isinstance(action, (ItemsGained, ItemsLost)):
            for item in action.entries:
                yield "items", item.item_type, f"item type in {action.tag}"


def check_references(
    document: QuestDocument,
    result: ValidationResult,
    catalog: ReferenceCatalog | None = None,
) -> None:
    """Ids of NPCs, items, objects, resources and factions must be known.

    With no reference data at all, unknown ids are only warnings.
    """
    lenient = catalog is None or catalog.is_empty
    report: Callable[..., None] = result.add_warning if lenient else result.add_error
    for node in document.nodes:
        for kind, ref_id, description in _node_references(node):
            if catalog is None or not catalog.has(kind, ref_id):
                report(f"unknown {description}: {ref_id}", node_id=node.node_id)


# ---------------------------------------------------------------------------
# Cross-quest checks
# ---------------------------------------------------------------------------


def check_unique_quest_ids(documents: Sequence[QuestDocument], result: ValidationResult) -> None:
    counts = Counter(document.quest_id for document in documents)
    for quest_id, count in sorted(counts.items()):
        if count > 1:
            result.add_error(f"duplicate QuestID {quest_id!r} found {count} times")


def _report_shared_texts(
    result: ValidationResult,
    label: str,
    owners: Sequence[tuple[str, I18nText | None]],
    *,
    distinct: bool,
) -> None:
    """Report each required-locale text owned by more than one quest.

    With *distinct*, repeats inside a single quest count once.
    """
    for locale in REQUIRED_LOCALES:
        users: dict[str, list[str]] = {}
        for quest_id, text in owners:
            value = (text or {}).get(locale)
            if not value:
                continue
            quests = users.setdefault(value, [])
            if not distinct or quest_id not in quests:
                quests.append(quest_id)
        for value, quests in sorted(users.items()):
            if len(quests) > 1:
                result.add_error(
                    f"duplicate {label} {value!r} ({locale}) in quests: {', '.join(quests)}"
                )


def check_unique_display_names(
    documents: Sequence[QuestDocument], result: ValidationResult
) -> None:
    owners = [(document.quest_id, document.display_name) for document in documents]
    _report_shared_texts(result, "DisplayName", owners, distinct=False)


def check_unique_stage_descriptions(
    documents: Sequence[QuestDocument], result: ValidationResult
) -> None:
    """QuestStageDescription actions are not shared between quests."""
    owners = [
        (document.quest_id, action.value)
        for document in documents
        for node in document.nodes
        for action in node.actions or []
        if isinstance(action, QuestStageDescription)
    ]
    _report_shared_texts(result, "QuestStageDescription", owners, distinct=True)


def check_quest_references(documents: Sequence[QuestDocument], result: ValidationResult) -> None:
    """QuestCompleted conditions must name a quest of the set."""
    known = {document.quest_id for document in documents}
    for document in documents:
        for node in document.nodes:
            for condition in _node_conditions(node):
                if isinstance(condition, QuestCompleted) and condition.value not in known:
                    result.add_error(
                        f"QuestCompleted references non-existent quest {condition.value!r}",
                        node_id=node.node_id,
                        quest_id=document.quest_id,
                    )


# ---------------------------------------------------------------------------
# Runners
# ---------------------------------------------------------------------------

_STRUCTURAL_CHECKS: tuple[Callable[[QuestDocument, ValidationResult], None], ...] = (
    check_next_node_lists,
    check_entry_points,
    check_terminal_actions,
    check_decisions,
    check_condition_branches,
    check_no_cycles,
    check_journal_at_flow_start,
    check_journal_at_flow_end,
    check_translations,
)

_CROSS_QUEST_CHECKS: tuple[
    Callable[[Sequence[QuestDocument], ValidationResult], None], ...
] = (
    check_unique_quest_ids,
    check_unique_display_names,
    check_unique_stage_descriptions,
    check_quest_references,
)


def validate_quest(
    document: QuestDocument, catalog: ReferenceCatalog | None = None
) -> ValidationResult:
    """Run every check and collect the findings.

    Args:
        document: The quest to check.
        catalog: Reference data; None or empty downgrades unknown ids to
            warnings.

    Returns:
        A ValidationResult; ``valid`` is False if any check found an error.
    """
    result = ValidationResult()
    for check in _STRUCTURAL_CHECKS:
        check(document, result)
    check_references(document, result, catalog)
    return result


def validate_quests(
    documents: Sequence[QuestDocument], catalog: ReferenceCatalog | None = None
) -> ValidationResult:
    """Validate a set of quests, each alone and then against each other.

    Per-quest findings are tagged with their quest id; cross-quest findings
    about duplicates carry no quest id.
    """
    result = ValidationResult()
    for document in documents:
        result.merge(validate_quest(document, catalog), quest_id=document.quest_id)
    for check in _CROSS_QUEST_CHECKS:
        check(documents, result)
    return result
