"""Bounded undo history of graph snapshots."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from questcanvas.graph.model import GraphState

DEFAULT_HISTORY_LIMIT = 50


class EditHistory:
    """Stack of deep-copied graph states; the oldest entry falls off at the limit."""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit < 1:
            raise ValueError(f"history limit must be >= 1, got {limit}")
        self._snapshots: deque[GraphState] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._snapshots)

    @property
    def limit(self) -> int:
        return self._snapshots.maxlen or 0

    @property
    def can_undo(self) -> bool:
        return bool(self._snapshots)

    def push(self, state: GraphState) -> None:
        """Record *state* as it is now; later changes to it are not seen."""
        self._snapshots.append(state.copy())

    def pop(self) -> GraphState | None:
        """Most recent snapshot, or None when there is nothing to undo."""
        return self._snapshots.pop() if self._snapshots else None

    def clear(self) -> None:
        self._snapshots.clear()
