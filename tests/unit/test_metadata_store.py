"""Tests for the SQLite position metadata store."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from questcanvas.gateway import LoadFailure, SqliteMetadataStore
from questcanvas.models import NodePosition, PositionMetadata

if TYPE_CHECKING:
    from pathlib import Path


def _metadata(quest_id: str = "PAT_Intro", **positions: tuple[float, float]) -> PositionMetadata:
    return PositionMetadata(
        quest_id=quest_id,
        node_positions={
            int(key.removeprefix("n")): NodePosition(x=x, y=y) for key, (x, y) in positions.items()
        },
    )


def test_unknown_quest_has_empty_positions() -> None:
    store = SqliteMetadataStore()

    assert store.get("PAT_Intro") == PositionMetadata(quest_id="PAT_Intro")


def test_save_and_get() -> None:
    store = SqliteMetadataStore()
    metadata = _metadata(n0=(100, 100), n7=(-3.5, 12))

    store.save(metadata)

    assert store.get("PAT_Intro") == metadata


def test_save_replaces_row() -> None:
    store = SqliteMetadataStore()
    store.save(_metadata(n0=(1, 1), n1=(2, 2)))

    store.save(_metadata(n0=(5, 5)))

    assert store.get("PAT_Intro") == _metadata(n0=(5, 5))
    assert store.quest_ids() == ["PAT_Intro"]


def test_delete() -> None:
    store = SqliteMetadataStore()
    store.save(_metadata(n0=(1, 1)))
    store.save(_metadata("PAT_Other", n0=(1, 1)))

    store.delete("PAT_Intro")

    assert store.quest_ids() == ["PAT_Other"]


def test_persists_across_connections(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "editor.db"
    store = SqliteMetadataStore(db_path)
    store.save(_metadata(n3=(9, 9)))
    store.close()

    reopened = SqliteMetadataStore(db_path)

    assert reopened.db_path == str(db_path)
    assert reopened.get("PAT_Intro").node_positions[3] == NodePosition(x=9, y=9)
    reopened.close()


def test_corrupt_row_raises_load_failure() -> None:
    store = SqliteMetadataStore()
    with store._conn:
        store._conn.execute(
            "INSERT INTO quest_metadata (quest_id, node_positions) VALUES (?, ?)",
            ("PAT_Intro", "{not json"),
        )

    with pytest.raises(LoadFailure) as exc_info:
        store.get("PAT_Intro")

    assert exc_info.value.operation == "metadata"
