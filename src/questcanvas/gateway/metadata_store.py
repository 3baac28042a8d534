"""SQLite-backed storage for editor position metadata.

Positions are presentational only, so they live apart from the quest files:
one row per quest holding a JSON object ``{"<node id>": {"x": .., "y": ..}}``.
Saving the same quest again replaces its row.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from pydantic import ValidationError

from questcanvas.gateway.errors import LoadFailure, SaveFailure
from questcanvas.models.quest import PositionMetadata

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS quest_metadata (
    quest_id       TEXT PRIMARY KEY,
    node_positions TEXT NOT NULL
);
"""


class SqliteMetadataStore:
    """Position metadata keyed by quest id."""

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        """Open or create the metadata database.

        Args:
            db_path: Path to a ``.db`` file, or ``":memory:"``.
        """
        self._db_path = str(db_path) if isinstance(db_path, Path) else db_path
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._db_path)
        self._conn.executescript(_SCHEMA)

    @property
    def db_path(self) -> str:
        return self._db_path

    def get(self, quest_id: str) -> PositionMetadata:
        """Stored positions for *quest_id*; empty metadata when none exist.

        Raises:
            LoadFailure: If the stored row cannot be parsed.
        """
        row = self._conn.execute(
            "SELECT node_positions FROM quest_metadata WHERE quest_id = ?",
            (quest_id,),
        ).fetchone()
        if row is None:
            return PositionMetadata(quest_id=quest_id)
        try:
            positions = json.loads(row[0])
            return PositionMetadata(quest_id=quest_id, node_positions=positions)
        except (json.JSONDecodeError, ValidationError) as e:
            raise LoadFailure(
                f"Stored positions for '{quest_id}' are unreadable: {e}", operation="metadata"
            ) from e

    def save(self, metadata: PositionMetadata) -> None:
        """Insert or replace the positions of ``metadata.quest_id``.

        Raises:
            SaveFailure: If the database rejects the write.
        """
        payload = json.dumps(metadata.to_wire()["nodePositions"])
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO quest_metadata (quest_id, node_positions)
                    VALUES (?, ?)
                    ON CONFLICT(quest_id) DO UPDATE SET node_positions = excluded.node_positions
                    """,
                    (metadata.quest_id, payload),
                )
        except sqlite3.Error as e:
            raise SaveFailure(f"Failed to save positions for '{metadata.quest_id}': {e}") from e

    def delete(self, quest_id: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM quest_metadata WHERE quest_id = ?", (quest_id,))

    def quest_ids(self) -> list[str]:
        rows = self._conn.execute("SELECT quest_id FROM quest_metadata ORDER BY quest_id")
        return [row[0] for row in rows]

    def close(self) -> None:
        self._conn.close()
