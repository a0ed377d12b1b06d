"""SQLite store for maps kept on this machine and for app settings."""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from mindcanvas.model import MindMap, sanitize_mind_map

logger = logging.getLogger(__name__)


class LocalStore:
    """Local persistence used when the remote service is unavailable.

    Each map is stored whole as its wire JSON document. ``remote`` marks maps
    that came from the server so local-only maps can be told apart.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        # Shared by the UI thread and sync worker threads
        self._lock = threading.RLock()
        self._init_db()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def _init_db(self):
        """Initialize the database schema."""
        with self._lock:
            self.conn.executescript("""
                CREATE TABLE IF NOT EXISTS maps (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    document JSON NOT NULL,
                    remote BOOLEAN DEFAULT 0,
                    modified_at DATETIME DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value JSON
                );

                CREATE INDEX IF NOT EXISTS idx_maps_modified ON maps(modified_at);
            """)
            self.conn.commit()

    def close(self):
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    # ==================== Map Operations ====================

    def save_map(self, mind_map: MindMap, remote: bool = False):
        """Insert or replace a map document."""
        with self._lock:
            self.conn.execute(
                """INSERT OR REPLACE INTO maps (id, title, document, remote, modified_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (mind_map.id, mind_map.title, json.dumps(mind_map.to_dict()), remote,
                 datetime.now().isoformat())
            )
            self.conn.commit()

    def get_map(self, map_id: str) -> Optional[MindMap]:
        with self._lock:
            row = self.conn.execute(
                "SELECT document FROM maps WHERE id = ?", (map_id,)).fetchone()
        if not row:
            return None
        return self._load_row(row)

    def get_all_maps(self, include_remote: bool = True) -> List[MindMap]:
        """All stored maps, most recently modified first. Corrupt rows are skipped."""
        with self._lock:
            if include_remote:
                rows = self.conn.execute(
                    "SELECT document FROM maps ORDER BY modified_at DESC").fetchall()
            else:
                rows = self.conn.execute(
                    "SELECT document FROM maps WHERE remote = 0 ORDER BY modified_at DESC"
                ).fetchall()

        maps = []
        for row in rows:
            mind_map = self._load_row(row)
            if mind_map is not None:
                maps.append(mind_map)
        return maps

    def get_local_only_maps(self) -> List[MindMap]:
        """Maps that were created offline and never stored remotely."""
        return self.get_all_maps(include_remote=False)

    def delete_map(self, map_id: str):
        with self._lock:
            self.conn.execute("DELETE FROM maps WHERE id = ?", (map_id,))
            self.conn.commit()

    def _load_row(self, row: sqlite3.Row) -> Optional[MindMap]:
        try:
            return sanitize_mind_map(json.loads(row["document"]))
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping corrupted local map: %s", exc)
            return None

    # ==================== Settings Operations ====================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an application setting."""
        with self._lock:
            row = self.conn.execute(
                "SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        if not row:
            return default
        try:
            value = json.loads(row["value"])
        except (json.JSONDecodeError, TypeError):
            return default
        return default if value is None else value

    def set_setting(self, key: str, value: Any):
        """Set an application setting."""
        with self._lock:
            self.conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, json.dumps(value))
            )
            self.conn.commit()
