"""Key-value backends for the draft store."""

import sqlite3
import time
from pathlib import Path

from loguru import logger

from doctree_sync.config import DRAFTS_DB_NAME
from doctree_sync.core.database.schema import migrate_schema


class MemoryKeyValueStore:
    """Process-local backend; contents are lost on exit."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def list_keys(self) -> list[str]:
        return list(self.values)

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


class SqliteKeyValueStore:
    """Durable backend over the ``drafts`` table. Every write is committed."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        migrate_schema(conn)

    @classmethod
    def open(cls, data_dir: Path) -> "SqliteKeyValueStore":
        """Open (creating if needed) the drafts database under data_dir."""
        data_dir.mkdir(parents=True, exist_ok=True)
        db_path = data_dir / DRAFTS_DB_NAME
        logger.debug("Opening drafts database {}", db_path)
        return cls(sqlite3.connect(str(db_path)))

    def get(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM drafts WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO drafts (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, int(time.time() * 1000)),
        )
        self.conn.commit()

    def list_keys(self) -> list[str]:
        rows = self.conn.execute("SELECT key FROM drafts ORDER BY updated_at DESC").fetchall()
        return [r[0] for r in rows]

    def delete(self, key: str) -> None:
        self.conn.execute("DELETE FROM drafts WHERE key = ?", (key,))
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()
