"""SQLite persistence for completed discovery records."""

import json
import re
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from site_discovery.config import config
from site_discovery.errors import ConfigurationError
from site_discovery.models.discovery import DiscoveryRecord
from site_discovery.utils.logger import LayerLogger

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DiscoveryStore:
    """Insert-only record table with lookup by id."""

    def __init__(self, db_path: Optional[str] = None, table: Optional[str] = None):
        self.db_path = db_path or config.DISCOVERY_DB_PATH
        self.table = table or config.DISCOVERY_TABLE
        if not _TABLE_NAME.match(self.table):
            raise ConfigurationError(f"Invalid DISCOVERY_TABLE name: {self.table!r}")
        self.logger = LayerLogger("store")
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the record table if it doesn't exist."""
        with closing(self._connect()) as conn, conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at          TEXT NOT NULL,
                    brand               TEXT NOT NULL,
                    product_name_input  TEXT NOT NULL,
                    status              TEXT NOT NULL,
                    record              TEXT NOT NULL
                )
            """)

    def insert(self, record: DiscoveryRecord) -> int:
        """Insert one record and return the new row id."""
        ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        payload = json.dumps(record.model_dump(), ensure_ascii=False)
        with closing(self._connect()) as conn, conn:
            cur = conn.execute(
                f"""INSERT INTO {self.table}
                    (created_at, brand, product_name_input, status, record)
                    VALUES (?, ?, ?, ?, ?)""",
                (ts, record.brand, record.product_name_input, record.status, payload),
            )
            row_id = cur.lastrowid
        self.logger.log_action("insert_record", "completed", id=row_id, brand=record.brand)
        return row_id

    def get(self, record_id: int) -> Optional[Dict[str, Any]]:
        """Return the stored record with its id and creation time, or None."""
        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT * FROM {self.table} WHERE id = ?", (record_id,)
            ).fetchone()
        if row is None:
            return None
        data = json.loads(row["record"])
        data["id"] = row["id"]
        data["created_at"] = row["created_at"]
        return data
