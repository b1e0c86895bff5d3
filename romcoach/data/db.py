from __future__ import annotations
import logging
import sqlite3
import time
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from romcoach.calibration.record import CalibrationRecord
from romcoach.common import config

logger = logging.getLogger(__name__)

CALIB_KEY = "calib_vertical_autohold"
COMPAT_KEY = "calibration"   # older exercise pages read this key
LOCAL_SCOPE = "local"

SCHEMA = r"""
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS kv (
  scope TEXT NOT NULL,
  key TEXT NOT NULL,
  value TEXT NOT NULL,
  updated_at REAL NOT NULL,
  PRIMARY KEY (scope, key)
);
"""


def session_scope(session_id: str) -> str:
    return f"session:{session_id}"


class CalibrationStore:
    """
    Calibration records in sqlite. Each save writes one JSON string to the
    session scope, the long-lived local scope and the legacy key.
    """
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else config.DB_PATH
        self._conn: Optional[sqlite3.Connection] = None

    def get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            if self.path.as_posix() != ":memory:":
                self.path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.path.as_posix(), check_same_thread=False)
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # writes

    def save(self, record: CalibrationRecord, session_id: str) -> bool:
        """Returns False (and logs) if storage is unavailable; never raises sqlite errors."""
        payload = record.to_json()
        ts = time.time()
        rows = [
            (session_scope(session_id), CALIB_KEY, payload, ts),
            (LOCAL_SCOPE, CALIB_KEY, payload, ts),
            (LOCAL_SCOPE, COMPAT_KEY, payload, ts),
        ]
        try:
            conn = self.get_conn()
            with conn:
                conn.executemany(
                    "INSERT OR REPLACE INTO kv (scope, key, value, updated_at) VALUES (?,?,?,?)",
                    rows,
                )
        except (sqlite3.Error, OSError) as e:
            logger.warning("calibration storage failed: %s", e)
            return False
        return True

    def clear_session(self, session_id: str):
        try:
            conn = self.get_conn()
            with conn:
                conn.execute("DELETE FROM kv WHERE scope=?", (session_scope(session_id),))
        except (sqlite3.Error, OSError) as e:
            logger.warning("could not clear session scope %s: %s", session_id, e)

    # reads

    def get_raw(self, scope: str, key: str) -> Optional[str]:
        row = self.get_conn().execute("SELECT value FROM kv WHERE scope=? AND key=?", (scope, key)).fetchone()
        return row[0] if row else None

    def load(self, session_id: Optional[str] = None) -> Optional[CalibrationRecord]:
        lookups = [(LOCAL_SCOPE, CALIB_KEY), (LOCAL_SCOPE, COMPAT_KEY)]
        if session_id:
            lookups.insert(0, (session_scope(session_id), CALIB_KEY))
        try:
            raw = None
            for scope, key in lookups:
                raw = self.get_raw(scope, key)
                if raw:
                    break
        except (sqlite3.Error, OSError) as e:
            logger.warning("calibration read failed: %s", e)
            return None
        if not raw:
            return None
        try:
            return CalibrationRecord.from_json(raw)
        except ValidationError as e:
            logger.warning("stored calibration is unreadable: %s", e)
            return None
