"""
Marker stores.

A marker is durable proof that a one-time initialization step finished.
Two backends:
- FileMarkerStore: one sentinel file per marker (default; lives on the
  service's data volume next to the data it describes)
- SqliteMarkerStore: markers plus a mark/reset history in SQLite
"""

import json
import os
import re
import socket
import sqlite3
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

MARKER_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


@dataclass
class MarkerRecord:
    """A persisted completion marker."""
    marker_id: str
    completed_at: datetime
    hostname: str
    user: str

    @classmethod
    def now(cls, marker_id: str) -> "MarkerRecord":
        return cls(
            marker_id=marker_id,
            completed_at=datetime.now(),
            hostname=socket.gethostname(),
            user=os.getenv("USER", "unknown"),
        )

    def to_dict(self) -> dict:
        return {
            "marker_id": self.marker_id,
            "completed_at": self.completed_at.isoformat(),
            "hostname": self.hostname,
            "user": self.user,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MarkerRecord":
        return cls(
            marker_id=data["marker_id"],
            completed_at=datetime.fromisoformat(data["completed_at"]),
            hostname=data.get("hostname", "unknown"),
            user=data.get("user", "unknown"),
        )


def validate_marker_id(marker_id: str) -> str:
    """Marker ids become file names; keep them to a safe alphabet."""
    if not MARKER_ID_PATTERN.match(marker_id or ""):
        raise ValueError(f"Invalid marker id: {marker_id!r}")
    return marker_id


class MarkerStore(ABC):
    """Persistence interface used by OnceGuard."""

    @abstractmethod
    def get(self, marker_id: str) -> Optional[MarkerRecord]:
        pass

    @abstractmethod
    def put(self, record: MarkerRecord) -> None:
        pass

    @abstractmethod
    def delete(self, marker_id: str) -> bool:
        """Remove a marker. Returns False if it did not exist."""
        pass

    @abstractmethod
    def list(self) -> List[MarkerRecord]:
        pass

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class FileMarkerStore(MarkerStore):
    """
    Sentinel-file marker store.

    Each marker is <directory>/.<marker_id>.done holding a small JSON
    record, readable by its owner only (markers may sit in a served
    webroot). Writes go to a temp file in the same directory which is
    fsynced and then renamed over the target, so a crash leaves either no
    marker or a complete one.

    Example:
        store = FileMarkerStore("/var/lib/mysql")
        store.put(MarkerRecord.now("mariadb-initialized"))
    """

    SUFFIX = ".done"
    MODE = 0o600

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def _path(self, marker_id: str) -> Path:
        return self.directory / f".{validate_marker_id(marker_id)}{self.SUFFIX}"

    def get(self, marker_id: str) -> Optional[MarkerRecord]:
        path = self._path(marker_id)
        if not path.is_file():
            return None

        try:
            return MarkerRecord.from_dict(json.loads(path.read_text()))
        except (ValueError, KeyError):
            # Sentinel written by hand (e.g. `touch`); its existence is what counts
            stat = path.stat()
            return MarkerRecord(
                marker_id=marker_id,
                completed_at=datetime.fromtimestamp(stat.st_mtime),
                hostname="unknown",
                user="unknown",
            )

    def put(self, record: MarkerRecord) -> None:
        path = self._path(record.marker_id)
        self.directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=str(self.directory), prefix=".marker-")
        try:
            os.fchmod(fd, self.MODE)
            with os.fdopen(fd, "w") as f:
                json.dump(record.to_dict(), f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        self._sync_directory()

    def _sync_directory(self) -> None:
        try:
            dir_fd = os.open(str(self.directory), os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(dir_fd)
        except OSError:
            pass
        finally:
            os.close(dir_fd)

    def delete(self, marker_id: str) -> bool:
        path = self._path(marker_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list(self) -> List[MarkerRecord]:
        if not self.directory.is_dir():
            return []

        records = []
        for path in sorted(self.directory.glob(f".*{self.SUFFIX}")):
            marker_id = path.name[1:-len(self.SUFFIX)]
            if not MARKER_ID_PATTERN.match(marker_id):
                continue
            record = self.get(marker_id)
            if record:
                records.append(record)
        return records


class SqliteMarkerStore(MarkerStore):
    """
    SQLite-based marker store.

    Stores:
    - Current markers (markers table)
    - Mark/reset events (history table)

    Example:
        with SqliteMarkerStore("/var/lib/kindle/state.db") as store:
            store.put(MarkerRecord.now("wordpress-installed"))
    """

    def __init__(self, db_path: Optional[str] = None):
        if db_path is None:
            db_path = str(Path.home() / ".kindle" / "state.db")

        self.db_path = db_path
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS markers (
                id TEXT PRIMARY KEY,
                completed_at TEXT NOT NULL,
                hostname TEXT NOT NULL,
                user TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                marker_id TEXT NOT NULL,
                action TEXT NOT NULL,
                user TEXT NOT NULL,
                hostname TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_history_marker
                ON history(marker_id);
        """)
        self.conn.commit()

    def _row_to_record(self, row: sqlite3.Row) -> MarkerRecord:
        return MarkerRecord(
            marker_id=row["id"],
            completed_at=datetime.fromisoformat(row["completed_at"]),
            hostname=row["hostname"],
            user=row["user"],
        )

    def get(self, marker_id: str) -> Optional[MarkerRecord]:
        row = self.conn.execute(
            "SELECT * FROM markers WHERE id = ?",
            (validate_marker_id(marker_id),)
        ).fetchone()
        return self._row_to_record(row) if row else None

    def put(self, record: MarkerRecord) -> None:
        validate_marker_id(record.marker_id)
        with self.conn:
            self.conn.execute("""
                INSERT OR REPLACE INTO markers (id, completed_at, hostname, user)
                VALUES (?, ?, ?, ?)
            """, (
                record.marker_id,
                record.completed_at.isoformat(),
                record.hostname,
                record.user,
            ))
            self._add_history(record.marker_id, "mark")

    def delete(self, marker_id: str) -> bool:
        with self.conn:
            cursor = self.conn.execute(
                "DELETE FROM markers WHERE id = ?", (validate_marker_id(marker_id),)
            )
            if cursor.rowcount:
                self._add_history(marker_id, "reset")
        return cursor.rowcount > 0

    def list(self) -> List[MarkerRecord]:
        rows = self.conn.execute(
            "SELECT * FROM markers ORDER BY completed_at DESC"
        ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def _add_history(self, marker_id: str, action: str) -> None:
        self.conn.execute("""
            INSERT INTO history (timestamp, marker_id, action, user, hostname)
            VALUES (?, ?, ?, ?, ?)
        """, (
            datetime.now().isoformat(),
            marker_id,
            action,
            os.getenv("USER", "unknown"),
            socket.gethostname(),
        ))

    def get_history(self, marker_id: str, limit: int = 10) -> List[dict]:
        """
        Get mark/reset events for a marker, newest first.
        """
        rows = self.conn.execute("""
            SELECT * FROM history
            WHERE marker_id = ?
            ORDER BY id DESC
            LIMIT ?
        """, (marker_id, limit)).fetchall()

        return [
            {
                "timestamp": datetime.fromisoformat(row["timestamp"]),
                "action": row["action"],
                "user": row["user"],
                "hostname": row["hostname"],
            }
            for row in rows
        ]

    def close(self) -> None:
        if self.conn:
            self.conn.close()
