"""
SQLite cache for submission events, files and sync status.
"""
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional
from contextlib import contextmanager

from ..models.data_models import (
    EventRecord,
    EventStatus,
    FileRecord,
    FileType,
    SortColumn,
    SortDirection,
    SyncRun,
    SyncState,
    SyncStatus,
    empty_type_counts
)


class PersistenceError(Exception):
    """Raised when a cache read or write fails."""
    pass


# Closed mapping from sort options to SQL; caller input never reaches the query text
_SORT_COLUMNS = {
    SortColumn.EVENT_ID: 'e.event_id',
    SortColumn.USER_ID: 'e.user_id',
    SortColumn.DEVICE_ID: 'e.device_id',
    SortColumn.TIMESTAMP: 'e.timestamp',
    SortColumn.FILE_COUNT: 'file_count'
}

_SORT_DIRECTIONS = {
    SortDirection.ASC: 'ASC',
    SortDirection.DESC: 'DESC'
}


def _to_db_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class DatabaseManager:
    """Manages SQLite database operations for the submission cache."""

    def __init__(self, db_path: str):
        """Initialize database manager with database path."""
        self.db_path = db_path
        self._ensure_db_directory()
        self.create_tables()

    def _ensure_db_directory(self):
        """Ensure the database directory exists."""
        db_dir = Path(self.db_path).parent
        db_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_connection(self):
        """
        Get database connection with automatic cleanup.

        sqlite errors raised inside the block are rolled back and re-raised
        as PersistenceError.
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=30)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row  # Enable dict-like access to rows
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Database operation failed: {e}") from e
        finally:
            conn.close()

    def create_tables(self) -> None:
        """Create database tables with proper schema and indexes."""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    event_id TEXT PRIMARY KEY,
                    user_id TEXT,
                    device_id TEXT,
                    camera_model TEXT,
                    timestamp TEXT,
                    source_prefix TEXT,
                    year TEXT,
                    month TEXT,
                    status TEXT DEFAULT 'available',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS files (
                    key TEXT PRIMARY KEY,
                    event_id TEXT REFERENCES events(event_id),
                    file_type TEXT,
                    size INTEGER,
                    last_modified TEXT,
                    downloaded INTEGER DEFAULT 0,
                    local_path TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sync_status (
                    year_month TEXT PRIMARY KEY,
                    year TEXT,
                    month TEXT,
                    last_synced_at TEXT,
                    status TEXT DEFAULT 'idle'
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sync_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    year TEXT,
                    month TEXT,
                    files_synced INTEGER,
                    events_synced INTEGER,
                    started_at TEXT,
                    completed_at TEXT
                )
            """)

            # Create indexes for performance
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_files_event_id ON files(event_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_events_year_month ON events(year, month)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_events_timestamp ON events(timestamp DESC)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_events_user_id ON events(user_id)")
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_sync_log_year_month
                ON sync_log(year, month, completed_at DESC)
            """)

            conn.commit()

    # -- upserts -------------------------------------------------------------

    def _upsert_event(self, cursor: sqlite3.Cursor, event: EventRecord) -> None:
        # Only the status is refreshed on conflict; the first parsed metadata wins
        cursor.execute("""
            INSERT INTO events
            (event_id, user_id, device_id, camera_model, timestamp,
             source_prefix, year, month, status, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(event_id) DO UPDATE SET
                status = excluded.status,
                updated_at = CURRENT_TIMESTAMP
        """, (
            event.event_id,
            event.user_id,
            event.device_id,
            event.camera_model,
            _to_db_time(event.timestamp),
            event.source_prefix,
            event.year,
            event.month,
            event.status.value
        ))

    def _upsert_file(self, cursor: sqlite3.Cursor, record: FileRecord) -> None:
        # Download state is owned by the downloader; keep whatever is stored
        cursor.execute("""
            INSERT INTO files
            (key, event_id, file_type, size, last_modified, downloaded, local_path)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                size = excluded.size,
                last_modified = excluded.last_modified,
                downloaded = COALESCE(files.downloaded, excluded.downloaded),
                local_path = COALESCE(files.local_path, excluded.local_path)
        """, (
            record.key,
            record.event_id,
            record.file_type.value,
            record.size,
            _to_db_time(record.last_modified),
            int(record.downloaded),
            record.local_path
        ))

    def upsert_event(self, event: EventRecord) -> None:
        """Insert or update a single event."""
        with self.get_connection() as conn:
            self._upsert_event(conn.cursor(), event)
            conn.commit()

    def upsert_file(self, record: FileRecord) -> None:
        """Insert or update a single file record."""
        with self.get_connection() as conn:
            self._upsert_file(conn.cursor(), record)
            conn.commit()

    def upsert_partition(self, events: Iterable[EventRecord], files: Iterable[FileRecord]) -> None:
        """Upsert a partition's events and files in a single transaction."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            for event in events:
                self._upsert_event(cursor, event)
            for record in files:
                self._upsert_file(cursor, record)
            conn.commit()

    # -- reads ---------------------------------------------------------------

    @staticmethod
    def _row_to_file(row: sqlite3.Row) -> FileRecord:
        return FileRecord(
            key=row['key'],
            event_id=row['event_id'],
            file_type=FileType(row['file_type']),
            size=row['size'],
            last_modified=_from_db_time(row['last_modified']),
            downloaded=bool(row['downloaded']),
            local_path=row['local_path']
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> EventRecord:
        file_types = empty_type_counts()
        file_types[FileType.VIDEO.value] = row['video_count'] or 0
        file_types[FileType.JSON.value] = row['json_count'] or 0
        file_types[FileType.JSON_GZ.value] = row['json_gz_count'] or 0
        file_types[FileType.JPG.value] = row['jpg_count'] or 0
        file_types[FileType.OTHER.value] = row['other_count'] or 0

        return EventRecord(
            event_id=row['event_id'],
            user_id=row['user_id'],
            device_id=row['device_id'],
            camera_model=row['camera_model'],
            timestamp=_from_db_time(row['timestamp']),
            source_prefix=row['source_prefix'],
            year=row['year'],
            month=row['month'],
            status=EventStatus(row['status']),
            file_count=row['file_count'],
            file_types=file_types
        )

    _EVENT_SELECT = """
        SELECT
            e.event_id, e.user_id, e.device_id, e.camera_model, e.timestamp,
            e.source_prefix, e.year, e.month, e.status,
            COUNT(f.key) AS file_count,
            SUM(CASE WHEN f.file_type = 'video' THEN 1 ELSE 0 END) AS video_count,
            SUM(CASE WHEN f.file_type = 'json' THEN 1 ELSE 0 END) AS json_count,
            SUM(CASE WHEN f.file_type = 'json.gz' THEN 1 ELSE 0 END) AS json_gz_count,
            SUM(CASE WHEN f.file_type = 'jpg' THEN 1 ELSE 0 END) AS jpg_count,
            SUM(CASE WHEN f.file_type = 'other' THEN 1 ELSE 0 END) AS other_count
        FROM events e
        LEFT JOIN files f ON e.event_id = f.event_id
    """

    def get_events(self, year: str, month: str,
                   sort: SortColumn = SortColumn.TIMESTAMP,
                   direction: SortDirection = SortDirection.DESC) -> List[EventRecord]:
        """
        Get a partition's events with per-type file counts and their files.

        Args:
            year: Partition year
            month: Partition month
            sort: Column to order by
            direction: Sort direction

        Returns:
            List of EventRecord objects
        """
        order_by = f"{_SORT_COLUMNS[SortColumn(sort)]} {_SORT_DIRECTIONS[SortDirection(direction)]}"

        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"""
                {self._EVENT_SELECT}
                WHERE e.year = ? AND e.month = ?
                GROUP BY e.event_id
                ORDER BY {order_by}, e.event_id ASC
            """, (year, month))
            events = [self._row_to_event(row) for row in cursor.fetchall()]

            cursor.execute("""
                SELECT f.*
                FROM files f
                JOIN events e ON e.event_id = f.event_id
                WHERE e.year = ? AND e.month = ?
                ORDER BY f.key
            """, (year, month))
            files_by_event: Dict[str, List[FileRecord]] = {}
            for row in cursor.fetchall():
                files_by_event.setdefault(row['event_id'], []).append(self._row_to_file(row))

        for event in events:
            event.files = files_by_event.get(event.event_id, [])
        return events

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        """Get a single event with its files."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"""
                {self._EVENT_SELECT}
                WHERE e.event_id = ?
                GROUP BY e.event_id
            """, (event_id,))
            row = cursor.fetchone()

        if row is None:
            return None
        event = self._row_to_event(row)
        event.files = self.get_event_files(event_id)
        return event

    def get_event_files(self, event_id: str) -> List[FileRecord]:
        """Get all files of an event ordered by key."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM files WHERE event_id = ? ORDER BY key", (event_id,))
            return [self._row_to_file(row) for row in cursor.fetchall()]

    def get_file(self, key: str) -> Optional[FileRecord]:
        """Get a specific file record by object key."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM files WHERE key = ?", (key,))
            row = cursor.fetchone()
            return self._row_to_file(row) if row else None

    # -- download state ------------------------------------------------------

    def set_file_downloaded(self, key: str, local_path: str) -> None:
        """Record that a file has been downloaded to local_path."""
        with self.get_connection() as conn:
            conn.execute("""
                UPDATE files SET downloaded = 1, local_path = ? WHERE key = ?
            """, (local_path, key))
            conn.commit()

    def mark_event_downloaded(self, event_id: str) -> None:
        with self.get_connection() as conn:
            conn.execute("""
                UPDATE events
                SET status = ?, updated_at = CURRENT_TIMESTAMP
                WHERE event_id = ?
            """, (EventStatus.DOWNLOADED.value, event_id))
            conn.commit()

    def clear_event_download(self, event_id: str) -> None:
        """Reset download state of an event and all of its files."""
        with self.get_connection() as conn:
            conn.execute("""
                UPDATE files SET downloaded = 0, local_path = NULL WHERE event_id = ?
            """, (event_id,))
            conn.execute("""
                UPDATE events
                SET status = ?, updated_at = CURRENT_TIMESTAMP
                WHERE event_id = ?
            """, (EventStatus.AVAILABLE.value, event_id))
            conn.commit()

    # -- sync provenance -----------------------------------------------------

    def get_sync_status(self, year: str, month: str) -> SyncStatus:
        """Get sync status of a partition; never-synced partitions are idle."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT status, last_synced_at FROM sync_status WHERE year_month = ?
            """, (f"{year}-{month}",))
            row = cursor.fetchone()

        if row is None:
            return SyncStatus(year=year, month=month)
        return SyncStatus(
            year=year,
            month=month,
            status=SyncState(row['status']),
            last_synced_at=_from_db_time(row['last_synced_at'])
        )

    def update_sync_status(self, year: str, month: str, status: SyncState,
                           last_synced_at: Optional[datetime] = None) -> None:
        """
        Set the sync status of a partition.

        last_synced_at is only written when given; otherwise the stored
        value is kept.
        """
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO sync_status (year_month, year, month, status, last_synced_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(year_month) DO UPDATE SET
                    status = excluded.status,
                    last_synced_at = COALESCE(excluded.last_synced_at, sync_status.last_synced_at)
            """, (f"{year}-{month}", year, month, SyncState(status).value, _to_db_time(last_synced_at)))
            conn.commit()

    def record_sync_run(self, run: SyncRun) -> None:
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO sync_log
                (year, month, files_synced, events_synced, started_at, completed_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                run.year,
                run.month,
                run.files_synced,
                run.events_synced,
                _to_db_time(run.started_at),
                _to_db_time(run.completed_at)
            ))
            conn.commit()

    def get_recent_sync_runs(self, limit: int = 10) -> List[SyncRun]:
        """Most recent completed syncs, newest first."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT year, month, files_synced, events_synced, started_at, completed_at
                FROM sync_log
                ORDER BY completed_at DESC, id DESC
                LIMIT ?
            """, (limit,))
            return [
                SyncRun(
                    year=row['year'],
                    month=row['month'],
                    files_synced=row['files_synced'],
                    events_synced=row['events_synced'],
                    started_at=_from_db_time(row['started_at']),
                    completed_at=_from_db_time(row['completed_at'])
                )
                for row in cursor.fetchall()
            ]

    def get_record_counts(self) -> Dict[str, int]:
        """Get the number of cached events and files."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM events")
            events = cursor.fetchone()[0]
            cursor.execute("SELECT COUNT(*) FROM files")
            files = cursor.fetchone()[0]
            return {'events': events, 'files': files}
