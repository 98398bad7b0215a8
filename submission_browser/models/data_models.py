"""
Core data models for the submission browser.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional


class FileType(str, Enum):
    """Kind of file inside a submission, derived from its extension."""
    VIDEO = 'video'
    JSON = 'json'
    JSON_GZ = 'json.gz'
    JPG = 'jpg'
    OTHER = 'other'


class EventStatus(str, Enum):
    AVAILABLE = 'available'
    DOWNLOADED = 'downloaded'


class SyncState(str, Enum):
    IDLE = 'idle'
    SYNCING = 'syncing'
    ERROR = 'error'


class SortColumn(str, Enum):
    """Columns the event listing can be ordered by."""
    EVENT_ID = 'eventId'
    USER_ID = 'userId'
    DEVICE_ID = 'deviceId'
    TIMESTAMP = 'timestamp'
    FILE_COUNT = 'fileCount'


class SortDirection(str, Enum):
    ASC = 'asc'
    DESC = 'desc'


def empty_type_counts() -> Dict[str, int]:
    """Per-type file counters, one entry per FileType."""
    return {file_type.value: 0 for file_type in FileType}


@dataclass
class FilenameMetadata:
    """Metadata extracted from a submission filename."""
    event_id: str
    user_id: str
    device_id: str
    camera_model: str
    timestamp: datetime
    layout: str  # 'standard', 'combined', 'legacy', 'unrecognized'

    @property
    def recognized(self) -> bool:
        return self.layout != 'unrecognized'


@dataclass
class FileRecord:
    """Represents a cached object-store file belonging to an event."""
    key: str
    event_id: str
    file_type: FileType
    size: int
    last_modified: datetime
    downloaded: bool = False
    local_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            'key': self.key,
            'eventId': self.event_id,
            'type': self.file_type.value,
            'size': self.size,
            'lastModified': self.last_modified.isoformat(),
            'isDownloaded': self.downloaded,
            'localPath': self.local_path
        }


@dataclass
class EventRecord:
    """
    A submission event: one or more files sharing a parsed event id.

    ``file_count`` and ``file_types`` are aggregates over the event's files.
    They are filled in memory during a sync and at read time by the cache;
    they are never stored on the event row.
    """
    event_id: str
    user_id: str
    device_id: str
    camera_model: str
    timestamp: datetime
    source_prefix: str
    year: str
    month: str
    status: EventStatus = EventStatus.AVAILABLE
    file_count: int = 0
    file_types: Dict[str, int] = field(default_factory=empty_type_counts)
    files: List[FileRecord] = field(default_factory=list)

    @property
    def has_video(self) -> bool:
        return self.file_types.get(FileType.VIDEO.value, 0) > 0

    @property
    def has_json(self) -> bool:
        return (self.file_types.get(FileType.JSON.value, 0)
                + self.file_types.get(FileType.JSON_GZ.value, 0)) > 0

    def add_file(self, file_type: FileType) -> None:
        """Count one more file of the given type against this event."""
        self.file_count += 1
        self.file_types[file_type.value] = self.file_types.get(file_type.value, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            'eventId': self.event_id,
            'userId': self.user_id,
            'deviceId': self.device_id,
            'cameraModel': self.camera_model,
            'timestamp': self.timestamp.isoformat(),
            'status': self.status.value,
            'fileCount': self.file_count,
            'fileTypes': {
                'video': self.file_types.get(FileType.VIDEO.value, 0),
                'json': self.file_types.get(FileType.JSON.value, 0),
                'jpg': self.file_types.get(FileType.JPG.value, 0),
                'jsonGz': self.file_types.get(FileType.JSON_GZ.value, 0)
            },
            'files': [f.to_dict() for f in self.files]
        }


@dataclass
class SyncStatus:
    """Sync provenance for one year/month partition."""
    year: str
    month: str
    status: SyncState = SyncState.IDLE
    last_synced_at: Optional[datetime] = None

    @property
    def year_month(self) -> str:
        return f"{self.year}-{self.month}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'yearMonth': self.year_month,
            'status': self.status.value,
            'lastSyncedAt': self.last_synced_at.isoformat() if self.last_synced_at else None
        }


@dataclass
class SyncResult:
    """Outcome of a single partition sync."""
    year: str
    month: str
    events_synced: int = 0
    files_synced: int = 0
    skipped: bool = False
    last_synced_at: Optional[datetime] = None
    unrecognized_files: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'year': self.year,
            'month': self.month,
            'eventsSynced': self.events_synced,
            'filesSynced': self.files_synced,
            'skipped': self.skipped,
            'lastSyncedAt': self.last_synced_at.isoformat() if self.last_synced_at else None,
            'unrecognizedFiles': self.unrecognized_files
        }


@dataclass
class SyncRun:
    """History entry for a completed sync."""
    year: str
    month: str
    files_synced: int
    events_synced: int
    started_at: datetime
    completed_at: datetime


@dataclass
class Partition:
    year: str
    month: str
