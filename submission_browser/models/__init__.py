"""
Models package for the submission browser.
"""
from .data_models import (
    FileType,
    EventStatus,
    SyncState,
    SortColumn,
    SortDirection,
    FilenameMetadata,
    FileRecord,
    EventRecord,
    SyncStatus,
    SyncResult,
    SyncRun,
    Partition
)
from .config import S3Config, BrowserConfig

__all__ = [
    'FileType',
    'EventStatus',
    'SyncState',
    'SortColumn',
    'SortDirection',
    'FilenameMetadata',
    'FileRecord',
    'EventRecord',
    'SyncStatus',
    'SyncResult',
    'SyncRun',
    'Partition',
    'S3Config',
    'BrowserConfig'
]
