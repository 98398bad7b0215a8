# Services package
from .database_manager import DatabaseManager, PersistenceError
from .download_manager import DownloadManager, EventNotFoundError
from .filename_parser import parse_filename, classify_file_type
from .sync_service import SyncService, AutoSyncReport

__all__ = [
    'DatabaseManager',
    'PersistenceError',
    'DownloadManager',
    'EventNotFoundError',
    'parse_filename',
    'classify_file_type',
    'SyncService',
    'AutoSyncReport'
]
