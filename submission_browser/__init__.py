"""
Submission Browser - browse and download ML-training-data submissions stored in S3.
"""

from .services.sync_service import SyncService
from .models.config import BrowserConfig, S3Config
from .models.data_models import EventRecord, FileRecord, SyncStatus, SyncResult

__version__ = "1.0.0"
__all__ = [
    "SyncService",
    "BrowserConfig",
    "S3Config",
    "EventRecord",
    "FileRecord",
    "SyncStatus",
    "SyncResult"
]
