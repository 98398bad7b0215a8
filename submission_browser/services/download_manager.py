"""
Downloads submission events to the local disk and tracks download state.
"""
import gzip
import posixpath
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List
from loguru import logger

from ..clients.s3_manager import S3Manager
from ..models.data_models import FileType
from .database_manager import DatabaseManager
from .filename_parser import classify_file_type


class EventNotFoundError(LookupError):
    """Raised when an event is not present in the cache."""
    pass


@dataclass
class DownloadResult:
    event_id: str
    path: str
    downloaded_files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'eventId': self.event_id,
            'path': self.path,
            'downloadedFiles': list(self.downloaded_files)
        }


def local_filename(filename: str) -> str:
    """Name a file is stored under locally; .json.gz is kept decompressed."""
    if filename.lower().endswith('.json.gz'):
        return filename[:-len('.gz')]
    return filename


class DownloadManager:
    """Downloads event files from S3 into ``downloads_dir/year/month/event_id``."""

    def __init__(self, s3_manager: S3Manager, database_manager: DatabaseManager, downloads_dir: str):
        self.s3_manager = s3_manager
        self.database_manager = database_manager
        self.downloads_dir = Path(downloads_dir)
        self.downloads_dir.mkdir(parents=True, exist_ok=True)

    def event_dir(self, year: str, month: str, event_id: str) -> Path:
        """
        Local directory of a downloaded event.

        Raises:
            ValueError: If the path would escape the downloads directory
        """
        return self._safe_path(year, month, event_id)

    def _safe_path(self, *parts: str) -> Path:
        root = self.downloads_dir.resolve()
        path = root.joinpath(*parts).resolve()
        if path == root or root not in path.parents:
            raise ValueError(f"Invalid download path: {'/'.join(parts)}")
        return path

    def download_event(self, year: str, month: str, event_id: str) -> DownloadResult:
        """
        Download every cached file of an event.

        Compressed JSON files are stored decompressed. Each file is marked as
        downloaded in the cache as soon as it is written, and the event is
        marked downloaded once all files are present.

        Raises:
            EventNotFoundError: If the event is not cached in that partition
                or has no files
            ObjectStoreError: If an object cannot be read
        """
        event = self.database_manager.get_event(event_id)
        if event is None or (event.year, event.month) != (year, month):
            raise EventNotFoundError(f"Event {event_id} not found in {year}/{month}")

        files = event.files
        if not files:
            raise EventNotFoundError(f"Event {event_id} has no files")

        target_dir = self.event_dir(year, month, event_id)
        target_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading event {event_id} ({len(files)} files) to {target_dir}")

        result = DownloadResult(event_id=event_id, path=str(target_dir))
        for record in files:
            filename = posixpath.basename(record.key)
            local_path = target_dir / local_filename(filename)

            stream = self.s3_manager.get_object_stream(record.key)
            try:
                if record.file_type == FileType.JSON_GZ:
                    with gzip.GzipFile(fileobj=stream) as source, open(local_path, 'wb') as target:
                        shutil.copyfileobj(source, target)
                else:
                    with open(local_path, 'wb') as target:
                        shutil.copyfileobj(stream, target)
            finally:
                stream.close()

            self.database_manager.set_file_downloaded(record.key, str(local_path))
            result.downloaded_files.append(local_path.name)
            logger.debug(f"Downloaded {record.key} -> {local_path}")

        self.database_manager.mark_event_downloaded(event_id)
        logger.info(f"Event {event_id} downloaded ({len(result.downloaded_files)} files)")
        return result

    def get_download_status(self, year: str, month: str, event_id: str) -> Dict[str, Any]:
        """Describe the files present locally for an event."""
        target_dir = self.event_dir(year, month, event_id)
        if not target_dir.is_dir():
            return {'downloaded': False, 'files': []}

        files = [
            {
                'filename': path.name,
                'size': path.stat().st_size,
                'type': classify_file_type(path.name).value
            }
            for path in sorted(target_dir.iterdir())
            if path.is_file()
        ]
        return {'downloaded': True, 'files': files, 'localPath': str(target_dir)}

    def delete_download(self, year: str, month: str, event_id: str) -> bool:
        """
        Remove an event's local files and reset its cached download state.

        Returns:
            bool: False if nothing was on disk
        """
        target_dir = self.event_dir(year, month, event_id)
        existed = target_dir.is_dir()
        if existed:
            shutil.rmtree(target_dir)
            logger.info(f"Deleted local copy of event {event_id}")

        self.database_manager.clear_event_download(event_id)
        return existed

    def resolve_local_file(self, year: str, month: str, event_id: str, filename: str) -> Path:
        """
        Path of a downloaded file.

        Raises:
            ValueError: If the path would escape the downloads directory
            FileNotFoundError: If the file is not on disk
        """
        path = self._safe_path(year, month, event_id, filename)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {filename}")
        return path
