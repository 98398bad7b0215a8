"""
Sync service reconciling object-store partitions into the local cache.
"""
import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Any, List, Optional, Tuple
from loguru import logger

from ..clients.s3_manager import S3Manager
from ..models.config import BrowserConfig
from ..models.data_models import (
    EventRecord,
    EventStatus,
    FileRecord,
    Partition,
    SortColumn,
    SortDirection,
    SyncResult,
    SyncRun,
    SyncState,
    SyncStatus
)
from .database_manager import DatabaseManager
from .filename_parser import classify_file_type, parse_filename


@dataclass
class AutoSyncReport:
    """Summary of an auto-sync pass over every discovered partition."""
    synced: List[SyncResult] = field(default_factory=list)
    skipped: List[Partition] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def total_events(self) -> int:
        return sum(r.events_synced for r in self.synced)

    @property
    def total_files(self) -> int:
        return sum(r.files_synced for r in self.synced)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'synced': [r.to_dict() for r in self.synced],
            'skipped': [f"{p.year}/{p.month}" for p in self.skipped],
            'failed': dict(self.failed),
            'totalEvents': self.total_events,
            'totalFiles': self.total_files
        }


def _sort_key_desc_numeric(name: str) -> Tuple[int, str]:
    return (int(name) if name.isdigit() else -1, name)


class SyncService:
    """
    Orchestrates listing a partition, parsing its filenames and upserting the
    resulting events and files into the cache.

    The object store and the cache are passed in so callers (and tests) decide
    which implementations are used.
    """

    def __init__(self, config: BrowserConfig, s3_manager: S3Manager, database_manager: DatabaseManager):
        """
        Initialize sync service.

        Args:
            config: BrowserConfig with bucket layout and freshness windows
            s3_manager: Object store lister
            database_manager: Persistent cache
        """
        self.config = config
        self.s3_manager = s3_manager
        self.database_manager = database_manager

        logger.info("SyncService initialized successfully")

    # -- partitions ----------------------------------------------------------

    def list_years(self) -> List[str]:
        """Years available under the base prefix, newest first."""
        years = self.s3_manager.list_child_prefixes(self.config.s3.base_prefix)
        return sorted(years, key=_sort_key_desc_numeric, reverse=True)

    def list_months(self, year: str) -> List[str]:
        """Months available for a year, newest first."""
        months = self.s3_manager.list_child_prefixes(f"{self.config.s3.base_prefix}{year}/")
        return sorted(months, key=_sort_key_desc_numeric, reverse=True)

    def discover_partitions(self) -> List[Partition]:
        """Discover every year/month partition in the bucket."""
        logger.info("Discovering available partitions")
        partitions = [
            Partition(year=year, month=month)
            for year in self.list_years()
            for month in self.list_months(year)
        ]
        logger.info(f"Found {len(partitions)} year/month partitions")
        return partitions

    # -- freshness -----------------------------------------------------------

    def get_sync_status(self, year: str, month: str) -> SyncStatus:
        return self.database_manager.get_sync_status(year, month)

    def needs_sync(self, year: str, month: str,
                   freshness_window: Optional[timedelta] = None) -> Tuple[bool, str]:
        """
        Decide whether a partition is stale.

        Returns:
            Tuple of (needs sync, human-readable reason)
        """
        window = freshness_window if freshness_window is not None else self.config.sync_freshness_window
        status = self.database_manager.get_sync_status(year, month)

        if status.last_synced_at is None:
            return True, 'never synced'

        age = datetime.now() - status.last_synced_at
        hours = int(age.total_seconds() // 3600)
        if age >= window:
            return True, f'{hours}h since last sync'
        return False, f'synced {hours}h ago'

    # -- reconciliation ------------------------------------------------------

    def sync_partition(self, year: str, month: str, force: bool = False,
                       freshness_window: Optional[timedelta] = None) -> SyncResult:
        """
        Synchronize one year/month partition into the cache.

        Workflow:
        1. Skip when the partition was synced within the freshness window
           (unless forced)
        2. Mark the partition as syncing
        3. Page through the object listing under the partition prefix
        4. Parse every filename and group files by event id
        5. Upsert events and files in one transaction
        6. Mark the partition idle with the new sync time

        Args:
            year: Partition year
            month: Partition month
            force: Sync even when the partition is fresh
            freshness_window: Override of the configured interactive window

        Returns:
            SyncResult with event and file counts

        Raises:
            ValueError: If year or month is empty
            ListingError: If the object listing fails (status set to error)
            PersistenceError: If the cache write fails (status set to error)
        """
        if not year or not month:
            raise ValueError("year and month are required")

        window = freshness_window if freshness_window is not None else self.config.sync_freshness_window
        status = self.database_manager.get_sync_status(year, month)

        if not force and status.last_synced_at is not None \
                and datetime.now() - status.last_synced_at < window:
            logger.info(f"Skipping {year}/{month} - synced at {status.last_synced_at.isoformat()}")
            return SyncResult(year=year, month=month, skipped=True, last_synced_at=status.last_synced_at)

        logger.info(f"Starting sync of {year}/{month}")
        started_at = datetime.now()
        self.database_manager.update_sync_status(year, month, SyncState.SYNCING)

        try:
            prefix = self.config.s3.partition_prefix(year, month)
            objects = list(self.s3_manager.list_objects(prefix))
            logger.info(f"Listed {len(objects)} objects under {prefix}")

            events, files, unrecognized = self._build_records(objects, prefix, year, month)

            self.database_manager.upsert_partition(events.values(), files)

            # Log first: the idle transition is what later syncs treat as success
            completed_at = datetime.now()
            self.database_manager.record_sync_run(SyncRun(
                year=year,
                month=month,
                files_synced=len(files),
                events_synced=len(events),
                started_at=started_at,
                completed_at=completed_at
            ))
            self.database_manager.update_sync_status(year, month, SyncState.IDLE, completed_at)
        except Exception as e:
            logger.error(f"Sync of {year}/{month} failed: {e}")
            try:
                self.database_manager.update_sync_status(year, month, SyncState.ERROR)
            except Exception as status_error:
                logger.error(f"Could not record error status for {year}/{month}: {status_error}")
            raise

        if unrecognized:
            logger.warning(f"{unrecognized} file(s) in {year}/{month} did not match a known naming layout")

        logger.info(f"Synced {len(events)} events ({len(files)} files) for {year}/{month} "
                    f"in {(completed_at - started_at).total_seconds():.2f}s")

        return SyncResult(
            year=year,
            month=month,
            events_synced=len(events),
            files_synced=len(files),
            skipped=False,
            last_synced_at=completed_at,
            unrecognized_files=unrecognized
        )

    def _build_records(self, objects, prefix: str, year: str,
                       month: str) -> Tuple[Dict[str, EventRecord], List[FileRecord], int]:
        """Group listed objects into events and file records."""
        events: Dict[str, EventRecord] = {}
        files: List[FileRecord] = []
        unrecognized = 0

        for s3_object in objects:
            filename = posixpath.basename(s3_object.key)
            metadata = parse_filename(filename)
            file_type = classify_file_type(filename)

            if not metadata.recognized:
                unrecognized += 1
                logger.debug(f"Unrecognized filename layout: {filename}")

            event = events.get(metadata.event_id)
            if event is None:
                event = EventRecord(
                    event_id=metadata.event_id,
                    user_id=metadata.user_id,
                    device_id=metadata.device_id,
                    camera_model=metadata.camera_model,
                    timestamp=metadata.timestamp,
                    source_prefix=prefix,
                    year=year,
                    month=month,
                    status=EventStatus.AVAILABLE
                )
                events[metadata.event_id] = event
            event.add_file(file_type)

            files.append(FileRecord(
                key=s3_object.key,
                event_id=metadata.event_id,
                file_type=file_type,
                size=s3_object.size,
                last_modified=s3_object.last_modified
            ))

        return events, files, unrecognized

    def run_auto_sync(self, freshness_window: Optional[timedelta] = None) -> AutoSyncReport:
        """
        Sync every stale partition in the bucket.

        Uses the auto-sync freshness window unless one is given. A failing
        partition is recorded in the report and the pass continues.
        """
        window = freshness_window if freshness_window is not None else self.config.auto_sync_freshness_window
        report = AutoSyncReport()

        for partition in self.discover_partitions():
            needed, reason = self.needs_sync(partition.year, partition.month, window)
            if not needed:
                logger.info(f"  {partition.year}/{partition.month} - {reason}")
                report.skipped.append(partition)
                continue

            logger.info(f"  {partition.year}/{partition.month} - {reason}, syncing")
            try:
                report.synced.append(
                    self.sync_partition(partition.year, partition.month, force=True)
                )
            except Exception as e:
                report.failed[f"{partition.year}/{partition.month}"] = str(e)

        logger.info(f"Auto-sync complete - {report.total_events} events, {report.total_files} files, "
                    f"{len(report.skipped)} skipped, {len(report.failed)} failed")
        return report

    def get_events(self, year: str, month: str,
                   sort: SortColumn = SortColumn.TIMESTAMP,
                   direction: SortDirection = SortDirection.DESC) -> List[EventRecord]:
        return self.database_manager.get_events(year, month, sort, direction)
