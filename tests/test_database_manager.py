"""
Tests for the DatabaseManager class.
"""
import sqlite3
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch

from submission_browser.models.data_models import (
    EventRecord,
    EventStatus,
    FileRecord,
    FileType,
    SortColumn,
    SortDirection,
    SyncRun,
    SyncState
)
from submission_browser.services.database_manager import DatabaseManager, PersistenceError


def make_event(event_id, user_id='user', timestamp=None, year='2024', month='01'):
    return EventRecord(
        event_id=event_id,
        user_id=user_id,
        device_id='device',
        camera_model='Cam',
        timestamp=timestamp or datetime(2024, 1, 2, 3, 4, 5),
        source_prefix=f'base/{year}/{month}/',
        year=year,
        month=month
    )


def make_file(key, event_id, file_type=FileType.VIDEO, size=1024, **kwargs):
    return FileRecord(
        key=key,
        event_id=event_id,
        file_type=file_type,
        size=size,
        last_modified=datetime(2024, 1, 3, 10, 0, 0),
        **kwargs
    )


class TestDatabaseManager:
    """Test cases for DatabaseManager."""

    def test_creates_database_directory(self, tmp_path):
        db_path = tmp_path / 'nested' / 'dir' / 'cache.db'
        DatabaseManager(str(db_path))
        assert db_path.exists()

    def test_upsert_partition_and_read_back(self, temp_database):
        temp_database.upsert_partition(
            [make_event('5'), make_event('6')],
            [
                make_file('base/2024/01/u_d_5_Cam_ts.mp4', '5', FileType.VIDEO),
                make_file('base/2024/01/u_d_5_Cam_ts.json', '5', FileType.JSON),
                make_file('base/2024/01/u_d_6_Cam_ts.jpg', '6', FileType.JPG),
            ]
        )

        events = temp_database.get_events('2024', '01', SortColumn.EVENT_ID, SortDirection.ASC)

        assert [e.event_id for e in events] == ['5', '6']
        assert events[0].file_count == 2
        assert events[0].has_video and events[0].has_json
        assert events[0].file_types['jpg'] == 0
        assert [f.key for f in events[0].files] == [
            'base/2024/01/u_d_5_Cam_ts.json',
            'base/2024/01/u_d_5_Cam_ts.mp4'
        ]
        assert events[1].file_count == 1
        assert events[1].file_types['jpg'] == 1
        assert not events[1].has_video

    def test_events_are_filtered_by_partition(self, temp_database):
        temp_database.upsert_partition(
            [make_event('1', month='01'), make_event('2', month='02')],
            [make_file('a', '1'), make_file('b', '2')]
        )

        assert [e.event_id for e in temp_database.get_events('2024', '01')] == ['1']
        assert [e.event_id for e in temp_database.get_events('2024', '02')] == ['2']
        assert temp_database.get_events('2023', '01') == []

    def test_sorting(self, temp_database):
        base = datetime(2024, 1, 1)
        temp_database.upsert_partition(
            [
                make_event('1', user_id='carol', timestamp=base + timedelta(days=2)),
                make_event('2', user_id='alice', timestamp=base),
                make_event('3', user_id='bob', timestamp=base + timedelta(days=1)),
            ],
            [make_file('k1', '1'), make_file('k2', '2'), make_file('k3', '3'), make_file('k4', '3')]
        )

        by_time = temp_database.get_events('2024', '01')
        assert [e.event_id for e in by_time] == ['1', '3', '2']

        by_user = temp_database.get_events('2024', '01', SortColumn.USER_ID, SortDirection.ASC)
        assert [e.user_id for e in by_user] == ['alice', 'bob', 'carol']

        by_count = temp_database.get_events('2024', '01', SortColumn.FILE_COUNT, SortDirection.DESC)
        assert by_count[0].event_id == '3'

    def test_sort_values_accept_enum_strings(self, temp_database):
        temp_database.upsert_partition([make_event('1')], [make_file('k1', '1')])

        events = temp_database.get_events('2024', '01', 'eventId', 'asc')
        assert len(events) == 1

    def test_unknown_sort_column_is_rejected(self, temp_database):
        with pytest.raises(ValueError):
            temp_database.get_events('2024', '01', 'event_id; DROP TABLE events', 'asc')

    def test_event_upsert_keeps_first_metadata_and_overwrites_status(self, temp_database):
        temp_database.upsert_event(make_event('1', user_id='first'))
        temp_database.mark_event_downloaded('1')

        temp_database.upsert_event(make_event('1', user_id='second'))

        event = temp_database.get_event('1')
        assert event.user_id == 'first'
        assert event.status == EventStatus.AVAILABLE

    def test_file_upsert_preserves_download_state(self, temp_database):
        temp_database.upsert_event(make_event('1'))
        temp_database.upsert_file(make_file('k1', '1', size=100))
        temp_database.set_file_downloaded('k1', '/x')

        temp_database.upsert_file(make_file('k1', '1', size=200))

        record = temp_database.get_file('k1')
        assert record.size == 200
        assert record.downloaded is True
        assert record.local_path == '/x'

    def test_clear_event_download(self, temp_database):
        temp_database.upsert_partition([make_event('1')], [make_file('k1', '1')])
        temp_database.set_file_downloaded('k1', '/x')
        temp_database.mark_event_downloaded('1')

        temp_database.clear_event_download('1')

        event = temp_database.get_event('1')
        assert event.status == EventStatus.AVAILABLE
        assert event.files[0].downloaded is False
        assert event.files[0].local_path is None

    def test_get_missing_records(self, temp_database):
        assert temp_database.get_event('missing') is None
        assert temp_database.get_file('missing') is None
        assert temp_database.get_event_files('missing') == []

    def test_sync_status_defaults_to_idle(self, temp_database):
        status = temp_database.get_sync_status('2024', '01')

        assert status.status == SyncState.IDLE
        assert status.last_synced_at is None
        assert status.year_month == '2024-01'

    def test_sync_status_keeps_last_synced_at(self, temp_database):
        synced_at = datetime(2024, 2, 1, 12, 0, 0)
        temp_database.update_sync_status('2024', '01', SyncState.IDLE, synced_at)
        temp_database.update_sync_status('2024', '01', SyncState.SYNCING)

        status = temp_database.get_sync_status('2024', '01')
        assert status.status == SyncState.SYNCING
        assert status.last_synced_at == synced_at

    def test_sync_runs(self, temp_database):
        for day in (1, 2):
            temp_database.record_sync_run(SyncRun(
                year='2024',
                month='01',
                files_synced=10 * day,
                events_synced=day,
                started_at=datetime(2024, 2, day, 12, 0, 0),
                completed_at=datetime(2024, 2, day, 12, 0, 5)
            ))

        runs = temp_database.get_recent_sync_runs()
        assert [r.files_synced for r in runs] == [20, 10]
        assert len(temp_database.get_recent_sync_runs(limit=1)) == 1

    def test_record_counts(self, temp_database):
        temp_database.upsert_partition([make_event('1')], [make_file('k1', '1'), make_file('k2', '1')])
        assert temp_database.get_record_counts() == {'events': 1, 'files': 2}

    def test_upsert_partition_is_atomic(self, temp_database):
        bad_file = make_file('k1', '1')
        bad_file.file_type = None  # .value lookup fails mid-transaction

        with pytest.raises(AttributeError):
            temp_database.upsert_partition([make_event('1')], [bad_file])

        assert temp_database.get_record_counts() == {'events': 0, 'files': 0}

    def test_sqlite_errors_become_persistence_errors(self, temp_database):
        with patch.object(temp_database, '_upsert_event', side_effect=sqlite3.OperationalError('disk I/O error')):
            with pytest.raises(PersistenceError, match='disk I/O error'):
                temp_database.upsert_partition([make_event('1')], [])
