"""
Tests for the DownloadManager class.
"""
import gzip
import json
import pytest
from io import BytesIO

from botocore.exceptions import ClientError
from unittest.mock import patch

from submission_browser.clients.s3_manager import ObjectStoreError
from submission_browser.models.data_models import EventStatus
from submission_browser.services.download_manager import (
    DownloadManager,
    EventNotFoundError,
    local_filename
)

from conftest import BASE_PREFIX, FakeListing, listing_pages

PREFIX = f'{BASE_PREFIX}2024/01/'
VIDEO_KEY = f'{PREFIX}alice_phone_5_CamA_2024-01-02-03-04-05.mp4'
JSON_GZ_KEY = f'{PREFIX}alice_phone_5_CamA_2024-01-02-03-04-05.json.gz'
PAYLOAD = {'frames': 120, 'camera': 'CamA'}


@pytest.fixture
def download_manager(s3_manager, temp_database, tmp_path):
    return DownloadManager(s3_manager, temp_database, str(tmp_path / 'downloads'))


@pytest.fixture
def synced_event(sync_service, s3_client):
    """Sync a partition holding event 5 with a video and a compressed JSON file."""
    s3_client.list_objects_v2.side_effect = FakeListing(listing_pages([VIDEO_KEY, JSON_GZ_KEY]))
    sync_service.sync_partition('2024', '01')

    bodies = {
        VIDEO_KEY: b'\x00\x00\x00\x18ftypmp42',
        JSON_GZ_KEY: gzip.compress(json.dumps(PAYLOAD).encode('utf-8')),
    }
    s3_client.get_object.side_effect = lambda Bucket, Key: {'Body': BytesIO(bodies[Key])}
    return '5'


class TestDownloadManager:
    """Test cases for DownloadManager."""

    def test_download_event(self, download_manager, synced_event, temp_database):
        result = download_manager.download_event('2024', '01', synced_event)

        event_dir = download_manager.event_dir('2024', '01', '5')
        assert result.path == str(event_dir)
        assert sorted(result.downloaded_files) == [
            'alice_phone_5_CamA_2024-01-02-03-04-05.json',
            'alice_phone_5_CamA_2024-01-02-03-04-05.mp4',
        ]

        decompressed = event_dir / 'alice_phone_5_CamA_2024-01-02-03-04-05.json'
        assert json.loads(decompressed.read_text()) == PAYLOAD
        assert (event_dir / 'alice_phone_5_CamA_2024-01-02-03-04-05.mp4').read_bytes().endswith(b'mp42')

        event = temp_database.get_event('5')
        assert event.status == EventStatus.DOWNLOADED
        assert all(f.downloaded for f in event.files)
        assert temp_database.get_file(JSON_GZ_KEY).local_path == str(decompressed)

    def test_download_unknown_event(self, download_manager):
        with pytest.raises(EventNotFoundError):
            download_manager.download_event('2024', '01', '999')

    def test_download_from_other_partition_is_rejected(self, download_manager, synced_event, s3_client):
        with pytest.raises(EventNotFoundError):
            download_manager.download_event('2024', '02', synced_event)

        assert not (download_manager.downloads_dir / '2024' / '02').exists()
        s3_client.get_object.assert_not_called()

    def test_download_failure_propagates(self, download_manager, synced_event, s3_client, temp_database):
        s3_client.get_object.side_effect = ClientError({'Error': {'Code': 'AccessDenied'}}, 'GetObject')

        with patch('time.sleep'):
            with pytest.raises(ObjectStoreError):
                download_manager.download_event('2024', '01', synced_event)

        assert temp_database.get_event('5').status == EventStatus.AVAILABLE

    def test_download_survives_resync(self, download_manager, synced_event, sync_service, temp_database):
        download_manager.download_event('2024', '01', synced_event)

        sync_service.sync_partition('2024', '01', force=True)

        assert temp_database.get_file(VIDEO_KEY).downloaded is True

    def test_download_status(self, download_manager, synced_event):
        assert download_manager.get_download_status('2024', '01', '5') == {'downloaded': False, 'files': []}

        download_manager.download_event('2024', '01', synced_event)
        status = download_manager.get_download_status('2024', '01', '5')

        assert status['downloaded'] is True
        assert {f['type'] for f in status['files']} == {'video', 'json'}

    def test_delete_download(self, download_manager, synced_event, temp_database):
        download_manager.download_event('2024', '01', synced_event)

        assert download_manager.delete_download('2024', '01', '5') is True
        assert not download_manager.event_dir('2024', '01', '5').exists()
        assert temp_database.get_event('5').status == EventStatus.AVAILABLE
        assert temp_database.get_file(VIDEO_KEY).downloaded is False

        assert download_manager.delete_download('2024', '01', '5') is False

    def test_resolve_local_file(self, download_manager, synced_event):
        download_manager.download_event('2024', '01', synced_event)

        path = download_manager.resolve_local_file(
            '2024', '01', '5', 'alice_phone_5_CamA_2024-01-02-03-04-05.mp4'
        )
        assert path.is_file()

        with pytest.raises(FileNotFoundError):
            download_manager.resolve_local_file('2024', '01', '5', 'missing.mp4')

    def test_path_traversal_is_rejected(self, download_manager):
        with pytest.raises(ValueError):
            download_manager.resolve_local_file('2024', '01', '5', '../../../../etc/passwd')
        with pytest.raises(ValueError):
            download_manager.event_dir('..', '..', '..')


def test_local_filename():
    assert local_filename('a.json.gz') == 'a.json'
    assert local_filename('a.JSON.GZ') == 'a.JSON'
    assert local_filename('a.mp4') == 'a.mp4'
