"""
Pytest configuration and fixtures for the submission browser tests.
"""
import os
import pytest
import tempfile
from datetime import datetime, timezone
from unittest.mock import Mock

from submission_browser.clients.s3_manager import S3Manager
from submission_browser.models.config import BrowserConfig, S3Config
from submission_browser.services.database_manager import DatabaseManager
from submission_browser.services.sync_service import SyncService

BASE_PREFIX = 'us-prod/submitted/video/'
LAST_MODIFIED = datetime(2024, 1, 3, 10, 0, 0, tzinfo=timezone.utc)


def s3_contents(*keys, size=1024):
    """Build a ListObjectsV2 'Contents' list for the given keys."""
    return [
        {'Key': key, 'Size': size, 'LastModified': LAST_MODIFIED, 'ETag': '"etag"'}
        for key in keys
    ]


def listing_pages(*pages):
    """
    Build list_objects_v2 responses chained by continuation tokens.

    Each argument is a list of keys making up one page.
    """
    responses = []
    for index, keys in enumerate(pages):
        response = {'Contents': s3_contents(*keys), 'IsTruncated': index < len(pages) - 1}
        if index < len(pages) - 1:
            response['NextContinuationToken'] = f'token-{index + 1}'
        responses.append(response)
    return responses


class FakeListing:
    """Serves list_objects_v2 pages keyed by continuation token."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def __call__(self, **params):
        self.calls.append(params)
        token = params.get('ContinuationToken')
        index = 0 if token is None else int(token.split('-')[1])
        return self.responses[index]


@pytest.fixture
def s3_config():
    """Create a test S3 configuration."""
    return S3Config(bucket='test-bucket', base_prefix=BASE_PREFIX)


@pytest.fixture
def browser_config(s3_config, tmp_path):
    """Create a test browser configuration rooted in a temp directory."""
    return BrowserConfig(
        s3=s3_config,
        database_path=str(tmp_path / 'cache.db'),
        downloads_dir=str(tmp_path / 'downloads')
    )


@pytest.fixture
def temp_database():
    """Pytest fixture for temporary database."""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as tmp_file:
        db_path = tmp_file.name

    db_manager = DatabaseManager(db_path)
    yield db_manager

    # Cleanup
    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def s3_client():
    """Mocked boto3 S3 client."""
    return Mock()


@pytest.fixture
def s3_manager(s3_config, s3_client):
    """S3Manager backed by the mocked client."""
    return S3Manager(s3_config, client=s3_client)


@pytest.fixture
def sync_service(browser_config, s3_manager, temp_database):
    """SyncService wired to the mocked S3 client and a temporary database."""
    return SyncService(browser_config, s3_manager, temp_database)
