"""
Configuration classes for the submission browser.
"""
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional


def _optional_env(name: str) -> Optional[str]:
    """Read an environment variable, treating empty values as unset."""
    value = os.getenv(name, '')
    return value or None


@dataclass
class S3Config:
    """Configuration for the submissions bucket."""
    bucket: str
    base_prefix: str
    region: str = 'us-east-1'
    endpoint: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    session_token: Optional[str] = None

    def __post_init__(self):
        # Partition prefixes are built as base_prefix + year/month/
        if self.base_prefix and not self.base_prefix.endswith('/'):
            self.base_prefix = f"{self.base_prefix}/"

    def partition_prefix(self, year: str, month: str) -> str:
        """Object prefix holding a year/month partition."""
        return f"{self.base_prefix}{year}/{month}/"

    @classmethod
    def from_env(cls, prefix: str = 'SUBMISSIONS') -> 'S3Config':
        """
        Create S3Config from environment variables with given prefix.

        Empty credentials fall back to the boto3 credential chain
        (AWS_ACCESS_KEY_ID, instance profiles, ...).
        """
        return cls(
            bucket=os.getenv(f'{prefix}_S3_BUCKET', 'ml-training-data-vision'),
            base_prefix=os.getenv(f'{prefix}_S3_BASE_PREFIX', 'us-prod/submitted/video/'),
            region=os.getenv(f'{prefix}_S3_REGION') or 'us-east-1',
            endpoint=_optional_env(f'{prefix}_S3_ENDPOINT'),
            access_key=_optional_env(f'{prefix}_S3_ACCESS_KEY'),
            secret_key=_optional_env(f'{prefix}_S3_SECRET_KEY'),
            session_token=_optional_env(f'{prefix}_S3_SESSION_TOKEN')
        )


@dataclass
class BrowserConfig:
    """Main configuration for the submission browser."""
    s3: S3Config
    database_path: str = 'data/submissions.db'
    downloads_dir: str = 'downloads'
    sync_freshness_hours: float = 1.0
    auto_sync_freshness_hours: float = 24.0
    sync_interval: int = 3600
    api_host: str = '0.0.0.0'
    api_port: int = 3001
    frontend_origin: str = 'http://localhost:5173'
    browser_api_url: str = 'http://localhost:3001'

    @property
    def sync_freshness_window(self) -> timedelta:
        """Freshness window used by interactive syncs."""
        return timedelta(hours=self.sync_freshness_hours)

    @property
    def auto_sync_freshness_window(self) -> timedelta:
        """Freshness window used by the batch auto-sync."""
        return timedelta(hours=self.auto_sync_freshness_hours)

    @classmethod
    def from_env(cls) -> 'BrowserConfig':
        """Create BrowserConfig from environment variables."""
        return cls(
            s3=S3Config.from_env('SUBMISSIONS'),
            database_path=os.getenv('DATABASE_PATH', 'data/submissions.db'),
            downloads_dir=os.getenv('DOWNLOADS_DIR', 'downloads'),
            sync_freshness_hours=float(os.getenv('SYNC_FRESHNESS_HOURS', '1')),
            auto_sync_freshness_hours=float(os.getenv('AUTO_SYNC_FRESHNESS_HOURS', '24')),
            sync_interval=int(os.getenv('SYNC_INTERVAL', '3600')),  # Default 1 hour
            api_host=os.getenv('API_HOST', '0.0.0.0'),
            api_port=int(os.getenv('API_PORT', '3001')),
            frontend_origin=os.getenv('FRONTEND_ORIGIN', 'http://localhost:5173'),
            browser_api_url=os.getenv('BROWSER_API_URL', 'http://localhost:3001')
        )
