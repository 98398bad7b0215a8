# Client packages
from .s3_manager import S3Manager, S3Object, ListPage, ObjectStoreError, ListingError
from .browser_api import BrowserAPIClient, BrowserAPIError, download_batch

__all__ = [
    'S3Manager',
    'S3Object',
    'ListPage',
    'ObjectStoreError',
    'ListingError',
    'BrowserAPIClient',
    'BrowserAPIError',
    'download_batch'
]
