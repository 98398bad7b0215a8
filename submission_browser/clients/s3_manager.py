"""
S3 client manager for listing and reading submission objects.
"""
import time
from dataclasses import dataclass, field
from typing import Iterator, List, BinaryIO, Optional
import boto3
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError
from loguru import logger

from ..models.config import S3Config


class ObjectStoreError(Exception):
    """Raised when an object store call fails."""
    pass


class ListingError(ObjectStoreError):
    """Raised when listing objects or prefixes fails."""
    pass


class S3Object:
    """Represents an S3 object with metadata."""

    def __init__(self, key: str, size: int, last_modified, etag: str = '', storage_class: str = 'STANDARD'):
        self.key = key
        self.size = size
        self.last_modified = last_modified
        self.etag = etag
        self.storage_class = storage_class

    def __repr__(self) -> str:
        return f"S3Object(key={self.key!r}, size={self.size})"


@dataclass
class ListPage:
    """One page of a ListObjectsV2 response."""
    objects: List[S3Object] = field(default_factory=list)
    next_continuation_token: Optional[str] = None
    is_truncated: bool = False


class S3Manager:
    """Manages S3 operations for the submissions bucket."""

    def __init__(self, config: S3Config, client=None):
        """
        Initialize S3Manager with bucket configuration.

        Args:
            config: S3Config for the submissions bucket
            client: Pre-built boto3 S3 client; created from config when omitted
        """
        self.config = config
        self.client = client if client is not None else self._create_s3_client(config)

        logger.info(f"S3Manager initialized for bucket {config.bucket}")

    def _create_s3_client(self, config: S3Config):
        """Create an S3 client from configuration."""
        try:
            client = boto3.client(
                's3',
                endpoint_url=config.endpoint,
                aws_access_key_id=config.access_key,
                aws_secret_access_key=config.secret_key,
                aws_session_token=config.session_token,
                region_name=config.region
            )
            logger.debug(f"Created S3 client for region {config.region}, endpoint: {config.endpoint or 'default'}")
            return client
        except Exception as e:
            logger.error(f"Failed to create S3 client: {e}")
            raise

    def _retry_operation(self, operation, max_retries: int = 3, backoff_factor: float = 1.0):
        """Execute an operation with exponential backoff retry logic."""
        for attempt in range(max_retries):
            try:
                return operation()
            except (ClientError, EndpointConnectionError) as e:
                if attempt == max_retries - 1:
                    logger.error(f"Operation failed after {max_retries} attempts: {e}")
                    raise

                wait_time = backoff_factor * (2 ** attempt)
                logger.warning(f"Operation failed (attempt {attempt + 1}/{max_retries}), retrying in {wait_time}s: {e}")
                time.sleep(wait_time)

    def list_page(self, prefix: str, continuation_token: Optional[str] = None,
                  max_keys: Optional[int] = None) -> ListPage:
        """
        Fetch a single page of objects under a prefix.

        Args:
            prefix: Key prefix to list
            continuation_token: Token returned by the previous page
            max_keys: Page size limit (S3 default when omitted)

        Returns:
            ListPage with the objects and the next continuation token

        Raises:
            ListingError: If the S3 call fails
        """
        params = {'Bucket': self.config.bucket, 'Prefix': prefix}
        if continuation_token:
            params['ContinuationToken'] = continuation_token
        if max_keys:
            params['MaxKeys'] = max_keys

        try:
            response = self.client.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to list objects under {prefix}: {e}")
            raise ListingError(f"Failed to list objects under {prefix}: {e}") from e

        objects = [
            S3Object(
                key=obj['Key'],
                size=obj.get('Size', 0),
                last_modified=obj['LastModified'],
                etag=obj.get('ETag', '').strip('"'),
                storage_class=obj.get('StorageClass', 'STANDARD')
            )
            for obj in response.get('Contents', [])
        ]

        return ListPage(
            objects=objects,
            next_continuation_token=response.get('NextContinuationToken'),
            is_truncated=response.get('IsTruncated', False)
        )

    def list_objects(self, prefix: str) -> Iterator[S3Object]:
        """
        List all objects under a prefix, following continuation tokens.

        Yields:
            S3Object: Objects under the prefix
        """
        continuation_token = None
        page_count = 0

        while True:
            page = self.list_page(prefix, continuation_token)
            page_count += 1
            yield from page.objects

            continuation_token = page.next_continuation_token
            if not continuation_token:
                break

        logger.debug(f"Listed {prefix} in {page_count} page(s)")

    def list_child_prefixes(self, prefix: str) -> List[str]:
        """
        List the immediate child "directories" of a prefix.

        Returns:
            Child names with the parent prefix and trailing slash removed
        """
        children = []
        continuation_token = None

        while True:
            params = {'Bucket': self.config.bucket, 'Prefix': prefix, 'Delimiter': '/'}
            if continuation_token:
                params['ContinuationToken'] = continuation_token

            try:
                response = self.client.list_objects_v2(**params)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Failed to list prefixes under {prefix}: {e}")
                raise ListingError(f"Failed to list prefixes under {prefix}: {e}") from e

            for common_prefix in response.get('CommonPrefixes', []):
                name = common_prefix.get('Prefix', '')[len(prefix):].strip('/')
                if name:
                    children.append(name)

            continuation_token = response.get('NextContinuationToken')
            if not continuation_token:
                break

        return children

    def get_object_stream(self, key: str) -> BinaryIO:
        """
        Get an object as a binary stream.

        Args:
            key: Object key in the bucket

        Returns:
            BinaryIO: Stream of the object data

        Raises:
            ObjectStoreError: If the object cannot be read
        """
        client, bucket = self.client, self.config.bucket

        def _get_operation():
            response = client.get_object(Bucket=bucket, Key=key)
            return response['Body']

        try:
            stream = self._retry_operation(_get_operation)
            logger.debug(f"Retrieved object stream for key: {key}")
            return stream
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to get object stream for key {key}: {e}")
            raise ObjectStoreError(f"Failed to read {key}: {e}") from e

    def test_connection(self) -> bool:
        """
        Test connection to the submissions bucket.

        Returns:
            bool: True if connection successful, False otherwise
        """
        try:
            self.client.head_bucket(Bucket=self.config.bucket)
            logger.info("S3 connection test successful")
            return True
        except Exception as e:
            logger.error(f"S3 connection test failed: {e}")
            return False
