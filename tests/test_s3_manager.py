"""
Tests for S3Manager class.
"""
import pytest
from unittest.mock import Mock, patch
from io import BytesIO
from datetime import datetime
from botocore.exceptions import ClientError, EndpointConnectionError

from submission_browser.clients.s3_manager import (
    ListingError,
    ObjectStoreError,
    S3Manager,
    S3Object
)
from submission_browser.models.config import S3Config

from conftest import BASE_PREFIX, FakeListing, listing_pages


class TestS3Manager:
    """Test cases for S3Manager."""

    def test_initialization(self, s3_config):
        """Test S3Manager initialization builds a boto3 client."""
        with patch('submission_browser.clients.s3_manager.boto3.client') as mock_boto3:
            mock_boto3.return_value = Mock()

            manager = S3Manager(s3_config)

            assert manager.config == s3_config
            assert mock_boto3.call_count == 1
            kwargs = mock_boto3.call_args.kwargs
            assert kwargs['region_name'] == 'us-east-1'
            assert kwargs['aws_access_key_id'] is None

    def test_injected_client_is_used(self, s3_config):
        client = Mock()
        with patch('submission_browser.clients.s3_manager.boto3.client') as mock_boto3:
            manager = S3Manager(s3_config, client=client)

            assert manager.client is client
            mock_boto3.assert_not_called()

    def test_list_page(self, s3_manager, s3_client):
        s3_client.list_objects_v2.return_value = listing_pages(['a.mp4', 'b.json'], ['c.jpg'])[0]

        page = s3_manager.list_page('prefix/', continuation_token='tok', max_keys=50)

        assert [o.key for o in page.objects] == ['a.mp4', 'b.json']
        assert page.objects[0].etag == 'etag'
        assert page.next_continuation_token == 'token-1'
        assert page.is_truncated is True
        s3_client.list_objects_v2.assert_called_once_with(
            Bucket='test-bucket', Prefix='prefix/', ContinuationToken='tok', MaxKeys=50
        )

    def test_list_page_empty(self, s3_manager, s3_client):
        s3_client.list_objects_v2.return_value = {'KeyCount': 0}

        page = s3_manager.list_page('prefix/')

        assert page.objects == []
        assert page.next_continuation_token is None

    def test_list_objects_follows_continuation_tokens(self, s3_manager, s3_client):
        listing = FakeListing(listing_pages(['a'], ['b', 'c'], ['d']))
        s3_client.list_objects_v2.side_effect = listing

        keys = [o.key for o in s3_manager.list_objects('prefix/')]

        assert keys == ['a', 'b', 'c', 'd']
        assert [c.get('ContinuationToken') for c in listing.calls] == [None, 'token-1', 'token-2']

    def test_list_objects_failure_raises_listing_error(self, s3_manager, s3_client):
        s3_client.list_objects_v2.side_effect = ClientError(
            {'Error': {'Code': 'AccessDenied', 'Message': 'denied'}}, 'ListObjectsV2'
        )

        with pytest.raises(ListingError, match='prefix/'):
            list(s3_manager.list_objects('prefix/'))

    def test_list_child_prefixes(self, s3_manager, s3_client):
        s3_client.list_objects_v2.side_effect = [
            {
                'CommonPrefixes': [{'Prefix': f'{BASE_PREFIX}2023/'}],
                'NextContinuationToken': 'more'
            },
            {'CommonPrefixes': [{'Prefix': f'{BASE_PREFIX}2024/'}]},
        ]

        assert s3_manager.list_child_prefixes(BASE_PREFIX) == ['2023', '2024']
        second_call = s3_client.list_objects_v2.call_args_list[1].kwargs
        assert second_call['Delimiter'] == '/'
        assert second_call['ContinuationToken'] == 'more'

    def test_list_child_prefixes_connection_error(self, s3_manager, s3_client):
        s3_client.list_objects_v2.side_effect = EndpointConnectionError(endpoint_url='http://s3')

        with pytest.raises(ListingError):
            s3_manager.list_child_prefixes(BASE_PREFIX)

    def test_get_object_stream(self, s3_manager, s3_client):
        """Test getting object stream."""
        mock_response = {'Body': BytesIO(b'test content')}
        s3_client.get_object.return_value = mock_response

        stream = s3_manager.get_object_stream('test-key')

        assert stream == mock_response['Body']
        s3_client.get_object.assert_called_once_with(Bucket='test-bucket', Key='test-key')

    def test_get_object_stream_failure(self, s3_manager, s3_client):
        s3_client.get_object.side_effect = ClientError({'Error': {'Code': 'NoSuchKey'}}, 'GetObject')

        with patch('time.sleep'):
            with pytest.raises(ObjectStoreError):
                s3_manager.get_object_stream('missing')

        assert s3_client.get_object.call_count == 3

    def test_retry_operation_eventual_success(self, s3_manager):
        """Test retry operation succeeds after failures."""
        operation = Mock()
        operation.side_effect = [
            ClientError({'Error': {'Code': '500'}}, 'TestOperation'),
            'success'
        ]

        with patch('time.sleep'):  # Mock sleep to speed up test
            result = s3_manager._retry_operation(operation, max_retries=3)

        assert result == 'success'
        assert operation.call_count == 2

    def test_test_connection_success(self, s3_manager, s3_client):
        s3_client.head_bucket.return_value = {}

        assert s3_manager.test_connection() is True

    def test_test_connection_failure(self, s3_manager, s3_client):
        s3_client.head_bucket.side_effect = Exception('Connection failed')

        assert s3_manager.test_connection() is False


class TestS3Object:
    """Test cases for S3Object."""

    def test_s3_object_creation(self):
        now = datetime.now()
        obj = S3Object(key='test-key', size=1024, last_modified=now, etag='abc123')

        assert obj.key == 'test-key'
        assert obj.size == 1024
        assert obj.last_modified == now
        assert obj.storage_class == 'STANDARD'


class TestS3Config:
    """Test cases for S3Config."""

    def test_partition_prefix_adds_separator(self):
        config = S3Config(bucket='b', base_prefix='us-prod/submitted/video')

        assert config.partition_prefix('2024', '01') == 'us-prod/submitted/video/2024/01/'
