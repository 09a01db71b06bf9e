"""Shared fixtures for drive app tests."""

import boto3
import pytest
from django.contrib.auth import get_user_model
from django.core.files.base import ContentFile
from moto import mock_aws

from server.apps.drive.models import Entry, EntryKind

User = get_user_model()


@pytest.fixture
def user(db):
    """Create test user.

    Returns:
        User instance for testing.
    """
    return User.objects.create_user(
        username='testuser',
        password='testpass123',
        email='test@example.com',
    )


@pytest.fixture
def other_user(db):
    """Create second test user for isolation tests.

    Returns:
        Second user instance.
    """
    return User.objects.create_user(
        username='otheruser',
        password='testpass123',
        email='other@example.com',
    )


@pytest.fixture
def mock_s3():
    """Mock S3 service with cloud-drive bucket.

    Yields:
        boto3 S3 resource with cloud-drive bucket created.
    """
    with mock_aws():
        conn = boto3.resource('s3', region_name='us-east-1')
        conn.create_bucket(Bucket='cloud-drive')

        yield conn


@pytest.fixture
def sample_file_content():
    """Sample file content for testing.

    Returns:
        ContentFile with test data.
    """
    return ContentFile(b'test file content', name='test.txt')


@pytest.fixture
def make_entry():
    """Factory writing entries straight to the database.

    Bypasses the quota ledger and the blob store, for tests that only
    need rows to exist.

    Returns:
        Callable creating an Entry.
    """
    def factory(owner, path, kind=EntryKind.FOLDER, parent=None, **fields):
        return Entry.objects.create(
            owner=owner,
            parent=parent,
            name=path.rsplit('/', 1)[-1],
            kind=kind,
            path=path,
            **fields,
        )
    return factory
