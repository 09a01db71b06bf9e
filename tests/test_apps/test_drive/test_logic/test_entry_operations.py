"""Tests for entry operations business logic."""

import uuid
from io import BytesIO

import pytest
from django.core.exceptions import ValidationError
from django.core.files.base import ContentFile
from django.db import DatabaseError

from server.apps.drive.exceptions import (
    EntryAccessDeniedError,
    EntryNotFoundError,
    InvalidEntryKindError,
    NameConflictError,
    QuotaExceededError,
    UpstreamError,
)
from server.apps.drive.infrastructure.storage import BlobStore
from server.apps.drive.logic import entry_operations
from server.apps.drive.logic.entry_operations import (
    create_folder,
    get_download_url,
    list_by_path,
    list_entries,
    search_entries,
    upload_file,
)
from server.apps.drive.logic.quota_operations import get_used_bytes
from server.apps.drive.models import Entry, EntryKind


def _names(queryset):
    return [entry.name for entry in queryset]


@pytest.mark.django_db
class TestCreateFolder:
    """Tests for create_folder."""

    def test_create_root_folder(self, user):
        """Test a root-level folder gets a root path."""
        folder = create_folder(user, 'Docs')

        assert folder.path == '/Docs'
        assert folder.kind == EntryKind.FOLDER
        assert folder.parent is None
        assert folder.size_bytes == 0

    def test_create_nested_folder(self, user):
        """Test a nested folder extends the parent path."""
        docs = create_folder(user, 'Docs')

        sub = create_folder(user, 'Reports', parent_id=str(docs.pk))

        assert sub.path == '/Docs/Reports'
        assert sub.parent_id == docs.pk

    def test_duplicate_folder(self, user):
        """Test a sibling folder with the same name is a conflict."""
        create_folder(user, 'Docs')

        with pytest.raises(NameConflictError):
            create_folder(user, 'Docs')

    def test_name_is_trimmed(self, user):
        """Test surrounding whitespace is removed from names."""
        folder = create_folder(user, '  Docs  ')

        assert folder.name == 'Docs'

    @pytest.mark.parametrize('name', ['', '..', 'a/b'])
    def test_invalid_name(self, user, name):
        """Test invalid names are rejected before anything is written."""
        with pytest.raises(ValidationError):
            create_folder(user, name)

        assert Entry.objects.count() == 0

    def test_missing_parent(self, user):
        """Test creating inside an unknown folder."""
        with pytest.raises(EntryNotFoundError):
            create_folder(user, 'Docs', parent_id=uuid.uuid4())

    def test_file_parent(self, user, mock_s3, sample_file_content):
        """Test creating inside a file."""
        file_entry = upload_file(user, sample_file_content).entry

        with pytest.raises(InvalidEntryKindError):
            create_folder(user, 'Docs', parent_id=file_entry.pk)

    def test_foreign_parent(self, user, other_user):
        """Test creating inside another user's folder."""
        foreign = create_folder(other_user, 'Private')

        with pytest.raises(EntryAccessDeniedError):
            create_folder(user, 'Mine', parent_id=foreign.pk)

    def test_same_name_for_different_users(self, user, other_user):
        """Test folder names are scoped per owner."""
        create_folder(user, 'Docs')

        assert create_folder(other_user, 'Docs').path == '/Docs'


@pytest.mark.django_db
class TestUploadFile:
    """Tests for upload_file."""

    def test_upload_success(self, user, mock_s3, sample_file_content):
        """Test upload stores content, metadata and usage."""
        result = upload_file(user, sample_file_content)

        entry = result.entry
        assert entry.name == 'test.txt'
        assert entry.path == '/test.txt'
        assert entry.kind == EntryKind.FILE
        assert entry.size_bytes == 17
        assert entry.mime_type == 'text/plain'
        assert entry.original_name == 'test.txt'
        assert entry.blob_key.startswith(f'{user.pk}/')
        assert result.used_bytes == 17
        assert get_used_bytes(user) == 17

        stored = mock_s3.Object('cloud-drive', entry.blob_key).get()
        assert stored['Body'].read() == b'test file content'

    def test_upload_into_folder(self, user, mock_s3, sample_file_content):
        """Test uploading into a folder."""
        docs = create_folder(user, 'Docs')

        entry = upload_file(
            user,
            sample_file_content,
            name='notes.txt',
            parent_id=docs.pk,
        ).entry

        assert entry.path == '/Docs/notes.txt'
        assert entry.parent_id == docs.pk
        assert entry.original_name == 'test.txt'

    def test_upload_plain_stream(self, user, mock_s3):
        """Test streams without a name need an explicit name."""
        entry = upload_file(
            user,
            BytesIO(b'{"a": 1}'),
            name='data.json',
        ).entry

        assert entry.size_bytes == 8
        assert entry.mime_type == 'application/json'
        assert entry.original_name == 'data.json'

    def test_upload_explicit_mime_type(self, user, mock_s3):
        """Test a supplied MIME type wins over detection."""
        entry = upload_file(
            user,
            ContentFile(b'x', name='blob.bin'),
            mime_type='image/png',
        ).entry

        assert entry.mime_type == 'image/png'

    def test_upload_without_name(self, user, mock_s3):
        """Test content without any name is rejected."""
        with pytest.raises(ValidationError):
            upload_file(user, BytesIO(b'x'))

    def test_upload_too_large(self, user, mock_s3, settings):
        """Test the per-upload limit is enforced before reserving."""
        settings.DRIVE_MAX_UPLOAD_BYTES = 10

        with pytest.raises(ValidationError, match='too large'):
            upload_file(user, ContentFile(b'x' * 11, name='big.bin'))

        assert get_used_bytes(user) == 0

    def test_upload_duplicate_name(self, user, mock_s3):
        """Test a sibling file with the same name is a conflict."""
        upload_file(user, ContentFile(b'first', name='a.txt'))

        with pytest.raises(NameConflictError):
            upload_file(user, ContentFile(b'second', name='a.txt'))

        assert get_used_bytes(user) == 5
        assert Entry.objects.files().count() == 1

    def test_file_and_folder_share_name(self, user, mock_s3):
        """Test a file and a folder may have the same name and path."""
        create_folder(user, 'Docs')

        entry = upload_file(user, ContentFile(b'x', name='Docs')).entry

        assert entry.path == '/Docs'
        assert Entry.objects.filter(path='/Docs').count() == 2

    def test_quota_exceeded(self, user, mock_s3, settings):
        """Test over-quota uploads store nothing and charge nothing."""
        settings.DRIVE_CAPACITY_BYTES = 20
        upload_file(user, ContentFile(b'x' * 15, name='a.txt'))

        with pytest.raises(QuotaExceededError):
            upload_file(user, ContentFile(b'x' * 6, name='b.txt'))

        assert get_used_bytes(user) == 15
        assert not Entry.objects.filter(name='b.txt').exists()
        assert len(list(mock_s3.Bucket('cloud-drive').objects.all())) == 1

    def test_missing_parent(self, user, mock_s3, sample_file_content):
        """Test uploading into an unknown folder."""
        with pytest.raises(EntryNotFoundError):
            upload_file(user, sample_file_content, parent_id=uuid.uuid4())

        assert get_used_bytes(user) == 0

    def test_blob_failure_releases_quota(
        self,
        user,
        monkeypatch,
        sample_file_content,
    ):
        """Test a failed blob upload gives the reservation back."""
        def failing_put(self, owner_id, content, name, content_type):
            raise ConnectionError('storage unavailable')

        monkeypatch.setattr(BlobStore, 'put_blob', failing_put)

        with pytest.raises(UpstreamError) as exc_info:
            upload_file(user, sample_file_content)

        assert exc_info.value.error_kind == 'upstream_failure'
        assert get_used_bytes(user) == 0
        assert Entry.objects.count() == 0

    def test_db_failure_rolls_back(
        self,
        user,
        mock_s3,
        monkeypatch,
        sample_file_content,
    ):
        """Test a failed metadata write releases quota and the blob."""
        def failing_create(*args, **kwargs):
            raise DatabaseError('database unavailable')

        monkeypatch.setattr(Entry.objects, 'create', failing_create)

        with pytest.raises(UpstreamError):
            upload_file(user, sample_file_content)

        assert get_used_bytes(user) == 0
        assert not list(mock_s3.Bucket('cloud-drive').objects.all())


@pytest.mark.django_db
class TestListEntries:
    """Tests for list_entries and list_by_path."""

    def test_root_listing_folders_first(self, user, mock_s3):
        """Test root listing puts folders first, then sorts by name."""
        upload_file(user, ContentFile(b'a', name='alpha.txt'))
        create_folder(user, 'Zeta')
        create_folder(user, 'Beta')

        assert _names(list_entries(user)) == ['Beta', 'Zeta', 'alpha.txt']

    def test_folder_listing_is_direct_children(self, user):
        """Test only direct children are listed."""
        docs = create_folder(user, 'Docs')
        sub = create_folder(user, 'Sub', parent_id=docs.pk)
        create_folder(user, 'Deep', parent_id=sub.pk)

        assert _names(list_entries(user, docs.pk)) == ['Sub']

    def test_listing_is_per_owner(self, user, other_user):
        """Test other users' entries never show up."""
        create_folder(other_user, 'Theirs')

        assert not list_entries(user).exists()

    def test_listing_hides_deleted(self, user, make_entry):
        """Test deleted entries are not listed."""
        make_entry(user, '/Gone', is_deleted=True)

        assert not list_entries(user).exists()

    def test_unknown_parent_is_empty(self, user):
        """Test unknown and malformed folder IDs list nothing."""
        create_folder(user, 'Docs')

        assert not list_entries(user, uuid.uuid4()).exists()
        assert not list_entries(user, 'not-a-uuid').exists()

    def test_list_by_path(self, user):
        """Test the whole subtree is listed by path."""
        docs = create_folder(user, 'Docs')
        sub = create_folder(user, 'Sub', parent_id=docs.pk)
        create_folder(user, 'Deep', parent_id=sub.pk)
        create_folder(user, 'Docs2')

        assert _names(list_by_path(user, '/Docs/')) == ['Deep', 'Sub']


@pytest.mark.django_db
class TestSearchEntries:
    """Tests for search_entries."""

    def test_search_is_case_insensitive(self, user, mock_s3):
        """Test matches on any part of the name, any case."""
        docs = create_folder(user, 'Reports')
        upload_file(
            user,
            ContentFile(b'x', name='q1-report.pdf'),
            parent_id=docs.pk,
        )
        upload_file(user, ContentFile(b'x', name='photo.jpg'))

        assert _names(search_entries(user, 'REPORT')) == [
            'Reports',
            'q1-report.pdf',
        ]

    def test_search_is_per_owner(self, user, other_user):
        """Test other users' entries are not searched."""
        create_folder(other_user, 'Reports')

        assert not search_entries(user, 'report').exists()

    def test_search_hides_deleted(self, user, make_entry):
        """Test deleted entries are not found."""
        make_entry(user, '/Reports', is_deleted=True)

        assert not search_entries(user, 'report').exists()

    @pytest.mark.parametrize('query', ['', '   ', None])
    def test_blank_query(self, user, query):
        """Test a blank query is rejected."""
        with pytest.raises(ValidationError):
            search_entries(user, query)


@pytest.mark.django_db
class TestGetDownloadUrl:
    """Tests for get_download_url."""

    def test_download_link(self, user, mock_s3, sample_file_content):
        """Test a presigned link is issued for the file."""
        entry = upload_file(
            user,
            sample_file_content,
            name='renamed.txt',
        ).entry

        link = get_download_url(user, entry.pk)

        assert 'cloud-drive' in link.url
        assert link.file_name == 'test.txt'
        assert link.expires_in == 3600

    def test_custom_ttl(self, user, mock_s3, settings, sample_file_content):
        """Test link lifetime comes from settings."""
        settings.DRIVE_DOWNLOAD_URL_TTL = 60
        entry = upload_file(user, sample_file_content).entry

        assert get_download_url(user, entry.pk).expires_in == 60

    def test_folder_cannot_be_downloaded(self, user):
        """Test folders have no download link."""
        folder = create_folder(user, 'Docs')

        with pytest.raises(InvalidEntryKindError):
            get_download_url(user, folder.pk)

    def test_foreign_file(self, user, other_user, mock_s3, sample_file_content):
        """Test another user's file cannot be downloaded."""
        entry = upload_file(other_user, sample_file_content).entry

        with pytest.raises(EntryAccessDeniedError):
            get_download_url(user, entry.pk)

    def test_file_without_content(self, user, make_entry):
        """Test files without a blob are reported missing."""
        entry = make_entry(user, '/a.txt', kind=EntryKind.FILE)

        with pytest.raises(EntryNotFoundError):
            get_download_url(user, entry.pk)

    def test_unknown_file(self, user):
        """Test unknown IDs are reported missing."""
        with pytest.raises(EntryNotFoundError):
            get_download_url(user, uuid.uuid4())


def _skip_collision_check(monkeypatch):
    monkeypatch.setattr(
        entry_operations,
        'check_name_collision',
        lambda *args, **kwargs: False,
    )


@pytest.mark.django_db
class TestConcurrentCreates:
    """Tests for writes racing past the sibling name check."""

    def test_root_folder_race(self, user, monkeypatch):
        """Test the database rejects a second root folder of one name."""
        create_folder(user, 'Docs')
        _skip_collision_check(monkeypatch)

        with pytest.raises(NameConflictError):
            create_folder(user, 'Docs')

        assert Entry.objects.filter(path='/Docs').count() == 1

    def test_nested_folder_race(self, user, monkeypatch):
        """Test the database rejects a second sibling folder of one name."""
        docs = create_folder(user, 'Docs')
        create_folder(user, 'Sub', parent_id=docs.pk)
        _skip_collision_check(monkeypatch)

        with pytest.raises(NameConflictError):
            create_folder(user, 'Sub', parent_id=docs.pk)

    def test_root_file_race(self, user, mock_s3, monkeypatch):
        """Test a losing root upload is rolled back completely."""
        upload_file(user, ContentFile(b'first', name='a.txt'))
        _skip_collision_check(monkeypatch)

        with pytest.raises(NameConflictError):
            upload_file(user, ContentFile(b'second', name='a.txt'))

        assert get_used_bytes(user) == 5
        assert Entry.objects.files().count() == 1
        assert len(list(mock_s3.Bucket('cloud-drive').objects.all())) == 1


def _delete_parent_after_resolving(monkeypatch):
    real_resolve_path = entry_operations.resolve_path

    def resolve_then_delete(owner, parent_id, name):
        path = real_resolve_path(owner, parent_id, name)
        Entry.objects.filter(pk=parent_id).update(is_deleted=True)
        return path

    monkeypatch.setattr(entry_operations, 'resolve_path', resolve_then_delete)


@pytest.mark.django_db
class TestParentDeletedDuringCreate:
    """Tests for a parent folder deleted between lookup and insert."""

    def test_upload_refused(self, user, mock_s3, monkeypatch):
        """Test the upload is undone instead of landing in a deleted folder."""
        docs = create_folder(user, 'Docs')
        _delete_parent_after_resolving(monkeypatch)

        with pytest.raises(EntryNotFoundError):
            upload_file(
                user,
                ContentFile(b'x' * 10, name='a.txt'),
                parent_id=docs.pk,
            )

        assert get_used_bytes(user) == 0
        assert not Entry.all_objects.filter(name='a.txt').exists()
        assert not list(mock_s3.Bucket('cloud-drive').objects.all())

    def test_folder_refused(self, user, monkeypatch):
        """Test no folder is created inside a deleted folder."""
        docs = create_folder(user, 'Docs')
        _delete_parent_after_resolving(monkeypatch)

        with pytest.raises(EntryNotFoundError):
            create_folder(user, 'Sub', parent_id=docs.pk)

        assert not Entry.all_objects.filter(name='Sub').exists()
