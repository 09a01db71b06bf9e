"""Business logic for creating, listing and fetching entries."""

import logging
import uuid
from typing import Any, BinaryIO, Final, NamedTuple

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.files.base import File as DjangoFile
from django.db import DatabaseError, IntegrityError, transaction

from server.apps.drive.exceptions import (
    EntryNotFoundError,
    InvalidEntryKindError,
    NameConflictError,
    UpstreamError,
)
from server.apps.drive.infrastructure.metadata import (
    detect_mime_type,
    extract_filename,
    get_content_size,
    validate_entry_name,
)
from server.apps.drive.infrastructure.storage import BlobStore, get_blob_store
from server.apps.drive.logic.hierarchy import (
    check_name_collision,
    coerce_entry_id,
    descendants_of,
    get_owned_entry,
    lock_active_parent,
    resolve_path,
)
from server.apps.drive.logic.quota_operations import (
    get_used_bytes,
    release,
    reserve,
)
from server.apps.drive.models import Entry, EntryKind, EntryQuerySet

# User type for Django's dynamic user model
_User = Any

_DEFAULT_DOWNLOAD_URL_TTL: Final = 3600
_DEFAULT_MAX_UPLOAD_BYTES: Final = 100 * 1024 * 1024

logger = logging.getLogger(__name__)


class UploadResult(NamedTuple):
    """Outcome of a successful upload."""

    entry: Entry
    used_bytes: int


class DownloadLink(NamedTuple):
    """Presigned link to a file's content."""

    url: str
    file_name: str
    expires_in: int


def list_entries(
    owner: _User,
    parent_id: uuid.UUID | str | None = None,
) -> EntryQuerySet:
    """List non-deleted entries directly inside a folder.

    Args:
        owner: Owner of the entries.
        parent_id: Folder to list, None for the root level.

    Returns:
        QuerySet ordered folders first, then by name. Empty for an
        unknown or malformed folder ID.
    """
    if parent_id is not None:
        try:
            parent_id = coerce_entry_id(parent_id)
        except EntryNotFoundError:
            return Entry.objects.none()

    logger.debug('Listing entries of %s under %s', owner.username, parent_id)
    return (
        Entry.objects
        .owned_by(owner)
        .children_of(parent_id)
        .ordered_for_listing()
    )


def list_by_path(owner: _User, folder_path: str) -> EntryQuerySet:
    """List every non-deleted entry below a folder path.

    Args:
        owner: Owner of the entries.
        folder_path: Folder path, e.g. '/Docs'.

    Returns:
        QuerySet of the whole subtree, folders first, then by name.
    """
    normalized = '/' + folder_path.strip('/')
    return descendants_of(owner, normalized).ordered_for_listing()


def search_entries(owner: _User, query: str) -> EntryQuerySet:
    """Search owner's entries by name.

    Args:
        owner: Owner of the entries.
        query: Case-insensitive substring of the name.

    Returns:
        Matching entries from every folder, folders first, then by name.

    Raises:
        ValidationError: If the query is blank.
    """
    query = (query or '').strip()
    if not query:
        raise ValidationError('Search query is required')

    logger.debug('Searching entries of %s for %r', owner.username, query)
    return (
        Entry.objects
        .owned_by(owner)
        .filter(name__icontains=query)
        .ordered_for_listing()
    )


def create_folder(
    owner: _User,
    name: str,
    parent_id: uuid.UUID | str | None = None,
) -> Entry:
    """Create a folder at root level or inside another folder.

    Args:
        owner: Owner of the new folder.
        name: Folder name.
        parent_id: Containing folder, None for the root level.

    Returns:
        Created Entry.

    Raises:
        ValidationError: If the name is invalid.
        EntryNotFoundError: If the parent doesn't exist or gets deleted.
        EntryAccessDeniedError: If another user owns the parent.
        InvalidEntryKindError: If the parent is a file.
        NameConflictError: If a sibling folder has the same name.
    """
    name = validate_entry_name(name)
    path = resolve_path(owner, parent_id, name)
    if parent_id is not None:
        parent_id = coerce_entry_id(parent_id)

    if check_name_collision(owner, parent_id, name, EntryKind.FOLDER):
        raise NameConflictError(
            'A folder with this name already exists in this location',
        )

    try:
        with transaction.atomic():
            lock_active_parent(parent_id)
            folder = Entry.objects.create(
                owner=owner,
                parent_id=parent_id,
                name=name,
                kind=EntryKind.FOLDER,
                path=path,
            )
    except IntegrityError as error:
        # Lost a race against a concurrent create of the same folder
        raise NameConflictError(
            'A folder with this name already exists in this location',
        ) from error

    logger.info(
        'Folder created: %s (ID: %s, owner: %s)',
        path,
        folder.pk,
        owner.username,
    )
    return folder


def upload_file(
    owner: _User,
    content: BinaryIO | DjangoFile,
    name: str | None = None,
    parent_id: uuid.UUID | str | None = None,
    mime_type: str | None = None,
) -> UploadResult:
    """Store content in the blob store and create its File entry.

    Order: validate, claim quota, upload blob, create DB record.
    Quota is claimed before anything touches the blob store. Later
    failures give the quota back; a blob whose DB record could not be
    written is deleted again on a best-effort basis.

    Args:
        owner: Owner of the new file.
        content: File-like object to upload.
        name: File name, defaults to the content's own name.
        parent_id: Containing folder, None for the root level.
        mime_type: MIME type, detected from the name when omitted.

    Returns:
        Created Entry and the owner's updated usage.

    Raises:
        ValidationError: If the name is invalid or content too large.
        EntryNotFoundError: If the parent doesn't exist or gets deleted.
        EntryAccessDeniedError: If another user owns the parent.
        InvalidEntryKindError: If the parent is a file.
        NameConflictError: If a sibling file has the same name.
        QuotaExceededError: If the upload would exceed the ceiling.
        UpstreamError: If the blob store or DB write fails.
    """
    original_name = extract_filename(getattr(content, 'name', None))
    name = validate_entry_name(name or original_name)
    size_bytes = _check_upload_size(content)

    path = resolve_path(owner, parent_id, name)
    if parent_id is not None:
        parent_id = coerce_entry_id(parent_id)

    if check_name_collision(owner, parent_id, name, EntryKind.FILE):
        raise NameConflictError(
            'A file with this name already exists in this location',
        )

    mime_type = mime_type or detect_mime_type(name)

    # Step 1: Claim quota
    reserve(owner, size_bytes)

    # Step 2: Upload to blob store
    blob_store = get_blob_store()
    try:
        blob_key = blob_store.put_blob(owner.pk, content, name, mime_type)
    except Exception as error:
        logger.exception('Blob upload failed for %s, releasing quota', path)
        release(owner, size_bytes)
        raise UpstreamError('Failed to store file content') from error

    # Step 3: Create database record (in transaction)
    try:
        with transaction.atomic():
            lock_active_parent(parent_id)
            entry = Entry.objects.create(
                owner=owner,
                parent_id=parent_id,
                name=name,
                kind=EntryKind.FILE,
                path=path,
                size_bytes=size_bytes,
                blob_key=blob_key,
                mime_type=mime_type,
                original_name=original_name or name,
            )
    except EntryNotFoundError:
        logger.warning('Parent of %s was deleted during upload', path)
        _undo_upload(owner, size_bytes, blob_key, blob_store)
        raise
    except IntegrityError as error:
        _undo_upload(owner, size_bytes, blob_key, blob_store)
        raise NameConflictError(
            'A file with this name already exists in this location',
        ) from error
    except DatabaseError as error:
        logger.exception('Database write failed for %s', path)
        _undo_upload(owner, size_bytes, blob_key, blob_store)
        raise UpstreamError('Failed to save file metadata') from error

    used_bytes = get_used_bytes(owner)
    logger.info(
        'File uploaded: %s (ID: %s, size: %d, used: %d)',
        path,
        entry.pk,
        size_bytes,
        used_bytes,
    )
    return UploadResult(entry=entry, used_bytes=used_bytes)


def get_download_url(owner: _User, entry_id: uuid.UUID | str) -> DownloadLink:
    """Create a presigned download link for a file.

    Args:
        owner: User requesting the download.
        entry_id: ID of the file.

    Returns:
        URL, the name to save the file as, and the link lifetime.

    Raises:
        EntryNotFoundError: If the file doesn't exist or has no content.
        EntryAccessDeniedError: If another user owns the file.
        InvalidEntryKindError: If the entry is a folder.
    """
    entry = get_owned_entry(owner, entry_id)

    if entry.is_folder:
        raise InvalidEntryKindError('Cannot download folders')

    if not entry.blob_key:
        raise EntryNotFoundError(f'File has no stored content: {entry.path}')

    ttl = getattr(settings, 'DRIVE_DOWNLOAD_URL_TTL', _DEFAULT_DOWNLOAD_URL_TTL)
    url = get_blob_store().signed_download_url(entry.blob_key, ttl)
    logger.debug('Download link issued for %s', entry.path)

    return DownloadLink(
        url=url,
        file_name=entry.original_name or entry.name,
        expires_in=ttl,
    )


def _check_upload_size(content: BinaryIO | DjangoFile) -> int:
    """Measure content and enforce the per-upload limit.

    Args:
        content: File-like object to upload.

    Returns:
        Content size in bytes.

    Raises:
        ValidationError: If the content exceeds the limit.
    """
    size_bytes = get_content_size(content)
    limit = getattr(settings, 'DRIVE_MAX_UPLOAD_BYTES', _DEFAULT_MAX_UPLOAD_BYTES)
    if size_bytes > limit:
        raise ValidationError(
            f'File is too large: {size_bytes} bytes (limit: {limit})',
        )
    return size_bytes


def _undo_upload(
    owner: _User,
    size_bytes: int,
    blob_key: str,
    blob_store: BlobStore,
) -> None:
    """Give back quota and content after a failed DB write.

    Args:
        owner: Owner charged for the upload.
        size_bytes: Bytes reserved for the upload.
        blob_key: Key of the uploaded blob.
        blob_store: Storage backend holding the blob.
    """
    try:
        release(owner, size_bytes)
    except Exception:
        # Usage stays high until the next reconcile_quota run
        logger.exception(
            'Failed to release %d bytes for user %s',
            size_bytes,
            owner.username,
        )
    blob_store.rollback_upload(blob_key)
