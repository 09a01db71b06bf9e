"""Business logic for soft delete of entries and folder subtrees."""

import logging
import uuid
from datetime import datetime
from typing import Any

from django.db import transaction
from django.utils import timezone

from server.apps.drive.exceptions import EntryNotFoundError
from server.apps.drive.infrastructure.storage import get_blob_store
from server.apps.drive.logic.hierarchy import get_owned_entry
from server.apps.drive.logic.quota_operations import release
from server.apps.drive.models import Entry, EntryKind

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)


def delete_entry(owner: _User, entry_id: uuid.UUID | str) -> int:
    """Soft delete a file, or a folder together with its whole subtree.

    Steps run in a fixed order:
    1. Mark the target and its descendants deleted (metadata is
       authoritative from here on).
    2. Delete blobs of every file in scope, best effort.
    3. Release the quota of every file in scope, once.

    A crash between steps leaves entries deleted but usage too high,
    which blocks uploads rather than overselling capacity.

    Args:
        owner: User requesting the delete.
        entry_id: ID of the file or folder.

    Returns:
        Owner's used bytes after the delete.

    Raises:
        EntryNotFoundError: If the entry doesn't exist or is deleted.
        EntryAccessDeniedError: If another user owns the entry.
    """
    entry = get_owned_entry(owner, entry_id)
    deleted_at = timezone.now()

    logger.info(
        'Deleting %s: %s (ID: %s)',
        entry.kind,
        entry.path,
        entry.pk,
    )

    scope = _mark_deleted(entry, deleted_at)
    files = [item for item in scope if item.kind == EntryKind.FILE]

    _delete_blobs(files)

    released = sum(item.size_bytes for item in files)
    used_bytes = release(owner, released)

    logger.info(
        'Deleted %s: %d entries, %d bytes released (used: %d)',
        entry.path,
        len(scope),
        released,
        used_bytes,
    )
    return used_bytes


def _mark_deleted(entry: Entry, deleted_at: datetime) -> list[Entry]:
    """Mark an entry and its descendants deleted.

    Every row is stamped with the same ``deleted_at``, which is then
    used to read back exactly the rows this call marked. A concurrent
    delete of an overlapping subtree therefore never gets its entries
    counted twice.

    Args:
        entry: Entry to delete.
        deleted_at: Deletion timestamp for this request.

    Returns:
        Entries marked by this call, target first.

    Raises:
        EntryNotFoundError: If a concurrent request deleted the target.
    """
    with transaction.atomic():
        marked = Entry.objects.filter(pk=entry.pk).update(
            is_deleted=True,
            deleted_at=deleted_at,
        )
        if marked == 0:
            raise EntryNotFoundError(f'Entry not found: {entry.pk}')

        if not entry.is_folder:
            entry.is_deleted = True
            entry.deleted_at = deleted_at
            return [entry]

        descendants = Entry.objects.owned_by(entry.owner_id).under_path(
            entry.path,
        )
        count = descendants.update(is_deleted=True, deleted_at=deleted_at)

    logger.debug('Marked %d descendants of %s deleted', count, entry.path)

    entry.is_deleted = True
    entry.deleted_at = deleted_at
    marked_descendants = Entry.all_objects.owned_by(
        entry.owner_id,
    ).under_path(entry.path).filter(deleted_at=deleted_at)
    return [entry, *marked_descendants]


def _delete_blobs(files: list[Entry]) -> None:
    """Delete stored content of deleted files, best effort.

    A failure is logged and skipped: the entries are already deleted
    and the blob is left orphaned.

    Args:
        files: Deleted file entries.
    """
    blob_store = get_blob_store()
    for file_entry in files:
        if not file_entry.blob_key:
            continue
        try:
            blob_store.delete(file_entry.blob_key)
        except Exception:
            logger.exception(
                'Failed to delete blob of %s (orphaned): %s',
                file_entry.path,
                file_entry.blob_key,
            )
