"""Business logic for the folder hierarchy.

Paths are materialized: a root-level entry lives at ``/name`` and a
child at ``parent.path + '/' + name``. Subtrees are discovered by path
prefix only, never by walking parent pointers.
"""

import logging
import uuid
from typing import Any

from server.apps.drive.exceptions import (
    EntryAccessDeniedError,
    EntryNotFoundError,
    InvalidEntryKindError,
)
from server.apps.drive.models import Entry, EntryKind, EntryQuerySet

# User type for Django's dynamic user model
_User = Any

_PATH_SEPARATOR = '/'

logger = logging.getLogger(__name__)


def coerce_entry_id(entry_id: uuid.UUID | str) -> uuid.UUID:
    """Parse an entry ID coming from a caller.

    Args:
        entry_id: UUID or its string form.

    Returns:
        Parsed UUID.

    Raises:
        EntryNotFoundError: If the value is not a valid ID.
    """
    if isinstance(entry_id, uuid.UUID):
        return entry_id
    try:
        return uuid.UUID(str(entry_id))
    except (TypeError, ValueError) as error:
        raise EntryNotFoundError(f'Entry not found: {entry_id}') from error


def get_owned_entry(owner: _User, entry_id: uuid.UUID | str) -> Entry:
    """Fetch a non-deleted entry and check it belongs to the owner.

    Args:
        owner: User requesting the entry.
        entry_id: ID of the entry.

    Returns:
        Entry instance.

    Raises:
        EntryNotFoundError: If the entry doesn't exist or is deleted.
        EntryAccessDeniedError: If another user owns the entry.
    """
    entry = Entry.objects.filter(pk=coerce_entry_id(entry_id)).first()
    if entry is None:
        raise EntryNotFoundError(f'Entry not found: {entry_id}')

    if entry.owner_id != owner.pk:
        logger.warning(
            'User %s denied access to entry %s',
            owner.username,
            entry.pk,
        )
        raise EntryAccessDeniedError('Access denied')

    return entry


def join_path(parent_path: str | None, name: str) -> str:
    """Join a parent path and a name.

    Example: ('/Docs', 'report.pdf') -> '/Docs/report.pdf'

    Args:
        parent_path: Path of the parent folder, None for root.
        name: Entry name.

    Returns:
        Absolute path of the child.
    """
    if parent_path is None:
        return f'{_PATH_SEPARATOR}{name}'
    return f'{parent_path}{_PATH_SEPARATOR}{name}'


def resolve_path(
    owner: _User,
    parent_id: uuid.UUID | str | None,
    name: str,
) -> str:
    """Build the path for a new entry under a parent.

    Args:
        owner: User creating the entry.
        parent_id: ID of the containing folder, None for root level.
        name: Validated entry name.

    Returns:
        Absolute path for the new entry.

    Raises:
        EntryNotFoundError: If the parent doesn't exist or is deleted.
        EntryAccessDeniedError: If another user owns the parent.
        InvalidEntryKindError: If the parent is a file.
    """
    if parent_id is None:
        return join_path(None, name)

    try:
        parent = get_owned_entry(owner, parent_id)
    except EntryNotFoundError as error:
        raise EntryNotFoundError(
            f'Parent folder not found: {parent_id}',
        ) from error

    if not parent.is_folder:
        raise InvalidEntryKindError(
            f'Parent must be a folder: {parent.path}',
        )

    return join_path(parent.path, name)


def check_name_collision(
    owner: _User,
    parent_id: uuid.UUID | str | None,
    name: str,
    kind: EntryKind,
) -> bool:
    """Check whether a same-kind sibling already uses the name.

    A file and a folder may share a name in the same folder; only two
    folders or two files collide.

    Args:
        owner: Owner of the siblings.
        parent_id: ID of the containing folder, None for root level.
        name: Entry name.
        kind: Kind of the entry being created.

    Returns:
        True if a non-deleted sibling collides, False otherwise.
    """
    if parent_id is not None:
        parent_id = coerce_entry_id(parent_id)

    return (
        Entry.objects
        .owned_by(owner)
        .children_of(parent_id)
        .filter(name=name, kind=kind)
        .exists()
    )


def descendants_of(owner: _User, folder_path: str) -> EntryQuerySet:
    """Get all non-deleted entries below a folder path.

    Args:
        owner: Owner of the subtree.
        folder_path: Path of the subtree root, e.g. '/Docs'.

    Returns:
        Unordered QuerySet of descendants (the root itself excluded).
    """
    logger.debug('Listing descendants of %s', folder_path)
    return Entry.objects.owned_by(owner).under_path(folder_path)


def lock_active_parent(parent_id: uuid.UUID | None) -> None:
    """Lock the parent row and check it was not deleted meanwhile.

    Must run inside the transaction that inserts the child, so a
    concurrent folder delete either finishes first (and the insert is
    refused) or waits and marks the new child too.

    Args:
        parent_id: ID of the containing folder, None for root level.

    Raises:
        EntryNotFoundError: If the parent was deleted.
    """
    if parent_id is None:
        return

    still_active = (
        Entry.objects
        .select_for_update()
        .filter(pk=parent_id)
        .exists()
    )
    if not still_active:
        raise EntryNotFoundError(f'Parent folder not found: {parent_id}')
