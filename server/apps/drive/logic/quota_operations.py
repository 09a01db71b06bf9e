"""Business logic for the storage quota ledger."""

import logging
from typing import Any, Final, NamedTuple

from django.conf import settings
from django.db import transaction
from django.db.models import BigIntegerField, F, Sum, Value  # noqa: WPS347
from django.db.models.functions import Greatest

from server.apps.drive.exceptions import QuotaExceededError
from server.apps.drive.models import Entry, UserQuota

# User type for Django's dynamic user model
_User = Any

# Field name constant to avoid string literal over-use
_USED_BYTES_FIELD = 'used_bytes'  # noqa: WPS226

# Default ceiling: 15 GB in bytes
_DEFAULT_CAPACITY_BYTES: Final = 15 * 1024 * 1024 * 1024

logger = logging.getLogger(__name__)


class StorageUsage(NamedTuple):
    """Snapshot of a user's storage consumption."""

    used_bytes: int
    capacity_bytes: int
    available_bytes: int


def get_capacity_bytes() -> int:
    """Get the storage ceiling applied to every user.

    Returns:
        Capacity from settings or default of 15 GB.
    """
    return getattr(settings, 'DRIVE_CAPACITY_BYTES', _DEFAULT_CAPACITY_BYTES)


def get_or_create_quota(user: _User) -> UserQuota:
    """Get or create quota for user (on-demand creation).

    Args:
        user: User to get quota for.

    Returns:
        UserQuota instance for the user.
    """
    quota, created = UserQuota.objects.get_or_create(user=user)
    if created:
        logger.info('Created quota for user %s', user.username)
    return quota


def get_used_bytes(user: _User) -> int:
    """Read user's current storage usage.

    Args:
        user: User to read usage for.

    Returns:
        Used bytes, 0 if the user has no quota yet.
    """
    used = (
        UserQuota.objects
        .filter(user=user)
        .values_list(_USED_BYTES_FIELD, flat=True)
        .first()
    )
    return used or 0


def get_storage_usage(user: _User) -> StorageUsage:
    """Summarize user's storage usage against the ceiling.

    Args:
        user: User to summarize.

    Returns:
        Used, capacity and available bytes.
    """
    quota = get_or_create_quota(user)
    capacity = get_capacity_bytes()
    return StorageUsage(
        used_bytes=quota.used_bytes,
        capacity_bytes=capacity,
        available_bytes=quota.available_bytes(capacity),
    )


def reserve(user: _User, size_bytes: int) -> int:
    """Atomically claim storage for an upload.

    The capacity check and the increment are one conditional UPDATE,
    so concurrent uploads by the same user cannot oversell the
    ceiling.

    Args:
        user: User to charge.
        size_bytes: Bytes to add to usage.

    Returns:
        Used bytes after the reservation.

    Raises:
        ValueError: If size_bytes is negative.
        QuotaExceededError: If the upload would exceed the ceiling.
    """
    if size_bytes < 0:
        raise ValueError(f'Cannot reserve a negative size: {size_bytes}')

    capacity = get_capacity_bytes()
    get_or_create_quota(user)

    with transaction.atomic():
        updated = UserQuota.objects.filter(
            user=user,
            used_bytes__lte=capacity - size_bytes,
        ).update(
            used_bytes=F(_USED_BYTES_FIELD) + size_bytes,
        )

    if updated == 0:
        used = get_used_bytes(user)
        logger.warning(
            'Quota exceeded for user %s: need %d, have %d available',
            user.username,
            size_bytes,
            max(0, capacity - used),
        )
        raise QuotaExceededError(
            quota_bytes=capacity,
            used_bytes=used,
            required_bytes=size_bytes,
        )

    used = get_used_bytes(user)
    logger.debug(
        'Reserved %d bytes for user %s (new: %d)',
        size_bytes,
        user.username,
        used,
    )
    return used


def release(user: _User, size_bytes: int) -> int:
    """Atomically give storage back, clamping usage at 0.

    Never raises for a missing quota row or an oversized release, so
    double releases or drift cannot push usage negative.

    Args:
        user: User to credit.
        size_bytes: Bytes to subtract from usage.

    Returns:
        Used bytes after the release.
    """
    if size_bytes > 0:
        with transaction.atomic():
            UserQuota.objects.filter(user=user).update(
                used_bytes=Greatest(
                    F(_USED_BYTES_FIELD) - size_bytes,
                    Value(0),
                    output_field=BigIntegerField(),
                ),
            )

    used = get_used_bytes(user)
    logger.debug(
        'Released %d bytes for user %s (new: %d)',
        size_bytes,
        user.username,
        used,
    )
    return used


def count_live_bytes(user: _User) -> int:
    """Sum sizes of user's non-deleted files.

    Args:
        user: Owner of the files.

    Returns:
        Total bytes the user should be charged for.
    """
    return Entry.objects.owned_by(user).files().aggregate(
        total=Sum('size_bytes'),
    )['total'] or 0


def recalculate_usage(user: _User) -> int:
    """Recalculate user's storage usage from live files.

    Repairs drift left by interrupted operations. Soft-deleted files
    do not count.

    Args:
        user: User to recalculate usage for.

    Returns:
        New calculated usage in bytes.
    """
    total = count_live_bytes(user)

    with transaction.atomic():
        quota = get_or_create_quota(user)
        old_usage = quota.used_bytes
        UserQuota.objects.filter(user=user).update(used_bytes=total)

    logger.info(
        'Recalculated usage for user %s: %d -> %d bytes',
        user.username,
        old_usage,
        total,
    )

    return total
