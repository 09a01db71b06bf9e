"""Database models for drive app."""

import uuid
from typing import Any, ClassVar, Final, final, override

from django.conf import settings
from django.db import models

# Constants for field max lengths
_NAME_MAX_LENGTH: Final = 255
_PATH_MAX_LENGTH: Final = 4096
_BLOB_KEY_MAX_LENGTH: Final = 1024
_MIME_TYPE_MAX_LENGTH: Final = 255
_KIND_MAX_LENGTH: Final = 16


class EntryKind(models.TextChoices):
    """Variant of an entry.

    Values sort so that ``folder`` comes before ``file`` in descending
    order, which listings rely on.
    """

    FILE = 'file', 'File'
    FOLDER = 'folder', 'Folder'


class MaterializedPathField(models.CharField):
    """Absolute ``/``-separated path of an entry, e.g. ``/Docs/report.pdf``."""


@MaterializedPathField.register_lookup
class PathPrefix(models.Lookup):
    """Case-sensitive prefix match: ``path__pathprefix='/Docs/'``.

    ``startswith`` compiles to ``LIKE`` which ignores case on SQLite,
    so the prefix is compared with ``SUBSTR`` instead.
    """

    lookup_name = 'pathprefix'

    @override
    def as_sql(self, compiler: Any, connection: Any) -> tuple[str, tuple[Any, ...]]:
        lhs, lhs_params = self.process_lhs(compiler, connection)
        rhs, rhs_params = self.process_rhs(compiler, connection)
        params = (*lhs_params, len(self.rhs), *rhs_params)
        return f'SUBSTR({lhs}, 1, %s) = {rhs}', params

    def as_sqlite(
        self,
        compiler: Any,
        connection: Any,
    ) -> tuple[str, tuple[Any, ...]]:
        """Add a range on the path so the path index can be used.

        SQLite compares text with the BINARY collation, so every string
        starting with the prefix sorts between the prefix and the prefix
        with its last character incremented.
        """
        sql, params = self.as_sql(compiler, connection)
        if not self.rhs:
            return sql, params
        lhs, lhs_params = self.process_lhs(compiler, connection)
        upper = self.rhs[:-1] + chr(ord(self.rhs[-1]) + 1)
        range_params = (*lhs_params, self.rhs, *lhs_params, upper)
        return (
            f'({lhs} >= %s AND {lhs} < %s AND {sql})',
            (*range_params, *params),
        )


class EntryQuerySet(models.QuerySet['Entry']):
    """Query helpers shared by both entry managers."""

    def owned_by(self, owner: Any) -> 'EntryQuerySet':
        """Restrict to entries of one owner."""
        return self.filter(owner=owner)

    def children_of(self, parent_id: uuid.UUID | None) -> 'EntryQuerySet':
        """Restrict to direct children (``None`` means root level)."""
        return self.filter(parent_id=parent_id)

    def under_path(self, folder_path: str) -> 'EntryQuerySet':
        """Restrict to entries strictly below ``folder_path``.

        ``/Docs2/x`` is not below ``/Docs``: the separator is part of
        the prefix.
        """
        prefix = folder_path.rstrip('/') + '/'
        return self.filter(path__pathprefix=prefix)

    def files(self) -> 'EntryQuerySet':
        """Restrict to file entries."""
        return self.filter(kind=EntryKind.FILE)

    def ordered_for_listing(self) -> 'EntryQuerySet':
        """Folders first, then by name."""
        return self.order_by('-kind', 'name')


class ActiveEntryManager(models.Manager.from_queryset(EntryQuerySet)):  # type: ignore[misc]
    """Manager that hides soft-deleted entries."""

    @override
    def get_queryset(self) -> EntryQuerySet:
        return super().get_queryset().filter(is_deleted=False)


@final
class Entry(models.Model):
    """File or folder owned by a single user.

    Hierarchy is materialized in ``path``: a child's path is its
    parent's path plus ``/`` plus its name. Paths are written once at
    creation and subtrees are found by path prefix.

    File content lives in the blob store under ``blob_key``; only
    metadata is kept here.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='entries',
        db_index=True,
    )

    parent = models.ForeignKey(
        'self',
        on_delete=models.PROTECT,
        related_name='children',
        null=True,
        blank=True,
        help_text='Containing folder, empty for root-level entries',
    )

    name = models.CharField(
        max_length=_NAME_MAX_LENGTH,
    )

    kind = models.CharField(
        max_length=_KIND_MAX_LENGTH,
        choices=EntryKind.choices,
    )

    path = MaterializedPathField(
        max_length=_PATH_MAX_LENGTH,
        help_text='Absolute path, e.g. /Docs/report.pdf',
    )

    # File metadata, zero/empty for folders
    size_bytes = models.BigIntegerField(
        default=0,
        help_text='File size in bytes',
    )

    blob_key = models.CharField(
        max_length=_BLOB_KEY_MAX_LENGTH,
        blank=True,
        default='',
        help_text='Key of the content in the blob store',
    )

    mime_type = models.CharField(
        max_length=_MIME_TYPE_MAX_LENGTH,
        blank=True,
        default='',
    )

    original_name = models.CharField(
        max_length=_NAME_MAX_LENGTH,
        blank=True,
        default='',
        help_text='File name as supplied by the uploader',
    )

    # Soft delete
    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ActiveEntryManager()
    all_objects = EntryQuerySet.as_manager()

    class Meta:
        """Model metadata."""

        verbose_name = 'Entry'  # type: ignore[mutable-override]
        verbose_name_plural = 'Entries'  # type: ignore[mutable-override]

        indexes: ClassVar[list[models.Index]] = [
            # Directory listings
            models.Index(
                fields=['owner', 'parent', 'is_deleted'],
                name='drive_owner_parent_idx',
            ),
            # Subtree prefix scans
            models.Index(
                fields=['owner', 'path', 'is_deleted'],
                name='drive_owner_path_idx',
            ),
        ]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            # Same-kind siblings must have distinct names
            models.UniqueConstraint(
                fields=['owner', 'parent', 'name', 'kind'],
                condition=models.Q(is_deleted=False),
                name='drive_active_sibling_name_unique',
            ),
            # NULL parents never compare equal, so root level needs its own
            models.UniqueConstraint(
                fields=['owner', 'name', 'kind'],
                condition=models.Q(is_deleted=False, parent__isnull=True),
                name='drive_active_root_name_unique',
            ),
            models.CheckConstraint(
                condition=models.Q(size_bytes__gte=0),
                name='drive_size_bytes_non_negative',
            ),
            models.CheckConstraint(
                condition=(
                    models.Q(kind=EntryKind.FILE) | models.Q(size_bytes=0)
                ),
                name='drive_folder_size_zero',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.owner.username}:{self.path}'

    @property
    def is_folder(self) -> bool:
        """Whether this entry is a folder."""
        return self.kind == EntryKind.FOLDER

    def get_children(self) -> EntryQuerySet:
        """Get non-deleted direct children, folders first.

        Returns:
            Ordered children, always empty for files.
        """
        if not self.is_folder:
            return Entry.objects.none()
        return (
            Entry.objects
            .owned_by(self.owner_id)
            .children_of(self.pk)
            .ordered_for_listing()
        )


@final
class UserQuota(models.Model):
    """Storage usage of a user.

    Counts the bytes of every non-deleted file the user owns. The
    ceiling is the same for everyone and lives in settings as
    ``DRIVE_CAPACITY_BYTES``.

    ``used_bytes`` is only ever changed with single-row atomic updates.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='quota',
        primary_key=True,
    )

    used_bytes = models.BigIntegerField(
        default=0,
        help_text='Currently used storage in bytes',
    )

    class Meta:
        """Model metadata."""

        verbose_name = 'User Quota'  # type: ignore[mutable-override]
        verbose_name_plural = 'User Quotas'  # type: ignore[mutable-override]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            models.CheckConstraint(
                condition=models.Q(used_bytes__gte=0),
                name='drive_used_bytes_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.user.username}: {self.used_bytes} bytes'

    def available_bytes(self, capacity_bytes: int) -> int:
        """Get available storage space under a capacity ceiling.

        Args:
            capacity_bytes: Storage ceiling in bytes.

        Returns:
            Available bytes (never negative).
        """
        return max(0, capacity_bytes - self.used_bytes)
