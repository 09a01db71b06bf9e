"""Django admin configuration for drive app."""

from django.contrib import admin
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils.html import format_html

from server.apps.drive.logic.quota_operations import get_capacity_bytes
from server.apps.drive.models import Entry, UserQuota


def format_bytes(size_bytes: int) -> str:
    """Format bytes in human-readable format.

    Args:
        size_bytes: Size in bytes.

    Returns:
        Formatted size string (e.g., '1.5 MB', '234 KB').
    """
    if size_bytes < 1024:
        return f'{size_bytes} B'
    if size_bytes < 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / 1024:.1f} KB'
    if size_bytes < 1024 * 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / (1024 * 1024):.1f} MB'
    return f'{size_bytes / (1024 * 1024 * 1024):.1f} GB'


@admin.register(Entry)
class EntryAdmin(admin.ModelAdmin[Entry]):
    """Admin interface for Entry model.

    Entries are read-only here: creating them bypasses the quota
    ledger and hard deletes would orphan blobs.
    """

    list_display = [
        'path',
        'kind',
        'owner',
        'size_display',
        'mime_type',
        'is_deleted',
        'created_at',
    ]

    list_filter = [
        'kind',
        'is_deleted',
        'created_at',
    ]

    search_fields = [
        'path',
        'owner__username',
    ]

    readonly_fields = [
        'id',
        'owner',
        'parent',
        'name',
        'kind',
        'path',
        'size_bytes',
        'blob_key',
        'mime_type',
        'original_name',
        'is_deleted',
        'deleted_at',
        'created_at',
        'updated_at',
    ]

    fieldsets = (
        ('Entry Information', {
            'fields': ('id', 'name', 'kind', 'path', 'parent', 'owner'),
        }),
        ('Content', {
            'fields': (
                'size_bytes',
                'blob_key',
                'mime_type',
                'original_name',
            ),
        }),
        ('Deletion', {
            'fields': ('is_deleted', 'deleted_at'),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
        }),
    )

    def size_display(self, obj: Entry) -> str:
        """Display file size in human-readable format.

        Args:
            obj: Entry instance.

        Returns:
            Formatted size string, '-' for folders.
        """
        if obj.is_folder:
            return '-'
        return format_bytes(obj.size_bytes)
    size_display.short_description = 'Size'  # type: ignore[attr-defined]

    def get_queryset(self, request: HttpRequest) -> QuerySet[Entry]:
        """Show deleted entries too, with owners preloaded.

        Args:
            request: HTTP request.

        Returns:
            Optimized QuerySet.
        """
        return Entry.all_objects.select_related('owner')

    def has_add_permission(self, request: HttpRequest) -> bool:
        """Disallow creating entries outside the drive operations.

        Args:
            request: HTTP request.

        Returns:
            Always False.
        """
        return False

    def has_delete_permission(
        self,
        request: HttpRequest,
        obj: Entry | None = None,
    ) -> bool:
        """Disallow hard deletes, which would orphan blobs and quota.

        Args:
            request: HTTP request.
            obj: Entry being deleted, if any.

        Returns:
            Always False.
        """
        return False


@admin.register(UserQuota)
class UserQuotaAdmin(admin.ModelAdmin[UserQuota]):
    """Admin interface for UserQuota model."""

    list_display = [
        'user',
        'used_display',
        'percentage_display',
        'status_display',
    ]

    search_fields = [
        'user__username',
        'user__email',
    ]

    readonly_fields = [
        'user',
        'used_bytes',
    ]

    def used_display(self, obj: UserQuota) -> str:
        """Display used bytes in human-readable format.

        Args:
            obj: UserQuota instance.

        Returns:
            Formatted used bytes string.
        """
        return format_bytes(obj.used_bytes)
    used_display.short_description = 'Used'  # type: ignore[attr-defined]

    def percentage_display(self, obj: UserQuota) -> str:
        """Display percentage of capacity used.

        Args:
            obj: UserQuota instance.

        Returns:
            Percentage string.
        """
        return f'{_usage_percentage(obj):.1f}%'
    percentage_display.short_description = '%'  # type: ignore[attr-defined]

    def status_display(self, obj: UserQuota) -> str:
        """Display status indicator based on usage.

        Args:
            obj: UserQuota instance.

        Returns:
            HTML formatted status indicator.
        """
        percentage = _usage_percentage(obj)

        if percentage >= 100:
            color = '#dc3545'  # Red - full
            status = 'Full'
        elif percentage >= 90:
            color = '#ffc107'  # Yellow - warning
            status = 'Warning'
        else:
            color = '#28a745'  # Green - ok
            status = 'OK'

        return format_html(
            '<span style="color: {color}; font-weight: bold;">'
            '{status}</span>',
            color=color,
            status=status,
        )
    status_display.short_description = 'Status'  # type: ignore[attr-defined]

    def get_queryset(self, request: HttpRequest) -> QuerySet[UserQuota]:
        """Optimize queryset with select_related.

        Args:
            request: HTTP request.

        Returns:
            Optimized QuerySet.
        """
        return super().get_queryset(request).select_related('user')


def _usage_percentage(quota: UserQuota) -> float:
    """Share of the global capacity a quota uses, in percent."""
    capacity = get_capacity_bytes()
    if capacity == 0:
        return 0.0
    return (quota.used_bytes / capacity) * 100
