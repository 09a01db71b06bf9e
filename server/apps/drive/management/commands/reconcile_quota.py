"""Management command to repair storage usage counters."""

import logging
from typing import Any, final, override

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from server.apps.drive.logic.quota_operations import (
    count_live_bytes,
    get_used_bytes,
    recalculate_usage,
)

User = get_user_model()

logger = logging.getLogger(__name__)


@final
class Command(BaseCommand):
    """Recompute used bytes from live files for one or all users.

    Drift appears when an operation is interrupted between marking
    entries deleted and releasing their quota.
    """

    help = 'Recalculate storage usage from non-deleted files'

    @override
    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--user',
            dest='username',
            default=None,
            help='Only reconcile this username',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show drift without fixing it',
        )

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the reconcile command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        dry_run = options['dry_run']
        username = options['username']

        users = User.objects.order_by('pk')
        if username is not None:
            users = users.filter(username=username)
            if not users.exists():
                raise CommandError(f'User not found: {username}')

        drifted = 0
        for user in users.iterator():
            recorded = get_used_bytes(user)
            actual = count_live_bytes(user)
            if recorded == actual:
                continue

            drifted += 1
            self.stdout.write(
                f'{user.username}: recorded {recorded}, actual {actual}',
            )
            if not dry_run:
                recalculate_usage(user)

        if dry_run:
            self.stdout.write(
                self.style.SUCCESS(f'Would fix {drifted} users'),
            )
        else:
            logger.info('Reconciled storage usage of %d users', drifted)
            self.stdout.write(
                self.style.SUCCESS(f'Fixed {drifted} users'),
            )

