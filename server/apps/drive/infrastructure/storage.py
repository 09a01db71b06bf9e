"""Blob store backend for S3-compatible storage."""

import logging
from typing import BinaryIO, final, override

from django.core.files.base import File as DjangoFile
from django.core.files.storage import default_storage
from storages.backends.s3 import S3Storage

from server.apps.drive.infrastructure.metadata import (
    build_blob_key,
    get_content_size,
)

logger = logging.getLogger(__name__)


@final
class BlobStore(S3Storage):
    """S3 storage backend holding file content for entries.

    Every key starts with the owner's ID (see ``build_blob_key``), so
    log lines always say whose content was touched. Keys are never
    reused: a new upload always lands under a new key.
    """

    def put_blob(
        self,
        owner_id: int,
        content: BinaryIO | DjangoFile,
        name: str,
        content_type: str,
    ) -> str:
        """Store content under a fresh key for the owner.

        Args:
            owner_id: Owner's user ID.
            content: File content (file-like object).
            name: Entry name, used as a readable key suffix.
            content_type: MIME type sent as the object's Content-Type.

        Returns:
            Blob key the content was stored under.

        Raises:
            Exception: If S3 upload fails.
        """
        blob = DjangoFile(content, name=name)
        # Picked up by S3Storage when building the put parameters
        blob.content_type = content_type
        blob_key = build_blob_key(owner_id, name)

        try:
            blob_key = self.save(blob_key, blob)
        except Exception:
            logger.exception(
                'Failed to store %s for owner %s under %s',
                name,
                owner_id,
                blob_key,
            )
            raise

        logger.info(
            'Stored %s for owner %s: %s (%d bytes, %s)',
            name,
            owner_id,
            blob_key,
            get_content_size(blob),
            content_type,
        )
        return blob_key

    def signed_download_url(self, blob_key: str, ttl_seconds: int) -> str:
        """Build a presigned GET link for a blob.

        Args:
            blob_key: Key of the stored content.
            ttl_seconds: Link lifetime in seconds.

        Returns:
            Presigned URL.
        """
        return self.url(blob_key, expire=ttl_seconds)

    @override
    def delete(self, name: str) -> None:
        """Delete a blob, logging the owner it belonged to.

        Args:
            name: Blob key to delete.

        Raises:
            Exception: If S3 delete fails.
        """
        owner = blob_owner(name)
        try:
            super().delete(name)
        except Exception:
            logger.exception(
                'Failed to delete blob of owner %s: %s',
                owner,
                name,
            )
            raise
        logger.info('Deleted blob of owner %s: %s', owner, name)

    def rollback_upload(self, name: str) -> None:
        """Delete an uploaded blob after its entry could not be written.

        Best effort: if deletion fails, the error is logged but not
        raised. The blob stays in storage with no entry pointing at it.

        Args:
            name: Blob key to delete.
        """
        logger.warning(
            'Rolling back upload of owner %s: %s',
            blob_owner(name),
            name,
        )
        try:
            self.delete(name)
        except Exception:
            logger.exception(
                'Failed to rollback upload, orphaned blob: %s',
                name,
            )


def blob_owner(blob_key: str) -> str:
    """Get the owner ID a blob key was issued for.

    Example: '42/9f86d081...-report.pdf' -> '42'

    Args:
        blob_key: Key built by ``build_blob_key``.

    Returns:
        Owner ID as text, empty when the key has no owner prefix.
    """
    owner, separator, _ = blob_key.partition('/')
    return owner if separator else ''


def get_blob_store() -> BlobStore:
    """Get the configured default storage backend.

    Returns:
        BlobStore instance with proper S3 configuration.
    """
    return default_storage  # type: ignore[return-value]
