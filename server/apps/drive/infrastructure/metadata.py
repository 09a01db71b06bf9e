"""Metadata helpers for entries: names, MIME types, blob keys."""

import mimetypes
import re
import secrets
from pathlib import PurePosixPath
from typing import BinaryIO, Final

from django.core.exceptions import ValidationError
from django.core.files.base import File as DjangoFile

_NAME_MAX_LENGTH: Final = 255
_RESERVED_NAMES: Final = frozenset(('.', '..'))
_FORBIDDEN_NAME_CHARS: Final = ('/', '\x00')

# Random part of blob keys: 32 bytes -> 64 hex chars
_BLOB_TOKEN_BYTES: Final = 32
_UNSAFE_KEY_CHARS: Final = re.compile(r'[^-\w.]')


def validate_entry_name(name: str) -> str:
    """Validate and normalize a file or folder name.

    Names are trimmed, must be 1-255 characters and cannot contain
    a path separator, since paths are built by joining names with
    ``/``.

    Args:
        name: Proposed entry name.

    Returns:
        Trimmed name.

    Raises:
        ValidationError: If the name is empty, too long or unsafe.
    """
    normalized = (name or '').strip()

    if not normalized:
        raise ValidationError('Name is required')

    if len(normalized) > _NAME_MAX_LENGTH:
        raise ValidationError(
            f'Name cannot exceed {_NAME_MAX_LENGTH} characters',
        )

    if normalized in _RESERVED_NAMES:
        raise ValidationError(f'"{normalized}" is not a valid name')

    if any(char in normalized for char in _FORBIDDEN_NAME_CHARS):
        raise ValidationError('Name cannot contain "/" or NUL characters')

    return normalized


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from file name.

    Args:
        filename: Filename with extension.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
        Returns 'application/octet-stream' if type cannot be determined.
    """
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type is None:
        return 'application/octet-stream'
    return mime_type


def extract_filename(name: str | None) -> str:
    """Extract the last component of an uploaded file name.

    Browsers may send full client paths, e.g. 'C:/docs/report.pdf'.

    Args:
        name: Name attached to the uploaded content, may be None.

    Returns:
        Filename (e.g., 'report.pdf'), empty string when unknown.
    """
    if not name:
        return ''
    return PurePosixPath(name.replace('\\', '/')).name


def get_content_size(file_obj: BinaryIO | DjangoFile) -> int:
    """Get content size from file object.

    Args:
        file_obj: File-like object.

    Returns:
        Content size in bytes.
    """
    if hasattr(file_obj, 'size'):
        return file_obj.size
    file_obj.seek(0)
    file_size = len(file_obj.read())
    file_obj.seek(0)
    return file_size


def build_blob_key(owner_id: int, name: str) -> str:
    """Build a fresh blob key scoped to an owner.

    Example: '42/9f86d081...-report.pdf'

    Args:
        owner_id: Owner's user ID.
        name: Entry name, used as a readable suffix.

    Returns:
        Blob key that has never been issued before.
    """
    token = secrets.token_hex(_BLOB_TOKEN_BYTES)
    safe_name = _UNSAFE_KEY_CHARS.sub('_', name)
    return f'{owner_id}/{token}-{safe_name}'
