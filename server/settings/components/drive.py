"""Settings for the drive app: quota ceiling and transfer limits."""

from typing import Final

from server.settings.components import config

_GIB: Final = 1024 * 1024 * 1024
_MIB: Final = 1024 * 1024

# Storage ceiling applied to every user, not configurable per user
DRIVE_CAPACITY_BYTES = config(
    'DRIVE_CAPACITY_BYTES',
    cast=int,
    default=15 * _GIB,
)

# Lifetime of presigned download links, in seconds
DRIVE_DOWNLOAD_URL_TTL = config(
    'DRIVE_DOWNLOAD_URL_TTL',
    cast=int,
    default=3600,
)

# Largest single upload accepted
DRIVE_MAX_UPLOAD_BYTES = config(
    'DRIVE_MAX_UPLOAD_BYTES',
    cast=int,
    default=100 * _MIB,
)
