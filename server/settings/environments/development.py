"""
This file contains all the settings that defines the development server.

SECURITY WARNING: don't run with debug turned on in production!
"""

from typing import Final

from server.settings.components import config

DEBUG = True

SECRET_KEY = config(
    'DJANGO_SECRET_KEY',
    default='development-only-secret-key-do-not-use-in-production',
)

ALLOWED_HOSTS: Final = [
    'localhost',
    '127.0.0.1',
    '[::1]',
]
