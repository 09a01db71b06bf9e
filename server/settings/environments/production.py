"""
This file contains all the settings used in production.

All secrets must come from the environment here, no defaults.
"""

from server.settings.components import config

DEBUG = False

SECRET_KEY = config('DJANGO_SECRET_KEY')

ALLOWED_HOSTS = config(
    'DJANGO_ALLOWED_HOSTS',
    cast=lambda hosts: [host.strip() for host in hosts.split(',')],
)

SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
