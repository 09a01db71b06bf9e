"""Logging configuration.

See https://docs.djangoproject.com/en/5.1/topics/logging/
"""

from typing import Any, Final

from server.settings.components import config

_LOG_LEVEL: Final = config('DJANGO_LOG_LEVEL', default='INFO')

LOGGING: Final[dict[str, Any]] = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'console': {
            'format': (
                '%(asctime)s %(levelname)s %(name)s '
                '[%(process)d] %(message)s'
            ),
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'console',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'server.apps.drive': {
            'handlers': ['console'],
            'level': _LOG_LEVEL,
            'propagate': True,
        },
        # Storage backend requests are noisy on DEBUG
        'botocore': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
    },
}
