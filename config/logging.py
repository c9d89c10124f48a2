import os

from decouple import config

LOG_LEVEL = config('LOG_LEVEL', default='INFO')
LOG_TO_FILE = config('LOG_TO_FILE', default=False, cast=bool)

# Ensure the logs directory exists when file logging is on
LOGS_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'logs')
if LOG_TO_FILE:
    os.makedirs(LOGS_DIR, exist_ok=True)

_handlers = ['console', 'file'] if LOG_TO_FILE else ['console']

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
            'level': 'DEBUG',
        },
    },
    'loggers': {
        '': {  # Root logger
            'handlers': _handlers,
            'level': LOG_LEVEL,
            'propagate': True,
        },
        'django.db.backends': {
            'handlers': ['console'],
            'level': 'INFO',  # Don't log SQL queries unless needed
            'propagate': False,
        },
        'blockchain': {
            'handlers': _handlers,
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'notifications': {
            'handlers': _handlers,
            'level': LOG_LEVEL,
            'propagate': False,
        },
    },
}

if LOG_TO_FILE:
    LOGGING['handlers']['file'] = {
        'class': 'logging.FileHandler',
        'filename': os.path.join(LOGS_DIR, 'randcash.log'),
        'formatter': 'verbose',
        'level': 'DEBUG',
    }
