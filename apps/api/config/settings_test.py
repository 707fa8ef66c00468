"""
Test settings: in-memory SQLite, throwaway media root, fast hashing.
"""
import tempfile

from .settings import *  # noqa: F401,F403
from .settings import LOGGING

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

MEDIA_ROOT = tempfile.mkdtemp(prefix='clinic-test-media-')

STORAGE_BACKEND = 'filesystem'
BLOB_PRESIGNED_URLS = False
STORAGES = {
    'default': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
    },
    'staticfiles': {
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}

# Let pytest's caplog see application records
LOGGING = {
    **LOGGING,
    'loggers': {
        'django': {'handlers': ['console'], 'level': 'WARNING', 'propagate': False},
        'apps': {'level': 'DEBUG', 'propagate': True},
    },
}
