"""Test settings for the ServiceHub project.

In-memory database, eager Celery and stub payment gateways so the test
suite runs without Redis or network access.
"""

from .base import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}

CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

PAYMENT_GATEWAYS = {
    'BKASH': {'WEBHOOK_SECRET': 'test-bkash-secret'},
    'NAGAD': {'WEBHOOK_SECRET': 'test-nagad-secret'},
    'ROCKET': {'WEBHOOK_SECRET': 'test-rocket-secret'},
    'USE_STUB_WITHOUT_CREDENTIALS': True,
}

NOTIFICATIONS_WEBHOOK_URL = ''

LOGGING['root']['level'] = 'CRITICAL'  # noqa: F405
