"""
In-memory SQLite, local-memory cache and eager Celery: the suite needs
neither Postgres nor Redis nor a worker.
"""

from .base import *  # noqa: F401,F403

ALLOWED_HOSTS = ['testserver', 'localhost']

DATABASES = {
    'default': {'ENGINE': 'django.db.backends.sqlite3', 'NAME': ':memory:'},
}
CACHES = {
    'default': {'BACKEND': 'django.core.cache.backends.locmem.LocMemCache'},
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
STORAGES['staticfiles'] = {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'}

REST_FRAMEWORK['DEFAULT_THROTTLE_RATES'] = {
    scope: '1000/min' for scope in REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']
}

LOGGING['handlers'].pop('file')
for logger_config in LOGGING['loggers'].values():
    logger_config['handlers'] = ['console']
LOGGING['loggers']['apps']['level'] = 'WARNING'
