from .base import *  # noqa: F401,F403

DEBUG = False
ALLOWED_HOSTS = [host for host in os.getenv('ALLOWED_HOSTS', '').split(',') if host]
CSRF_TRUSTED_ORIGINS = [f'https://{host}' for host in ALLOWED_HOSTS]

SECURE_SSL_REDIRECT = env_bool('SECURE_SSL_REDIRECT', True)
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')
SECURE_HSTS_SECONDS = 60 * 60 * 24 * 365
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_CONTENT_TYPE_NOSNIFF = True
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
X_FRAME_OPTIONS = 'DENY'

if DATABASES['default']['ENGINE'] == 'django.db.backends.postgresql':
    DATABASES['default']['CONN_MAX_AGE'] = env_int('DB_CONN_MAX_AGE', 600)

CACHES['default']['KEY_PREFIX'] = 'vendor-discovery'
SESSION_ENGINE = 'django.contrib.sessions.backends.cache'

# Containers log to stdout only
for logger_config in LOGGING['loggers'].values():
    logger_config['handlers'] = ['console']
LOGGING['handlers'].pop('file')
LOGGING['loggers']['django']['level'] = 'WARNING'
