"""
Settings shared by every environment.

Values come from the process environment (optionally a .env file loaded by
python-dotenv). development.py, production.py and test.py override on top.
"""

import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent.parent


def env_int(name, default):
    return int(os.getenv(name, str(default)))


def env_bool(name, default=False):
    return os.getenv(name, str(default)).strip().lower() in ('1', 'true', 'yes')


SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-vendor-discovery-dev-key')
DEBUG = False
ALLOWED_HOSTS = []
VERSION = os.getenv('APP_VERSION', '1.0.0')


# =============================================================================
# Django
# =============================================================================

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'rest_framework_simplejwt',
    'rest_framework_simplejwt.token_blacklist',
    'django_celery_beat',
    'apps.core',
    'apps.vendors',
    'apps.discovery',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'apps.core.middleware.RequestIDMiddleware',
]

ROOT_URLCONF = 'config.urls'
WSGI_APPLICATION = 'config.wsgi.application'

# Only the Django admin renders templates
TEMPLATES = [{
    'BACKEND': 'django.template.backends.django.DjangoTemplates',
    'DIRS': [],
    'APP_DIRS': True,
    'OPTIONS': {
        'context_processors': [
            'django.template.context_processors.request',
            'django.contrib.auth.context_processors.auth',
            'django.contrib.messages.context_processors.messages',
        ],
    },
}]

if os.getenv('DB_NAME'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('DB_NAME'),
            'USER': os.getenv('DB_USER'),
            'PASSWORD': os.getenv('DB_PASSWORD'),
            'HOST': os.getenv('DB_HOST', 'localhost'),
            'PORT': os.getenv('DB_PORT', '5432'),
            'CONN_MAX_AGE': env_int('DB_CONN_MAX_AGE', 60),
            'CONN_HEALTH_CHECKS': True,
            'OPTIONS': {'connect_timeout': 10},
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': f'django.contrib.auth.password_validation.{name}'}
    for name in (
        'UserAttributeSimilarityValidator',
        'MinimumLengthValidator',
        'CommonPasswordValidator',
        'NumericPasswordValidator',
    )
]

LANGUAGE_CODE = 'en-us'
# Stored timestamps are UTC; the scheduler converts with its own zone
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'
STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'whitenoise.storage.CompressedManifestStaticFilesStorage'},
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.redis.RedisCache',
        'LOCATION': REDIS_URL,
    }
}


# =============================================================================
# REST API and JWT auth
# =============================================================================

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework_simplejwt.authentication.JWTAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': ['rest_framework.permissions.IsAuthenticated'],
    'DEFAULT_PAGINATION_CLASS': None,
    'DEFAULT_THROTTLE_RATES': {
        'discovery_run': os.getenv('THROTTLE_DISCOVERY_RUN', '10/min'),
        'bulk': os.getenv('THROTTLE_BULK', '20/min'),
        'state_change': os.getenv('THROTTLE_STATE_CHANGE', '60/min'),
    },
    'EXCEPTION_HANDLER': 'apps.core.exceptions.api_exception_handler',
}

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=env_int('JWT_ACCESS_MINUTES', 60)),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=env_int('JWT_REFRESH_DAYS', 7)),
    'ROTATE_REFRESH_TOKENS': True,
    'BLACKLIST_AFTER_ROTATION': True,
    'UPDATE_LAST_LOGIN': True,
    'SIGNING_KEY': SECRET_KEY,
    'AUTH_HEADER_TYPES': ('Bearer',),
}


# =============================================================================
# Celery
# =============================================================================

CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', REDIS_URL)
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', REDIS_URL)
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = env_bool('CELERY_TASK_ALWAYS_EAGER')
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_CONNECTION_RETRY_ON_STARTUP = True
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_ACKS_LATE = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
# Hard limit sits below the reaper timeout so the worker gives up first
CELERY_TASK_SOFT_TIME_LIMIT = 20 * 60
CELERY_TASK_TIME_LIMIT = 25 * 60

CELERY_BEAT_SCHEDULER = 'django_celery_beat.schedulers:DatabaseScheduler'
CELERY_BEAT_SCHEDULE = {
    'discovery-scheduler-tick': {
        'task': 'apps.discovery.tasks.run_scheduled_discovery',
        'schedule': timedelta(minutes=15),
    },
    'discovery-reap-stuck-runs': {
        'task': 'apps.discovery.tasks.reap_stuck_runs',
        'schedule': timedelta(minutes=5),
    },
    'discovery-reverify-pending-websites': {
        'task': 'apps.discovery.tasks.reverify_pending_websites',
        'schedule': timedelta(hours=1),
    },
}


# =============================================================================
# LLM
# =============================================================================

ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY', '')
# Used once when the primary key is rate limited
ANTHROPIC_API_KEY_FALLBACK = os.getenv('ANTHROPIC_API_KEY_FALLBACK', '')
LLM_MODEL = os.getenv('LLM_MODEL', 'claude-sonnet-4-20250514')
LLM_MAX_TOKENS = env_int('LLM_MAX_TOKENS', 8000)
LLM_TEMPERATURE = float(os.getenv('LLM_TEMPERATURE', '0.7'))
LLM_TIMEOUT = env_int('LLM_TIMEOUT', 120)


# =============================================================================
# Vendor discovery
# =============================================================================

# Initial values for the SchedulerConfig row; edited at runtime through the API
DISCOVERY_DEFAULT_RUN_HOUR = env_int('DISCOVERY_DEFAULT_RUN_HOUR', 2)
DISCOVERY_DEFAULT_DAILY_CAP = env_int('DISCOVERY_DEFAULT_DAILY_CAP', 50)
DISCOVERY_DEFAULT_TIMEZONE = os.getenv('DISCOVERY_DEFAULT_TIMEZONE', 'America/Los_Angeles')

DISCOVERY_RUN_TIMEOUT_MINUTES = env_int('DISCOVERY_RUN_TIMEOUT_MINUTES', 30)
DISCOVERY_RUN_LOG_MAX_ENTRIES = env_int('DISCOVERY_RUN_LOG_MAX_ENTRIES', 500)
DISCOVERY_EXCLUDE_NAMES_MAX = env_int('DISCOVERY_EXCLUDE_NAMES_MAX', 200)

DISCOVERY_VERIFY_MAX_PER_RUN = env_int('DISCOVERY_VERIFY_MAX_PER_RUN', 50)
DISCOVERY_VERIFY_TIMEOUT = env_int('DISCOVERY_VERIFY_TIMEOUT', 8)
DISCOVERY_VERIFY_USER_AGENT = os.getenv(
    'DISCOVERY_VERIFY_USER_AGENT', 'Mozilla/5.0 (compatible; VendorVerifier/1.0)'
)
# Never enabled outside development
DISCOVERY_VERIFY_ALLOW_PRIVATE_IPS = False


# =============================================================================
# Logging
# =============================================================================

LOG_DIR = Path(os.getenv('LOG_DIR', BASE_DIR / 'logs'))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'filters': {
        'request_id': {'()': 'apps.core.middleware.RequestIDFilter'},
    },
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} [{request_id}] {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
            'filters': ['request_id'],
        },
        'file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': LOG_DIR / 'vendor_discovery.log',
            'maxBytes': 5 * 1024 * 1024,
            'backupCount': 5,
            'formatter': 'verbose',
            'filters': ['request_id'],
            'delay': True,
        },
    },
    'root': {'handlers': ['console'], 'level': LOG_LEVEL},
    'loggers': {
        'django': {'handlers': ['console', 'file'], 'level': LOG_LEVEL, 'propagate': False},
        'apps': {'handlers': ['console', 'file'], 'level': LOG_LEVEL, 'propagate': False},
        'celery': {'handlers': ['console', 'file'], 'level': LOG_LEVEL, 'propagate': False},
    },
}
