from .base import *  # noqa: F401,F403

DEBUG = True
ALLOWED_HOSTS = ['localhost', '127.0.0.1', '[::1]']

LOG_DIR.mkdir(parents=True, exist_ok=True)
LOGGING['loggers']['apps']['level'] = 'DEBUG'

# Local sites are reachable from the website verifier
DISCOVERY_VERIFY_ALLOW_PRIVATE_IPS = env_bool('DISCOVERY_VERIFY_ALLOW_PRIVATE_IPS')
