"""
Celery app for discovery runs and the beat-driven scheduler tick.

Tasks inherit the request ID of the API call that queued them; beat-driven
tasks get a fresh one.
"""

import os

from celery import Celery
from celery.signals import task_postrun, task_prerun

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

app = Celery('vendor_discovery')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

app.conf.task_default_queue = 'default'
# LLM-bound runs get their own workers
app.conf.task_routes = {
    'apps.discovery.tasks.execute_discovery_run': {'queue': 'discovery'},
}


@task_prerun.connect
def bind_request_id(task=None, **kwargs):
    from apps.core.middleware import setup_celery_request_context
    setup_celery_request_context(getattr(task.request, 'headers', None))


@task_postrun.connect
def unbind_request_id(**kwargs):
    from apps.core.middleware import clear_request_context
    clear_request_context()
