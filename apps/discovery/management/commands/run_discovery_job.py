"""
Management command for running a discovery job from the CLI.

Provides a sync fallback when Celery is not available.

Usage:
    python manage.py run_discovery_job 7f3c...e1
    python manage.py run_discovery_job 7f3c...e1 --sync
    python manage.py run_discovery_job 7f3c...e1 --sync --output-json run.json
"""

import json

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.management.base import BaseCommand, CommandError

from apps.core.exceptions import ServiceException


class Command(BaseCommand):
    help = 'Start a manual run of a discovery job'

    def add_arguments(self, parser):
        parser.add_argument('job_id', type=str, help='UUID of the DiscoveryJob to run')
        parser.add_argument(
            '--sync',
            action='store_true',
            help='Execute in this process instead of queueing a Celery task'
        )
        parser.add_argument(
            '--output-json',
            type=str,
            default='',
            help='Write the finished run to a JSON file (with --sync)'
        )

    def handle(self, *args, **options):
        from apps.discovery.executor import DiscoveryExecutor
        from apps.discovery.models import DiscoveryRun
        from apps.discovery.serializers import DiscoveryRunDetailSerializer
        from apps.discovery.services import start_run

        sync = options['sync']

        try:
            run = start_run(options['job_id'], triggered_by=DiscoveryRun.TRIGGER_MANUAL, dispatch=not sync)
        except ServiceException as e:
            raise CommandError(e.message)
        except DjangoValidationError:
            raise CommandError(f"Invalid job id: {options['job_id']}")

        self.stdout.write(self.style.NOTICE('=' * 60))
        self.stdout.write(self.style.NOTICE(f'Discovery run {run.id}'))
        self.stdout.write(self.style.NOTICE('=' * 60))
        self.stdout.write(f"Job: {run.job}")

        if run.status == DiscoveryRun.STATUS_SKIPPED:
            self.stdout.write(self.style.WARNING(f"Skipped: {run.error}"))
            return

        if not sync:
            self.stdout.write(self.style.SUCCESS('Run queued. Check Celery worker logs for progress.'))
            return

        self.stdout.write(self.style.NOTICE('Executing in-process...'))
        DiscoveryExecutor(run.id).execute()
        run.refresh_from_db()

        style = self.style.SUCCESS if run.status == DiscoveryRun.STATUS_COMPLETED else self.style.WARNING
        self.stdout.write(style(f"Status: {run.status}"))
        self.stdout.write(f"Vendors discovered: {run.vendors_discovered}")
        self.stdout.write(f"Rows staged: {run.vendors_staged}")
        self.stdout.write(f"Duplicates: {run.duplicates_found}")
        if run.error:
            self.stdout.write(self.style.WARNING(f"Error: {run.error}"))

        if options['output_json']:
            with open(options['output_json'], 'w') as f:
                json.dump(DiscoveryRunDetailSerializer(run).data, f, indent=2, default=str)
            self.stdout.write(f"\nRun written to: {options['output_json']}")
