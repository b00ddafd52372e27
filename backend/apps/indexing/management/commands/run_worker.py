"""
Django management command to run the indexing worker.

Usage:
    python manage.py run_worker
    python manage.py run_worker --once
    python manage.py run_worker --drain
"""
from django.core.management.base import BaseCommand

from apps.indexing.worker import IndexingWorker


class Command(BaseCommand):
    help = 'Run the document indexing worker'

    def add_arguments(self, parser):
        parser.add_argument(
            '--once',
            action='store_true',
            help='Process one job and exit',
        )
        parser.add_argument(
            '--drain',
            action='store_true',
            help='Process jobs until the queue is empty, then exit',
        )

    def handle(self, *args, **options):
        worker = IndexingWorker()

        if options['once']:
            self.stdout.write('Running worker once...')
            if worker.run_once():
                self.stdout.write(self.style.SUCCESS('Processed one job'))
            else:
                self.stdout.write('No jobs available')
        elif options['drain']:
            processed = 0
            while worker.run_once():
                processed += 1
            self.stdout.write(self.style.SUCCESS(f'Processed {processed} jobs'))
        else:
            self.stdout.write('Starting worker loop...')
            worker.run()
