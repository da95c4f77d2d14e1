"""
Management command to prepare a fresh installation
Usage: python manage.py setup_db [--seed-demo] [--skip-migrate]
"""
from pathlib import Path

from django.conf import settings
from django.core.management import call_command
from django.core.management.base import BaseCommand

from storeadmin.core.file_service import FileService
from storeadmin.core.models import Setting
from storeadmin.core.utils import ensure_default_admin

DEFAULT_SETTINGS = [
    ('site_name', settings.APP_NAME, 'Name shown in the admin panel header'),
    ('currency', 'USD', 'Default currency code'),
    ('timezone', settings.TIME_ZONE, 'Default display timezone'),
    ('low_stock_threshold', '5', 'Default reorder threshold for new inventory records'),
    ('orders_per_page', '20', 'Default page size for order listings'),
]


class Command(BaseCommand):
    help = 'Run migrations, create the default admin, seed default settings and storage directories'

    def add_arguments(self, parser):
        parser.add_argument(
            '--skip-migrate',
            action='store_true',
            help='Do not run migrations',
        )
        parser.add_argument(
            '--seed-demo',
            action='store_true',
            help='Also seed demo sales data',
        )

    def handle(self, *args, **options):
        if not options['skip_migrate']:
            self.stdout.write('Running migrations...')
            call_command('migrate', interactive=False, verbosity=options.get('verbosity', 1))

        user, created = ensure_default_admin()
        if created:
            self.stdout.write(self.style.SUCCESS(f'Created default admin: {user.username}'))
            self.stdout.write(self.style.WARNING('Please change the default password after first login!'))
        elif not user.is_superuser:
            self.stdout.write(self.style.WARNING(f'Username {user.username} belongs to a non-superuser account; no admin created'))
        else:
            self.stdout.write(f'Admin exists: {user.username}')

        created_settings = 0
        for key, value, description in DEFAULT_SETTINGS:
            _, was_created = Setting.objects.get_or_create(
                key=key,
                defaults={'value': value, 'description': description},
            )
            if was_created:
                created_settings += 1
        self.stdout.write(f'Default settings created: {created_settings}')

        FileService().init_directories()
        for directory in (settings.REPORT_TEMP_DIR, settings.BACKUP_DIR):
            Path(directory).mkdir(parents=True, exist_ok=True)
        self.stdout.write('Storage directories ready')

        if options['seed_demo']:
            call_command('seed_demo_data')

        self.stdout.write(self.style.SUCCESS('Database setup complete'))
