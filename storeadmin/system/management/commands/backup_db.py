"""
Management command to back up the database
Usage: python manage.py backup_db [--prefix NAME] [--cleanup DAYS] [--json]
"""
from django.core.management.base import BaseCommand, CommandError

from storeadmin.system.backup_service import BackupService, BackupError


class Command(BaseCommand):
    help = 'Create a database backup (or JSON export) and optionally remove old backups'

    def add_arguments(self, parser):
        parser.add_argument(
            '--prefix',
            default='backup',
            help='Backup filename prefix (default: backup)',
        )
        parser.add_argument(
            '--cleanup',
            type=int,
            metavar='DAYS',
            help='Delete backups older than DAYS days afterwards',
        )
        parser.add_argument(
            '--json',
            action='store_true',
            help='Export model data to JSON instead of a database dump',
        )

    def handle(self, *args, **options):
        service = BackupService()

        try:
            if options['json']:
                result = service.export_to_json()
                self.stdout.write(self.style.SUCCESS(
                    f"Exported {result['recordCount']} records to {result['filename']}"
                ))
            else:
                result = service.create_backup(prefix=options['prefix'])
                self.stdout.write(self.style.SUCCESS(
                    f"Backup created: {result['filename']} ({result['size']} bytes)"
                ))

            if options['cleanup'] is not None:
                cleanup = service.cleanup_old_backups(options['cleanup'])
                self.stdout.write(f"Deleted {cleanup['deletedCount']} old backups")
        except BackupError as e:
            raise CommandError(str(e))
