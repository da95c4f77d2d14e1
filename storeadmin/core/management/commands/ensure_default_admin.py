from django.conf import settings
from django.core.management.base import BaseCommand

from storeadmin.core.utils import ensure_default_admin


class Command(BaseCommand):
    help = 'Create the default super admin account if no superuser exists'

    def handle(self, *args, **options):
        user, created = ensure_default_admin()
        if not created:
            if not user.is_superuser:
                self.stdout.write(self.style.WARNING(
                    f'Username {user.username} belongs to a non-superuser account; no admin created'
                ))
                return
            self.stdout.write(self.style.SUCCESS(f'Super admin already exists: {user.username}'))
            return

        self.stdout.write(self.style.SUCCESS('Default super admin created successfully!'))
        self.stdout.write(f'  Username: {settings.DEFAULT_ADMIN_USERNAME}')
        self.stdout.write(f'  Email: {settings.DEFAULT_ADMIN_EMAIL}')
        self.stdout.write(f'  Password: {settings.DEFAULT_ADMIN_PASSWORD}')
        self.stdout.write(self.style.WARNING('Please change the default password after first login!'))
