"""
Database backups, JSON exports and imports.

SQL dumps go through the vendor client tools (mysqldump/mysql,
pg_dump/psql); SQLite databases are copied with the sqlite3 backup API.
Every file lives in BACKUP_DIR and is named <prefix>_<YYYY-MM-DD_HH-MM-SS>.<ext>.
"""
import logging
import os
import re
import sqlite3
import subprocess
from datetime import datetime, timedelta, timezone as dt_timezone
from itertools import chain
from pathlib import Path

from django.apps import apps
from django.conf import settings
from django.core import serializers
from django.db import connections, transaction
from django.utils import timezone

from storeadmin.core.cache_utils import invalidate_reports_cache
from storeadmin.core.exceptions import ServiceError

logger = logging.getLogger('storeadmin.system')

BACKUP_EXTENSIONS = ('.sql', '.sqlite3')
TIMESTAMP_FORMAT = '%Y-%m-%d_%H-%M-%S'
TIMESTAMP_PATTERN = re.compile(r'(\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2})')

# Dependency order: parents before children
EXPORT_MODELS = [
    'core.Setting',
    'sales.Company',
    'sales.Customer',
    'sales.Product',
    'sales.Inventory',
    'sales.Order',
    'sales.Payment',
]


class BackupError(ServiceError):
    pass


class BackupService:

    def __init__(self, backup_dir=None, using='default'):
        self._backup_dir = backup_dir
        self.using = using

    @property
    def backup_dir(self):
        return Path(self._backup_dir or settings.BACKUP_DIR)

    @property
    def connection(self):
        return connections[self.using]

    @property
    def vendor(self):
        return self.connection.vendor

    def _ensure_backup_dir(self):
        if not self.backup_dir.exists():
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created backup directory: {self.backup_dir}")

    def _generate_filename(self, prefix='backup', extension='.sql'):
        return f"{prefix}_{timezone.now().strftime(TIMESTAMP_FORMAT)}{extension}"

    def _backup_path(self, filename):
        if not filename or Path(filename).name != filename or filename in ('.', '..'):
            raise BackupError(f"Invalid backup filename: {filename}")
        return self.backup_dir / filename

    def _client_options(self):
        """Connection settings as client arguments plus the environment carrying the password"""
        db = self.connection.settings_dict
        env = os.environ.copy()

        if self.vendor == 'mysql':
            args = ['-h', db.get('HOST') or 'localhost', '-P', str(db.get('PORT') or 3306), '-u', db.get('USER') or '']
            if db.get('PASSWORD'):
                env['MYSQL_PWD'] = db['PASSWORD']
        else:
            args = ['-h', db.get('HOST') or 'localhost', '-p', str(db.get('PORT') or 5432), '-U', db.get('USER') or '']
            if db.get('PASSWORD'):
                env['PGPASSWORD'] = db['PASSWORD']
        return args, env, str(db['NAME'])

    def _run(self, cmd, env, **kwargs):
        try:
            subprocess.run(cmd, env=env, check=True, capture_output=True, text=True, **kwargs)
        except subprocess.CalledProcessError as e:
            raise BackupError((e.stderr or '').strip() or f"{cmd[0]} exited with status {e.returncode}") from e

    def create_backup(self, prefix='backup', tables=None):
        """
        Dump the database into BACKUP_DIR.

        `tables` restricts a MySQL/PostgreSQL dump to those tables; SQLite
        backups always contain the whole database.
        """
        tables = list(tables or [])
        try:
            self._ensure_backup_dir()
            vendor = self.vendor

            if vendor == 'sqlite':
                filename = self._generate_filename(prefix, '.sqlite3')
                file_path = self.backup_dir / filename
                self.connection.ensure_connection()
                target = sqlite3.connect(str(file_path))
                try:
                    self.connection.connection.backup(target)
                finally:
                    target.close()
            elif vendor in ('mysql', 'postgresql'):
                filename = self._generate_filename(prefix, '.sql')
                file_path = self.backup_dir / filename
                args, env, database = self._client_options()
                if vendor == 'mysql':
                    cmd = ['mysqldump', *args, f'--result-file={file_path}', database, *tables]
                else:
                    cmd = ['pg_dump', *args, '-f', str(file_path), *[f'--table={table}' for table in tables], database]
                self._run(cmd, env)
            else:
                raise BackupError(f"Unsupported database engine: {vendor}")

            size = file_path.stat().st_size
            logger.info(f"Database backup created: {filename} ({size} bytes)")
            return {
                'success': True,
                'filename': filename,
                'path': str(file_path),
                'size': size,
                'timestamp': timezone.now(),
                'tables': tables if tables and vendor != 'sqlite' else 'all',
            }
        except Exception as e:
            logger.error(f"Error creating database backup: {str(e)}", exc_info=True)
            raise BackupError(f"Failed to create database backup: {str(e)}") from e

    def restore_backup(self, filename):
        try:
            file_path = self._backup_path(filename)
            if not file_path.exists():
                raise FileNotFoundError(f"Backup not found: {filename}")

            vendor = self.vendor
            if vendor == 'sqlite':
                if file_path.suffix != '.sqlite3':
                    raise BackupError(f"Cannot restore {filename} into a SQLite database")
                self.connection.ensure_connection()
                source = sqlite3.connect(str(file_path))
                try:
                    source.backup(self.connection.connection)
                finally:
                    source.close()
            elif vendor in ('mysql', 'postgresql'):
                args, env, database = self._client_options()
                if vendor == 'mysql':
                    with open(file_path, 'r', encoding='utf-8') as dump:
                        self._run(['mysql', *args, database], env, stdin=dump)
                else:
                    self._run(['psql', *args, '-f', str(file_path), database], env)
            else:
                raise BackupError(f"Unsupported database engine: {vendor}")

            invalidate_reports_cache()
            logger.info(f"Database restored from backup: {filename}")
            return {'success': True, 'filename': filename, 'timestamp': timezone.now()}
        except Exception as e:
            logger.error(f"Error restoring database from backup {filename}: {str(e)}", exc_info=True)
            raise BackupError(f"Failed to restore database: {str(e)}") from e

    def list_backups(self):
        """Backup files with size and timestamps, newest first"""
        try:
            self._ensure_backup_dir()
            backups = []
            for file_path in self.backup_dir.iterdir():
                if not file_path.is_file() or file_path.suffix not in BACKUP_EXTENSIONS:
                    continue
                stat = file_path.stat()
                created = datetime.fromtimestamp(stat.st_mtime, tz=dt_timezone.utc)

                match = TIMESTAMP_PATTERN.search(file_path.name)
                if match:
                    stamp = datetime.strptime(match.group(1), TIMESTAMP_FORMAT).replace(tzinfo=dt_timezone.utc)
                else:
                    stamp = created

                backups.append({
                    'filename': file_path.name,
                    'path': str(file_path),
                    'size': stat.st_size,
                    'created': created,
                    'timestamp': stamp,
                })

            backups.sort(key=lambda item: item['created'], reverse=True)
            return backups
        except Exception as e:
            logger.error(f"Error listing backups: {str(e)}", exc_info=True)
            raise BackupError(f"Failed to list backups: {str(e)}") from e

    def delete_backup(self, filename):
        try:
            file_path = self._backup_path(filename)
            file_path.unlink()
            logger.info(f"Backup deleted: {filename}")
            return True
        except Exception as e:
            logger.error(f"Error deleting backup {filename}: {str(e)}")
            raise BackupError(f"Failed to delete backup: {str(e)}") from e

    def create_scheduled_backup(self):
        return self.create_backup(prefix=f"scheduled_{timezone.now().strftime('%Y-%m-%d')}")

    def cleanup_old_backups(self, days_to_keep=30):
        """Delete backups last modified more than `days_to_keep` days ago"""
        try:
            cutoff = timezone.now() - timedelta(days=days_to_keep)
            deleted = []
            for backup in self.list_backups():
                if backup['created'] < cutoff:
                    self.delete_backup(backup['filename'])
                    deleted.append(backup['filename'])

            logger.info(f"Cleaned up {len(deleted)} old backups")
            return {'success': True, 'deletedCount': len(deleted), 'deletedBackups': deleted}
        except Exception as e:
            logger.error(f"Error cleaning up old backups: {str(e)}", exc_info=True)
            raise BackupError(f"Failed to clean up old backups: {str(e)}") from e

    def export_to_json(self, models=None):
        """
        Serialize model rows to export_<timestamp>.json with Django's JSON
        serializer. `models` is a list of app labels like 'sales.Order'.
        """
        try:
            self._ensure_backup_dir()
            labels = list(models or EXPORT_MODELS)
            model_classes = [apps.get_model(label) for label in labels]
            querysets = [model.objects.order_by('pk') for model in model_classes]
            record_counts = {model._meta.label: queryset.count() for model, queryset in zip(model_classes, querysets)}

            filename = self._generate_filename('export', '.json')
            file_path = self.backup_dir / filename
            with open(file_path, 'w', encoding='utf-8') as f:
                serializers.serialize('json', chain(*querysets), indent=2, stream=f)

            size = file_path.stat().st_size
            total = sum(record_counts.values())
            logger.info(f"Database exported to JSON: {filename} ({size} bytes)")
            return {
                'success': True,
                'filename': filename,
                'path': str(file_path),
                'size': size,
                'models': list(record_counts),
                'recordCounts': record_counts,
                'recordCount': total,
            }
        except Exception as e:
            logger.error(f"Error exporting to JSON: {str(e)}", exc_info=True)
            raise BackupError(f"Failed to export to JSON: {str(e)}") from e

    def import_from_json(self, filename, clear_existing=False):
        """
        Load an export file in one transaction. Existing rows with the same
        primary key are overwritten; `clear_existing` empties every model in
        the file first.
        """
        try:
            file_path = self._backup_path(filename)
            with open(file_path, 'r', encoding='utf-8') as f:
                objects = list(serializers.deserialize('json', f))

            model_order = []
            for obj in objects:
                model = type(obj.object)
                if model not in model_order:
                    model_order.append(model)

            record_counts = {}
            with transaction.atomic(using=self.using):
                if clear_existing:
                    for model in reversed(model_order):
                        model.objects.using(self.using).all().delete()

                for obj in objects:
                    obj.save(using=self.using)
                    label = obj.object._meta.label
                    record_counts[label] = record_counts.get(label, 0) + 1

            invalidate_reports_cache()
            total = sum(record_counts.values())
            logger.info(f"Data imported from JSON: {filename} ({total} records)")
            return {
                'success': True,
                'filename': filename,
                'models': list(record_counts),
                'recordCounts': record_counts,
                'totalRecords': total,
            }
        except Exception as e:
            logger.error(f"Error importing from JSON {filename}: {str(e)}", exc_info=True)
            raise BackupError(f"Failed to import from JSON: {str(e)}") from e


backup_service = BackupService()
