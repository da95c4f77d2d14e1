"""
Test suite for System module
Tests: Database backups, JSON export/import, backup endpoints and backup_db command
"""
import io
import json
import os
import shutil
import sqlite3
import subprocess
import tempfile
import time
from pathlib import Path
from unittest import mock

from django.core.management import call_command
from django.test import TestCase, override_settings
from rest_framework import status

from storeadmin.core.models import AuditLog
from storeadmin.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storeadmin.sales.models import Order, Payment
from storeadmin.system.backup_service import BackupService, BackupError, backup_service

FILENAME_PATTERN = r'^backup_\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}\.sql$'


def write_dump(cmd, **kwargs):
    """Stand-in for subprocess.run that writes the dump file"""
    for arg in cmd:
        if arg.startswith('--result-file='):
            Path(arg.split('=', 1)[1]).write_text('-- dump')
    if '-f' in cmd and cmd[0] == 'pg_dump':
        Path(cmd[cmd.index('-f') + 1]).write_text('-- dump')
    return subprocess.CompletedProcess(cmd, 0, '', '')


class BackupTestMixin:

    def setUp(self):
        super().setUp()
        self.backup_dir = tempfile.mkdtemp()
        self.service = BackupService(backup_dir=self.backup_dir)

    def tearDown(self):
        shutil.rmtree(self.backup_dir, ignore_errors=True)
        super().tearDown()

    def make_backup_file(self, filename, age_days=0):
        path = Path(self.backup_dir) / filename
        path.write_text('-- dump')
        if age_days:
            old = time.time() - age_days * 86400
            os.utime(path, (old, old))
        return path

    def patch_vendor(self, vendor):
        patcher = mock.patch.object(BackupService, 'vendor', new_callable=mock.PropertyMock, return_value=vendor)
        patcher.start()
        self.addCleanup(patcher.stop)


class BackupServiceTests(BackupTestMixin, TestCase):
    """Test database dumps and backup file management"""

    @mock.patch('storeadmin.system.backup_service.subprocess.run', side_effect=write_dump)
    def test_create_mysql_backup(self, mock_run):
        """Test mysqldump is called with an argument list"""
        self.patch_vendor('mysql')
        backup = self.service.create_backup(tables=['orders'])

        self.assertRegex(backup['filename'], FILENAME_PATTERN)
        self.assertEqual(backup['tables'], ['orders'])
        self.assertEqual(backup['size'], len('-- dump'))
        cmd = mock_run.call_args.args[0]
        self.assertEqual(cmd[0], 'mysqldump')
        self.assertEqual(cmd[-1], 'orders')
        self.assertIn(f"--result-file={backup['path']}", cmd)

    @mock.patch('storeadmin.system.backup_service.subprocess.run', side_effect=write_dump)
    def test_create_postgres_backup(self, mock_run):
        self.patch_vendor('postgresql')
        backup = self.service.create_backup(prefix='nightly', tables=['payments'])

        self.assertTrue(backup['filename'].startswith('nightly_'))
        cmd = mock_run.call_args.args[0]
        self.assertEqual(cmd[0], 'pg_dump')
        self.assertIn('--table=payments', cmd)

    @mock.patch('storeadmin.system.backup_service.subprocess.run')
    def test_create_backup_failure(self, mock_run):
        """Test a failing dump tool raises BackupError with its stderr"""
        self.patch_vendor('mysql')
        mock_run.side_effect = subprocess.CalledProcessError(2, ['mysqldump'], stderr='Access denied')

        with self.assertRaisesMessage(BackupError, 'Failed to create database backup: Access denied'):
            self.service.create_backup()

    def test_create_sqlite_backup(self):
        """Test SQLite databases are copied with the backup API"""
        source = sqlite3.connect(':memory:')
        source.execute('CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT)')
        source.execute("INSERT INTO items (name) VALUES ('widget')")
        source.commit()
        connection = mock.Mock(vendor='sqlite', connection=source)

        with mock.patch.object(BackupService, 'connection', new_callable=mock.PropertyMock, return_value=connection):
            backup = self.service.create_backup()

        self.assertTrue(backup['filename'].endswith('.sqlite3'))
        self.assertEqual(backup['tables'], 'all')
        copy = sqlite3.connect(backup['path'])
        try:
            self.assertEqual(copy.execute('SELECT name FROM items').fetchall(), [('widget',)])
        finally:
            copy.close()
            source.close()

    def test_unsupported_engine(self):
        self.patch_vendor('oracle')
        with self.assertRaisesMessage(BackupError, 'Unsupported database engine: oracle'):
            self.service.create_backup()

    @mock.patch('storeadmin.system.backup_service.subprocess.run')
    def test_restore_mysql_backup(self, mock_run):
        """Test the dump file is fed to the mysql client"""
        self.patch_vendor('mysql')
        self.make_backup_file('backup_2024-01-01_00-00-00.sql')

        result = self.service.restore_backup('backup_2024-01-01_00-00-00.sql')
        self.assertTrue(result['success'])
        self.assertEqual(mock_run.call_args.args[0][0], 'mysql')
        self.assertIn('stdin', mock_run.call_args.kwargs)

    def test_restore_missing_backup(self):
        with self.assertRaises(BackupError) as ctx:
            self.service.restore_backup('backup_missing.sql')
        self.assertIsInstance(ctx.exception.__cause__, FileNotFoundError)

    def test_invalid_filename(self):
        """Test path components in filenames are rejected"""
        with self.assertRaisesMessage(BackupError, 'Invalid backup filename'):
            self.service.delete_backup('../settings.py')

    def test_list_backups_newest_first(self):
        """Test only backup files are listed, newest first"""
        self.make_backup_file('backup_2024-01-01_00-00-00.sql', age_days=10)
        self.make_backup_file('backup_2024-02-01_00-00-00.sqlite3', age_days=1)
        self.make_backup_file('notes.txt')

        backups = self.service.list_backups()
        self.assertEqual(
            [b['filename'] for b in backups],
            ['backup_2024-02-01_00-00-00.sqlite3', 'backup_2024-01-01_00-00-00.sql'],
        )
        self.assertEqual(backups[1]['timestamp'].year, 2024)

    def test_delete_backup(self):
        path = self.make_backup_file('backup_2024-01-01_00-00-00.sql')
        self.assertTrue(self.service.delete_backup(path.name))
        self.assertFalse(path.exists())

        with self.assertRaises(BackupError) as ctx:
            self.service.delete_backup(path.name)
        self.assertIsInstance(ctx.exception.__cause__, FileNotFoundError)

    def test_scheduled_backup_prefix(self):
        with mock.patch.object(self.service, 'create_backup') as mock_create:
            self.service.create_scheduled_backup()
        self.assertRegex(mock_create.call_args.kwargs['prefix'], r'^scheduled_\d{4}-\d{2}-\d{2}$')

    def test_cleanup_old_backups(self):
        """Test backups older than the retention window are deleted"""
        self.make_backup_file('backup_old.sql', age_days=40)
        self.make_backup_file('backup_new.sql', age_days=2)

        result = self.service.cleanup_old_backups(days_to_keep=30)
        self.assertEqual(result['deletedCount'], 1)
        self.assertEqual(result['deletedBackups'], ['backup_old.sql'])
        self.assertEqual([b['filename'] for b in self.service.list_backups()], ['backup_new.sql'])


class DataExportImportTests(BackupTestMixin, TestCase):
    """Test JSON export and import of model rows"""

    def setUp(self):
        super().setUp()
        self.company = TestDataFactory.create_company()
        self.customer = TestDataFactory.create_customer(company=self.company)
        self.order = TestDataFactory.create_order(customer=self.customer, company=self.company)
        self.payment = TestDataFactory.create_payment(self.order)

    def test_export_to_json(self):
        """Test exported file holds Django-serialized rows"""
        result = self.service.export_to_json(['sales.Company', 'sales.Order'])

        self.assertTrue(result['filename'].startswith('export_'))
        self.assertEqual(result['recordCounts'], {'sales.Company': 1, 'sales.Order': 1})
        with open(result['path'], encoding='utf-8') as f:
            data = json.load(f)
        self.assertEqual([row['model'] for row in data], ['sales.company', 'sales.order'])

    def test_export_unknown_model(self):
        with self.assertRaises(BackupError):
            self.service.export_to_json(['sales.Nope'])

    @mock.patch('storeadmin.system.backup_service.invalidate_reports_cache')
    def test_import_restores_deleted_rows(self, mock_invalidate):
        """Test import recreates rows and clears the reports cache"""
        export = self.service.export_to_json()
        Payment.objects.all().delete()
        Order.objects.all().delete()

        result = self.service.import_from_json(export['filename'])
        self.assertEqual(Order.objects.get().order_number, self.order.order_number)
        self.assertEqual(Payment.objects.get().order_id, self.order.id)
        self.assertEqual(result['recordCounts']['sales.Payment'], 1)
        mock_invalidate.assert_called_once()

    def test_import_clear_existing(self):
        """Test rows not in the file are removed when clearing"""
        export = self.service.export_to_json(['sales.Company', 'sales.Customer', 'sales.Order', 'sales.Payment'])
        TestDataFactory.create_order(company=self.company)
        self.assertEqual(Order.objects.count(), 2)

        self.service.import_from_json(export['filename'], clear_existing=True)
        self.assertEqual(Order.objects.count(), 1)

    def test_import_invalid_json(self):
        """Test a corrupt file raises BackupError and changes nothing"""
        (Path(self.backup_dir) / 'broken.json').write_text('{not json')
        with self.assertRaisesMessage(BackupError, 'Failed to import from JSON'):
            self.service.import_from_json('broken.json', clear_existing=True)
        self.assertEqual(Order.objects.count(), 1)


class BackupAPITests(BackupTestMixin, TestCase):
    """Test backup endpoints"""

    def setUp(self):
        super().setUp()
        override = override_settings(BACKUP_DIR=self.backup_dir)
        override.enable()
        self.addCleanup(override.disable)
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()
        self.user = TestDataFactory.create_user()
        self.client.authenticate_user(self.admin)

    def test_list_backups(self):
        self.make_backup_file('backup_2024-01-01_00-00-00.sql')
        response = self.client.get('/api/v1/system/backups/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data'][0]['filename'], 'backup_2024-01-01_00-00-00.sql')
        self.assertNotIn('path', response.data['data'][0])

    def test_non_admin_forbidden(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/system/backups/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    @mock.patch('storeadmin.system.backup_service.subprocess.run', side_effect=write_dump)
    def test_create_backup(self, mock_run):
        """Test creating a backup writes an audit entry"""
        self.patch_vendor('mysql')
        response = self.client.post('/api/v1/system/backups/', {'prefix': 'manual'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['data']['filename'].startswith('manual_'))
        self.assertTrue(AuditLog.objects.filter(action='backup_create').exists())

    def test_create_backup_invalid_prefix(self):
        response = self.client.post('/api/v1/system/backups/', {'prefix': '../etc'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_backup_failure(self):
        with mock.patch.object(backup_service, 'create_backup', side_effect=BackupError('disk full')):
            response = self.client.post('/api/v1/system/backups/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertFalse(response.data['success'])

    def test_delete_backup(self):
        self.make_backup_file('backup_2024-01-01_00-00-00.sql')
        response = self.client.delete('/api/v1/system/backups/backup_2024-01-01_00-00-00.sql/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(AuditLog.objects.filter(action='backup_delete').exists())

    def test_delete_missing_backup(self):
        response = self.client.delete('/api/v1/system/backups/backup_missing.sql/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_restore_missing_backup(self):
        response = self.client.post('/api/v1/system/backups/backup_missing.sql/restore/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_cleanup(self):
        self.make_backup_file('backup_old.sql', age_days=10)
        response = self.client.post('/api/v1/system/backups/cleanup/', {'days_to_keep': 5}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['deletedCount'], 1)

    def test_export_and_import(self):
        """Test the export file can be imported back"""
        TestDataFactory.create_company()
        response = self.client.post('/api/v1/system/export/', {'models': ['sales.Company']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        filename = response.data['data']['filename']

        response = self.client.post('/api/v1/system/import/', {'filename': filename}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['totalRecords'], 1)

    def test_export_unknown_model(self):
        response = self.client.post('/api/v1/system/export/', {'models': ['nope']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_import_missing_file(self):
        response = self.client.post('/api/v1/system/import/', {'filename': 'export_missing.json'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class BackupCommandTests(BackupTestMixin, TestCase):

    def test_backup_db_json(self):
        """Test --json writes an export file"""
        TestDataFactory.create_company()
        out = io.StringIO()
        with override_settings(BACKUP_DIR=self.backup_dir):
            call_command('backup_db', '--json', stdout=out)
        self.assertIn('Exported', out.getvalue())
        self.assertTrue(any(name.startswith('export_') for name in os.listdir(self.backup_dir)))

    @mock.patch('storeadmin.system.backup_service.subprocess.run', side_effect=write_dump)
    def test_backup_db_with_cleanup(self, mock_run):
        self.patch_vendor('postgresql')
        self.make_backup_file('backup_old.sql', age_days=60)
        out = io.StringIO()
        with override_settings(BACKUP_DIR=self.backup_dir):
            call_command('backup_db', '--prefix', 'cron', '--cleanup', '30', stdout=out)
        self.assertIn('Backup created: cron_', out.getvalue())
        self.assertIn('Deleted 1 old backups', out.getvalue())
