"""
Test suite for Core module
Tests: Auth, settings, audit logs, status endpoints, file storage, response helpers and commands
"""
import os
import re
import shutil
import tempfile
import time
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.core.paginator import Paginator
from django.test import TestCase, SimpleTestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from storeadmin.core.cache_utils import cached_query, invalidate_reports_cache, report_cache_key
from storeadmin.core.exceptions import FileStorageError
from storeadmin.core.file_service import FileService, generate_unique_filename, get_mime_type
from storeadmin.core.models import Setting, AuditLog
from storeadmin.core.responses import page_payload
from storeadmin.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storeadmin.core.utils import create_audit_log, ensure_default_admin

User = get_user_model()


class AuthTests(TestCase):
    """Test registration, login and current user endpoints"""

    def setUp(self):
        self.client = APIClient()

    def test_register(self):
        """Test user registration returns tokens in the envelope"""
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'newuser',
            'email': 'newuser@test.com',
            'password': 'Str0ng!Passw0rd',
            'password_confirm': 'Str0ng!Passw0rd',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertIn('access', response.data['data'])
        self.assertTrue(User.objects.filter(username='newuser').exists())

    def test_register_password_mismatch(self):
        """Test registration with mismatched passwords fails validation"""
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'newuser',
            'email': 'newuser@test.com',
            'password': 'Str0ng!Passw0rd',
            'password_confirm': 'Different!Passw0rd',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['message'], 'Validation error')
        self.assertIn('password', response.data['errors'])

    @override_settings(FEATURES={'userRegistration': False})
    def test_register_disabled(self):
        """Test registration is rejected when the feature is off"""
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'newuser',
            'password': 'Str0ng!Passw0rd',
            'password_confirm': 'Str0ng!Passw0rd',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_login(self):
        """Test login returns tokens and writes a login audit entry"""
        user = TestDataFactory.create_user(username='loginuser', password='testpass123')
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'loginuser',
            'password': 'testpass123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertIn('access', response.data['data'])
        self.assertIn('refresh', response.data['data'])
        self.assertTrue(AuditLog.objects.filter(user=user, action='login').exists())

    def test_login_wrong_password(self):
        """Test login with wrong credentials"""
        TestDataFactory.create_user(username='loginuser', password='testpass123')
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'loginuser',
            'password': 'wrong',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])

    def test_refresh(self):
        """Test token refresh"""
        TestDataFactory.create_user(username='loginuser', password='testpass123')
        login = self.client.post('/api/v1/auth/login/', {
            'username': 'loginuser',
            'password': 'testpass123',
        }, format='json')
        response = self.client.post('/api/v1/auth/refresh/', {
            'refresh': login.data['data']['refresh'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data['data'])

    def test_me(self):
        """Test current user endpoint"""
        user = TestDataFactory.create_user()
        client = AuthenticatedAPIClient().authenticate_user(user)
        response = client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['username'], user.username)
        self.assertIn('features', response.data['data'])

    def test_me_unauthenticated(self):
        """Test current user endpoint requires authentication"""
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])


class SettingTests(TestCase):
    """Test settings endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_list_settings(self):
        """Test listing settings"""
        TestDataFactory.create_setting(key='currency', value='USD')
        response = self.client.get('/api/v1/settings/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']), 1)

    def test_create_setting(self):
        """Test creating a setting writes an audit entry"""
        response = self.client.post('/api/v1/settings/', {'key': 'currency', 'value': 'EUR'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Setting.objects.get(key='currency').value, 'EUR')
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='Setting').exists())

    def test_create_duplicate_setting(self):
        """Test duplicate keys are rejected"""
        TestDataFactory.create_setting(key='currency')
        response = self.client.post('/api/v1/settings/', {'key': 'currency', 'value': 'EUR'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_setting(self):
        """Test partial update of a setting"""
        setting = TestDataFactory.create_setting(key='currency', value='USD')
        response = self.client.patch(f'/api/v1/settings/{setting.pk}/', {'value': 'GBP'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        setting.refresh_from_db()
        self.assertEqual(setting.value, 'GBP')

    def test_delete_setting(self):
        """Test deleting a setting"""
        setting = TestDataFactory.create_setting()
        response = self.client.delete(f'/api/v1/settings/{setting.pk}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Setting.objects.filter(pk=setting.pk).exists())

    def test_setting_not_found(self):
        """Test missing setting returns the not found envelope"""
        response = self.client.get('/api/v1/settings/99999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['message'], 'Resource not found')

    def test_settings_forbidden_for_non_admin(self):
        """Test non-staff users cannot manage settings"""
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        response = client.get('/api/v1/settings/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['message'], 'Access forbidden')


class AuditLogTests(TestCase):
    """Test audit log listing and filtering"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.user = TestDataFactory.create_user()
        TestDataFactory.create_audit_log(user=self.admin, action='create')
        TestDataFactory.create_audit_log(user=self.admin, action='delete')
        TestDataFactory.create_audit_log(user=self.user, action='update', model_name='Order')

    def test_admin_sees_all(self):
        """Test staff users see every entry"""
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['pagination']['totalItems'], 3)

    def test_user_sees_own(self):
        """Test non-staff users only see their own entries"""
        client = AuthenticatedAPIClient().authenticate_user(self.user)
        response = client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['pagination']['totalItems'], 1)

    def test_filter_by_action(self):
        """Test filtering by action"""
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.get('/api/v1/audit-logs/?action=delete')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']['data']), 1)
        self.assertEqual(response.data['data']['data'][0]['action'], 'delete')

    def test_filter_by_model(self):
        """Test filtering by model name"""
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.get('/api/v1/audit-logs/?model=Order')
        self.assertEqual(len(response.data['data']['data']), 1)

    def test_invalid_date_filter(self):
        """Test invalid dates are rejected"""
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.get('/api/v1/audit-logs/?date_from=not-a-date')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_invalid_page(self):
        """Test a non-numeric page is a validation error"""
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.get('/api/v1/audit-logs/?page=abc')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('page', response.data['errors'])

    def test_invalid_page_size(self):
        """Test a fractional page size is a validation error"""
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.get('/api/v1/audit-logs/?page_size=1.5')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('page_size', response.data['errors'])

    def test_pagination(self):
        """Test pages are cut from the newest entries first"""
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.get('/api/v1/audit-logs/?page_size=2&page=2')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']['data']), 1)
        self.assertEqual(response.data['data']['data'][0]['action'], 'create')
        self.assertEqual(response.data['data']['pagination'], {
            'totalItems': 3,
            'pageSize': 2,
            'currentPage': 2,
            'totalPages': 2,
            'hasNextPage': False,
            'hasPrevPage': True,
        })

    def test_page_past_the_end(self):
        """Test an out-of-range page returns the last page"""
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.get('/api/v1/audit-logs/?page_size=2&page=9')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['pagination']['currentPage'], 2)

    def test_detail_forbidden_for_other_user(self):
        """Test users cannot read other users' entries"""
        entry = AuditLog.objects.filter(user=self.admin).first()
        client = AuthenticatedAPIClient().authenticate_user(self.user)
        response = client.get(f'/api/v1/audit-logs/{entry.pk}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_audit_log_skips_missing_fields(self):
        """Test audit helper returns None without required fields"""
        self.assertIsNone(create_audit_log(action='create', model_name='Setting', object_id=None))


class StatusEndpointTests(TestCase):
    """Test health and connection endpoints"""

    def test_health(self):
        """Test health endpoint is public"""
        response = APIClient().get('/api/v1/health/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertIn('version', response.data['data'])

    def test_connection(self):
        """Test database and cache checks"""
        response = APIClient().get('/api/v1/test-connection/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['database']['status'], 'ok')
        self.assertEqual(response.data['data']['cache']['status'], 'ok')


class FileServiceTests(SimpleTestCase):
    """Test local file storage"""

    def setUp(self):
        self.root = tempfile.mkdtemp()
        self.service = FileService(upload_root=self.root, url_prefix='/uploads')

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def test_generate_unique_filename(self):
        """Test unique filename format"""
        name = generate_unique_filename('My Report (final).PDF')
        self.assertRegex(name, r'^my-report--final--\d+-[0-9a-f]{16}\.PDF$')
        self.assertNotEqual(name, generate_unique_filename('My Report (final).PDF'))

    def test_get_mime_type(self):
        """Test MIME type lookup"""
        self.assertEqual(get_mime_type('a.xlsx'), 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')
        self.assertEqual(get_mime_type('a.CSV'), 'text/csv')
        self.assertEqual(get_mime_type('a.unknown'), 'application/octet-stream')

    def test_store_and_get_file(self):
        """Test storing a file and reading it back"""
        stored = self.service.store_file('notes.txt', b'hello', subdir='documents', metadata={'a': 1})
        self.assertEqual(stored['size'], 5)
        self.assertEqual(stored['originalname'], 'notes.txt')
        self.assertEqual(stored['mimetype'], 'text/plain')
        self.assertEqual(stored['metadata'], {'a': 1})
        self.assertTrue(stored['url'].startswith('/uploads/documents/notes-'))

        fetched = self.service.get_file(stored['filename'], 'documents')
        self.assertEqual(fetched['content'], b'hello')

    def test_store_with_explicit_filename(self):
        """Test storing under a given filename"""
        stored = self.service.store_file('x.json', b'{}', subdir='exports', filename='fixed.json')
        self.assertEqual(stored['filename'], 'fixed.json')
        self.assertEqual(stored['url'], '/uploads/exports/fixed.json')

    def test_path_traversal_rejected(self):
        """Test paths outside the upload root are refused"""
        with self.assertRaises(FileStorageError):
            self.service.store_file('x.txt', b'x', subdir='../outside')
        with self.assertRaises(FileStorageError):
            self.service.get_file('../../etc/passwd', 'temp')

    def test_get_missing_file(self):
        """Test reading a missing file raises"""
        with self.assertRaises(FileStorageError) as ctx:
            self.service.get_file('missing.txt', 'temp')
        self.assertIsInstance(ctx.exception.__cause__, FileNotFoundError)

    def test_list_files_newest_first(self):
        """Test listing is ordered by modification time"""
        old = self.service.store_file('old.txt', b'1', subdir='temp', filename='old.txt')
        new = self.service.store_file('new.txt', b'2', subdir='temp', filename='new.txt')
        past = time.time() - 3600
        os.utime(old['path'], (past, past))

        files = self.service.list_files('temp')
        self.assertEqual([f['filename'] for f in files], [new['filename'], old['filename']])

    def test_move_and_delete_file(self):
        """Test moving a file between subdirectories and deleting it"""
        stored = self.service.store_file('a.txt', b'abc', subdir='temp', filename='a.txt')
        moved = self.service.move_file('a.txt', 'temp', 'documents', new_filename='b.txt')
        self.assertEqual(moved['url'], '/uploads/documents/b.txt')
        self.assertFalse(os.path.exists(stored['path']))

        self.assertTrue(self.service.delete_file('b.txt', 'documents'))
        self.assertEqual(self.service.list_files('documents'), [])

    def test_init_directories(self):
        """Test default subdirectories are created"""
        self.service.init_directories()
        for subdir in ('images', 'documents', 'products', 'avatars', 'exports', 'temp'):
            self.assertTrue(os.path.isdir(os.path.join(self.root, subdir)))

    def test_presigned_upload_url(self):
        """Test presigned upload descriptor"""
        data = self.service.get_presigned_upload_url('photo.png', subdir='images', expires_in=60)
        self.assertEqual(data['method'], 'POST')
        self.assertTrue(data['fields']['key'].startswith('images/photo-'))
        self.assertEqual(data['fields']['x-amz-expires'], 60)


class FileUploadAPITests(TestCase):
    """Test upload endpoints"""

    def setUp(self):
        self.root = tempfile.mkdtemp()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def test_upload_file(self):
        """Test multipart upload stores the file"""
        upload = SimpleUploadedFile('invoice.pdf', b'%PDF-1.4 test', content_type='application/pdf')
        with override_settings(FILE_STORAGE={'UPLOAD_ROOT': self.root, 'URL_PREFIX': '/uploads', 'MAX_UPLOAD_SIZE': 1024}):
            response = self.client.post('/api/v1/uploads/', {'file': upload, 'subdir': 'documents'}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['mimetype'], 'application/pdf')
        self.assertNotIn('path', response.data['data'])
        self.assertTrue(os.path.isfile(os.path.join(self.root, 'documents', response.data['data']['filename'])))

    def test_upload_too_large(self):
        """Test oversized uploads are rejected"""
        upload = SimpleUploadedFile('big.txt', b'x' * 2048, content_type='text/plain')
        with override_settings(FILE_STORAGE={'UPLOAD_ROOT': self.root, 'URL_PREFIX': '/uploads', 'MAX_UPLOAD_SIZE': 1024}):
            response = self.client.post('/api/v1/uploads/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('file', response.data['errors'])

    def test_presigned_endpoint(self):
        """Test presigned upload endpoint"""
        response = self.client.get('/api/v1/uploads/presigned/?filename=a.png&subdir=images')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['data']['url'].endswith('/api/v1/uploads/'))


class ResponseHelperTests(SimpleTestCase):
    """Test envelope helpers"""

    def test_page_payload(self):
        """Test pagination metadata"""
        page_obj = Paginator(list(range(25)), 10).get_page(2)
        page = page_payload(page_obj, list(page_obj))
        self.assertEqual(page['data'], list(range(10, 20)))
        self.assertEqual(page['pagination'], {
            'totalItems': 25,
            'pageSize': 10,
            'currentPage': 2,
            'totalPages': 3,
            'hasNextPage': True,
            'hasPrevPage': True,
        })

    def test_page_payload_empty(self):
        """Test pagination of an empty list"""
        page = page_payload(Paginator([], 10).get_page(1), [])
        self.assertEqual(page['data'], [])
        self.assertEqual(page['pagination']['totalPages'], 0)
        self.assertFalse(page['pagination']['hasNextPage'])


class CacheUtilsTests(SimpleTestCase):
    """Test cache helpers on the local memory backend"""

    def setUp(self):
        cache.clear()

    def test_cached_query_runs_once(self):
        """Test a cached query is computed only on a miss"""
        calls = []

        def compute():
            calls.append(1)
            return {'value': 42}

        key = report_cache_key('sales', {'company_id': '1'})
        self.assertEqual(cached_query(key, compute), {'value': 42})
        self.assertEqual(cached_query(key, compute), {'value': 42})
        self.assertEqual(len(calls), 1)

    @override_settings(REPORTS_CACHE_TTL=5)
    def test_cached_query_ttl_from_settings(self):
        """Test the default ttl comes from settings"""
        with mock.patch('storeadmin.core.cache_utils.cache') as mock_cache:
            mock_cache.get.return_value = None
            cached_query('report:ttl', lambda: {'value': 1})
        mock_cache.set.assert_called_once_with('report:ttl', {'value': 1}, 5)

    def test_cached_query_explicit_ttl(self):
        """Test an explicit ttl wins over settings"""
        with mock.patch('storeadmin.core.cache_utils.cache') as mock_cache:
            mock_cache.get.return_value = None
            cached_query('report:ttl', lambda: {'value': 1}, ttl=30)
        mock_cache.set.assert_called_once_with('report:ttl', {'value': 1}, 30)

    def test_invalidate_reports_cache(self):
        """Test report invalidation clears cached payloads"""
        key = report_cache_key('sales', {})
        cached_query(key, lambda: {'value': 1})
        invalidate_reports_cache()
        self.assertIsNone(cache.get(key))


class CommandTests(TestCase):
    """Test core management commands"""

    def test_ensure_default_admin_creates_once(self):
        """Test the default admin is created only when no superuser exists"""
        user, created = ensure_default_admin()
        self.assertTrue(created)
        self.assertTrue(user.is_superuser)
        self.assertTrue(user.check_password('admin123'))

        again, created = ensure_default_admin()
        self.assertFalse(created)
        self.assertEqual(again.pk, user.pk)

    def test_ensure_default_admin_username_taken(self):
        """Test a non-superuser holding the admin username is not reported as the admin"""
        TestDataFactory.create_user(username='superadmin')
        with self.assertLogs('storeadmin.core.utils', level='WARNING') as logs:
            user, created = ensure_default_admin()
        self.assertFalse(created)
        self.assertFalse(user.is_superuser)
        self.assertFalse(User.objects.filter(is_superuser=True).exists())
        self.assertIn('non-superuser', logs.output[0])

        out = StringIO()
        call_command('ensure_default_admin', stdout=out)
        self.assertIn('non-superuser', out.getvalue())

    def test_ensure_default_admin_command(self):
        """Test the command output"""
        out = StringIO()
        call_command('ensure_default_admin', stdout=out)
        self.assertIn('Default super admin created', out.getvalue())
        self.assertTrue(User.objects.filter(username='superadmin').exists())

    def test_setup_db(self):
        """Test setup seeds settings and the admin"""
        root = tempfile.mkdtemp()
        try:
            with override_settings(
                FILE_STORAGE={'UPLOAD_ROOT': os.path.join(root, 'uploads'), 'URL_PREFIX': '/uploads'},
                REPORT_TEMP_DIR=os.path.join(root, 'temp'),
                BACKUP_DIR=os.path.join(root, 'backups'),
            ):
                call_command('setup_db', '--skip-migrate', stdout=StringIO())
            self.assertTrue(Setting.objects.filter(key='currency').exists())
            self.assertTrue(User.objects.filter(is_superuser=True).exists())
            self.assertTrue(os.path.isdir(os.path.join(root, 'backups')))
            self.assertTrue(os.path.isdir(os.path.join(root, 'uploads', 'exports')))
        finally:
            shutil.rmtree(root, ignore_errors=True)
