"""
Test suite for Reports module
Tests: Sales, inventory, customer and payment reports, file formats and export endpoints
"""
import csv
import io
import json
import os
import shutil
import tempfile
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.core.cache import cache
from django.test import TestCase, override_settings
from django.utils import timezone
from openpyxl import load_workbook
from reportlab.pdfbase.pdfmetrics import stringWidth
from rest_framework import status

from storeadmin.core.file_service import FileService
from storeadmin.core.models import AuditLog
from storeadmin.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storeadmin.reports.report_service import ReportService, ReportError


class ReportDataTests(TestCase):
    """Test report payloads built from the sales tables"""

    def setUp(self):
        self.service = ReportService(file_service=mock.Mock(), temp_dir=tempfile.gettempdir())
        self.company = TestDataFactory.create_company()
        self.other_company = TestDataFactory.create_company()
        self.customer = TestDataFactory.create_customer(company=self.company)

    def test_sales_report_groups_by_day(self):
        """Test orders are grouped into daily rows"""
        now = timezone.now()
        TestDataFactory.create_order(customer=self.customer, company=self.company, total=Decimal('100.00'), created_at=now)
        TestDataFactory.create_order(customer=self.customer, company=self.company, total=Decimal('50.00'), created_at=now)
        TestDataFactory.create_order(customer=self.customer, company=self.company, total=Decimal('30.00'), created_at=now - timedelta(days=3))

        report = self.service.collect_sales_data()
        self.assertEqual(report['title'], 'Sales Report')
        self.assertEqual(len(report['data']), 2)
        self.assertEqual(report['summary']['totalOrders'], 3)
        self.assertEqual(report['summary']['totalSales'], 180.0)
        self.assertEqual(report['summary']['averageOrderValue'], 60.0)
        self.assertEqual(report['data'][-1]['orderCount'], 2)
        self.assertEqual(report['data'][-1]['averageOrderValue'], 75.0)

    def test_sales_report_default_window(self):
        """Test orders older than 30 days are excluded by default"""
        TestDataFactory.create_order(company=self.company, created_at=timezone.now() - timedelta(days=45))
        report = self.service.collect_sales_data()
        self.assertEqual(report['summary']['totalOrders'], 0)
        self.assertEqual(report['summary']['averageOrderValue'], 0)
        self.assertEqual(report['data'], [])

    def test_sales_report_company_filter(self):
        """Test company filter"""
        TestDataFactory.create_order(company=self.company)
        TestDataFactory.create_order(company=self.other_company)
        report = self.service.collect_sales_data(company_id=self.company.id)
        self.assertEqual(report['summary']['totalOrders'], 1)

    def test_inventory_report(self):
        """Test inventory rows are ordered by quantity with low stock counted"""
        low = TestDataFactory.create_product(price=Decimal('10.00'), company=self.company)
        high = TestDataFactory.create_product(price=Decimal('2.50'), company=self.company)
        TestDataFactory.create_inventory(high, quantity=40)
        TestDataFactory.create_inventory(low, quantity=2)

        report = self.service.collect_inventory_data()
        self.assertEqual(report['title'], 'Inventory Report')
        self.assertEqual([row['productId'] for row in report['data']], [low.id, high.id])
        self.assertEqual(report['summary'], {'totalProducts': 2, 'totalItems': 42, 'lowStockItems': 1})
        self.assertEqual(report['data'][0]['value'], 20.0)
        self.assertEqual(report['data'][0]['reorderThreshold'], 5)
        self.assertEqual(report['data'][0]['reorderAmount'], 10)

    def test_low_stock_inventory_report(self):
        """Test low stock filter keeps only items under their threshold"""
        TestDataFactory.create_inventory(TestDataFactory.create_product(), quantity=1)
        TestDataFactory.create_inventory(TestDataFactory.create_product(), quantity=5)
        report = self.service.collect_inventory_data(low_stock_only=True)
        self.assertEqual(report['title'], 'Low Stock Inventory Report')
        self.assertEqual(len(report['data']), 1)
        self.assertEqual(report['data'][0]['quantity'], 1)

    def test_customer_report(self):
        """Test customer metrics and ordering by spend"""
        big = TestDataFactory.create_customer(company=self.company)
        now = timezone.now()
        TestDataFactory.create_order(customer=big, total=Decimal('300.00'), created_at=now - timedelta(days=10))
        TestDataFactory.create_order(customer=big, total=Decimal('100.00'), created_at=now - timedelta(days=2))
        TestDataFactory.create_order(customer=self.customer, total=Decimal('50.00'), created_at=now - timedelta(days=1))

        report = self.service.collect_customer_data(company_id=self.company.id)
        self.assertEqual(report['summary']['totalCustomers'], 2)
        self.assertEqual(report['summary']['totalRevenue'], 450.0)
        self.assertEqual(report['summary']['averageCustomerValue'], 225.0)
        self.assertEqual(report['summary']['activeCustomers'], 2)

        first = report['data'][0]
        self.assertEqual(first['id'], big.id)
        self.assertEqual(first['orderCount'], 2)
        self.assertEqual(first['averageOrderValue'], 200.0)
        self.assertEqual(first['daysSinceLastOrder'], 2)
        self.assertEqual(first['customerLifetimeValue'], 400.0)

    def test_customer_without_orders(self):
        """Test customers with no orders in range"""
        report = self.service.collect_customer_data(company_id=self.company.id)
        row = report['data'][0]
        self.assertEqual(row['orderCount'], 0)
        self.assertIsNone(row['lastOrderDate'])
        self.assertIsNone(row['daysSinceLastOrder'])
        self.assertEqual(report['summary']['activeCustomers'], 0)

    def test_payment_report_breakdown(self):
        """Test payment method breakdown percentages"""
        order = TestDataFactory.create_order(company=self.company, total=Decimal('100.00'))
        TestDataFactory.create_payment(order, amount=Decimal('40.00'), payment_method='credit_card')
        TestDataFactory.create_payment(order, amount=Decimal('30.00'), payment_method='credit_card')
        TestDataFactory.create_payment(order, amount=Decimal('30.00'), payment_method='paypal')

        report = self.service.collect_payment_data()
        self.assertEqual(report['summary']['totalPayments'], 3)
        self.assertEqual(report['summary']['totalRevenue'], 100.0)
        breakdown = {item['method']: item for item in report['summary']['paymentMethodBreakdown']}
        self.assertEqual(breakdown['credit_card']['count'], 2)
        self.assertEqual(breakdown['credit_card']['percentage'], '66.67')
        self.assertEqual(breakdown['paypal']['percentage'], '33.33')
        self.assertEqual(report['data'][0]['orderNumber'], order.order_number)

    def test_payment_report_method_filter(self):
        """Test payment method filter"""
        order = TestDataFactory.create_order()
        TestDataFactory.create_payment(order, payment_method='cash')
        TestDataFactory.create_payment(order, payment_method='paypal')
        report = self.service.collect_payment_data(payment_method='cash')
        self.assertEqual(report['summary']['totalPayments'], 1)
        self.assertEqual(report['data'][0]['method'], 'cash')


class ReportFormatTests(TestCase):
    """Test writing reports to files"""

    def setUp(self):
        self.root = tempfile.mkdtemp()
        self.file_service = FileService(upload_root=os.path.join(self.root, 'uploads'), url_prefix='/uploads')
        self.service = ReportService(file_service=self.file_service, temp_dir=os.path.join(self.root, 'temp'))
        self.report = {
            'title': 'Test Report',
            'summary': {'total': 3, 'breakdown': [{'a': 1}]},
            'data': [
                {'name': 'a', 'value': 1},
                {'name': 'b', 'value': 2, 'extra': 'x'},
            ],
        }

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def _content(self, result):
        return self.file_service.get_file(result['file']['filename'], 'exports')['content']

    def test_json_format(self):
        """Test JSON export"""
        result = self.service.format_report(self.report, 'json', 'test-report')
        self.assertEqual(result['report'], self.report)
        self.assertEqual(result['file']['mimetype'], 'application/json')
        self.assertTrue(result['file']['filename'].startswith('test-report-'))
        self.assertTrue(result['file']['url'].startswith('/uploads/exports/'))
        self.assertEqual(json.loads(self._content(result)), self.report)

    def test_unknown_format_falls_back_to_json(self):
        """Test unknown formats are written as JSON"""
        result = self.service.format_report(self.report, 'xml', 'test-report')
        self.assertEqual(result['file']['mimetype'], 'application/json')
        self.assertTrue(result['file']['filename'].endswith('.json'))

    def test_csv_format(self):
        """Test CSV export uses the union of row keys"""
        result = self.service.format_report(self.report, 'csv', 'test-report')
        self.assertEqual(result['file']['mimetype'], 'text/csv')
        rows = list(csv.DictReader(io.StringIO(self._content(result).decode('utf-8'))))
        self.assertEqual(rows[0], {'name': 'a', 'value': '1', 'extra': ''})
        self.assertEqual(rows[1]['extra'], 'x')

    def test_csv_empty_rows(self):
        """Test CSV export of an empty report is an empty file"""
        result = self.service.format_report({'title': 'Empty', 'summary': {}, 'data': []}, 'csv', 'empty')
        self.assertEqual(self._content(result), b'')

    def test_excel_format(self):
        """Test Excel layout"""
        result = self.service.format_report(self.report, 'excel', 'test-report')
        self.assertTrue(result['file']['filename'].endswith('.xlsx'))
        sheet = load_workbook(io.BytesIO(self._content(result))).active
        self.assertEqual(sheet['A1'].value, 'Test Report')
        self.assertTrue(sheet['A1'].font.bold)
        self.assertTrue(sheet['A2'].value.startswith('Generated: '))
        self.assertEqual(sheet['A4'].value, 'Summary')
        self.assertEqual((sheet['A5'].value, sheet['B5'].value), ('total', 3))
        self.assertEqual(sheet['A7'].value, 'Data')
        self.assertEqual((sheet['A8'].value, sheet['B8'].value), ('name', 'value'))
        self.assertEqual(sheet['A9'].value, 'a')

    def test_pdf_format(self):
        """Test PDF export produces a PDF document"""
        result = self.service.format_report(self.report, 'pdf', 'test-report')
        self.assertEqual(result['file']['mimetype'], 'application/pdf')
        self.assertTrue(self._content(result).startswith(b'%PDF'))

    def test_pdf_page_breaks(self):
        """Test a page break after every fifth item"""
        report = {'title': 'Paged', 'summary': {}, 'data': [{'n': i} for i in range(11)]}
        with mock.patch('storeadmin.reports.report_service.canvas.Canvas') as canvas_cls:
            self.service._write_pdf(report, os.path.join(self.root, 'paged.pdf'))
        self.assertEqual(canvas_cls.return_value.showPage.call_count, 2)

    def test_pdf_too_large(self):
        """Test large reports print a notice instead of the data"""
        report = {'title': 'Big', 'summary': {}, 'data': [{'n': i} for i in range(101)]}
        with mock.patch('storeadmin.reports.report_service.canvas.Canvas') as canvas_cls:
            self.service._write_pdf(report, os.path.join(self.root, 'big.pdf'))
        drawn = [call.args[2] for call in canvas_cls.return_value.drawString.call_args_list]
        self.assertIn('Data section too large for PDF. Please use Excel or CSV format for full data.', drawn)
        self.assertNotIn('Item 1:', drawn)

    def test_pdf_wraps_long_values(self):
        """Test long values are wrapped inside the page margins"""
        words = [f'word{i}' for i in range(60)]
        report = {'title': 'Wide', 'summary': {}, 'data': [{'note': ' '.join(words)}]}
        with mock.patch('storeadmin.reports.report_service.canvas.Canvas') as canvas_cls:
            self.service._write_pdf(report, os.path.join(self.root, 'wide.pdf'))

        calls = canvas_cls.return_value.drawString.call_args_list
        note_calls = [call for call in calls if 'word' in call.args[2]]
        self.assertGreater(len(note_calls), 1)
        for call in note_calls:
            x, text = call.args[0], call.args[2]
            self.assertLessEqual(x + stringWidth(text, 'Helvetica', 10), 612 - 50)
        drawn_words = ' '.join(call.args[2] for call in note_calls).replace('note: ', '').split()
        self.assertEqual(drawn_words, words)

    def test_temp_file_removed(self):
        """Test the temporary file is deleted after storing"""
        self.service.format_report(self.report, 'csv', 'test-report')
        self.assertEqual(os.listdir(os.path.join(self.root, 'temp')), [])

    def test_generate_wraps_errors(self):
        """Test failures are wrapped in ReportError"""
        self.file_service.store_file = mock.Mock(side_effect=OSError('disk full'))
        with self.assertRaises(ReportError) as ctx:
            self.service.generate_sales_report(format='csv')
        self.assertEqual(
            str(ctx.exception),
            'Failed to generate sales report: Failed to format report: disk full',
        )


class ReportsAPITests(TestCase):
    """Test report endpoints"""

    def setUp(self):
        cache.clear()
        self.root = tempfile.mkdtemp()
        self.storage = override_settings(
            FILE_STORAGE={'UPLOAD_ROOT': os.path.join(self.root, 'uploads'), 'URL_PREFIX': '/uploads'},
            REPORT_TEMP_DIR=os.path.join(self.root, 'temp'),
        )
        self.storage.enable()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        order = TestDataFactory.create_order(total=Decimal('120.00'))
        TestDataFactory.create_payment(order)
        TestDataFactory.create_inventory(TestDataFactory.create_product(), quantity=3)

    def tearDown(self):
        self.storage.disable()
        shutil.rmtree(self.root, ignore_errors=True)

    def test_sales_report(self):
        """Test sales report JSON"""
        response = self.client.get('/api/v1/reports/sales/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['report']['summary']['totalOrders'], 1)

    def test_sales_report_with_date_range(self):
        """Test sales report with date range"""
        response = self.client.get('/api/v1/reports/sales/?date_from=2024-01-01&date_to=2024-12-31')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['report']['summary']['totalOrders'], 0)

    def test_invalid_date(self):
        """Test invalid date format"""
        response = self.client.get('/api/v1/reports/sales/?date_from=01-01-2024')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('date_from', response.data['errors'])

    def test_reversed_date_range(self):
        """Test date_from after date_to"""
        response = self.client.get('/api/v1/reports/sales/?date_from=2024-12-31&date_to=2024-01-01')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_invalid_format(self):
        """Test unsupported format parameter"""
        response = self.client.get('/api/v1/reports/sales/?format=docx')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_json_report_is_cached(self):
        """Test JSON results are served from cache"""
        self.client.get('/api/v1/reports/inventory/')
        with mock.patch('storeadmin.reports.views.report_service.collect_inventory_data') as collect:
            response = self.client.get('/api/v1/reports/inventory/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        collect.assert_not_called()

    def test_low_stock_inventory(self):
        """Test low stock inventory report"""
        response = self.client.get('/api/v1/reports/inventory/?low_stock_only=true')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['report']['title'], 'Low Stock Inventory Report')

    def test_customer_report(self):
        """Test customer report"""
        response = self.client.get('/api/v1/reports/customers/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsInstance(response.data['data']['report']['data'], list)

    def test_payment_report(self):
        """Test payment report with method filter"""
        response = self.client.get('/api/v1/reports/payments/?payment_method=credit_card')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['report']['summary']['totalPayments'], 1)

    def test_csv_export(self):
        """Test file export returns a descriptor and an audit entry"""
        response = self.client.get('/api/v1/reports/sales/?format=csv')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        file_info = response.data['data']['file']
        self.assertEqual(file_info['mimetype'], 'text/csv')
        self.assertTrue(AuditLog.objects.filter(action='report_generate', object_id=file_info['filename']).exists())

    @override_settings(FEATURES={'exportReports': False})
    def test_export_disabled(self):
        """Test file exports are refused when the feature is off"""
        response = self.client.get('/api/v1/reports/sales/?format=pdf')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_report_error(self):
        """Test service failures return a 500 envelope"""
        with mock.patch('storeadmin.reports.views.report_service.generate_payment_report',
                        side_effect=ReportError('Failed to generate payment report: boom')):
            response = self.client.get('/api/v1/reports/payments/?format=excel')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertFalse(response.data['success'])

    def test_list_download_delete_exports(self):
        """Test export listing, download and admin delete"""
        created = self.client.get('/api/v1/reports/inventory/?format=json&low_stock_only=false')
        self.assertEqual(created.status_code, status.HTTP_200_OK)
        export = self.client.get('/api/v1/reports/inventory/?format=excel')
        filename = export.data['data']['file']['filename']

        listing = self.client.get('/api/v1/reports/exports/')
        self.assertEqual(listing.status_code, status.HTTP_200_OK)
        self.assertEqual([item['filename'] for item in listing.data['data']], [filename])

        download = self.client.get(f'/api/v1/reports/exports/{filename}/')
        self.assertEqual(download.status_code, status.HTTP_200_OK)
        self.assertIn('attachment', download['Content-Disposition'])

        forbidden = self.client.delete(f'/api/v1/reports/exports/{filename}/')
        self.assertEqual(forbidden.status_code, status.HTTP_403_FORBIDDEN)

        admin_client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_admin())
        deleted = admin_client.delete(f'/api/v1/reports/exports/{filename}/')
        self.assertEqual(deleted.status_code, status.HTTP_200_OK)
        self.assertTrue(AuditLog.objects.filter(action='report_export_delete', object_id=filename).exists())

        missing = self.client.get(f'/api/v1/reports/exports/{filename}/')
        self.assertEqual(missing.status_code, status.HTTP_404_NOT_FOUND)
