"""
Report generation.

Each report is collected from the sales tables into a payload of the shape
{title, period|generatedAt, summary, data} and can be written out as JSON,
CSV, Excel or PDF. Written files are handed to FileService under 'exports'.
"""
import csv
import json
import logging
import os
from datetime import datetime, time, timedelta
from decimal import Decimal
from pathlib import Path

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db.models import Avg, Count, F, Prefetch, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone
from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from storeadmin.core.exceptions import ServiceError
from storeadmin.core.file_service import FileService
from storeadmin.sales.models import Customer, Inventory, Order, Payment

logger = logging.getLogger('storeadmin.reports')

REPORT_FORMATS = ('json', 'csv', 'excel', 'pdf')

FORMAT_MIME_TYPES = {
    'json': 'application/json',
    'csv': 'text/csv',
    'excel': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'pdf': 'application/pdf',
}

FORMAT_EXTENSIONS = {
    'json': 'json',
    'csv': 'csv',
    'excel': 'xlsx',
    'pdf': 'pdf',
}

ACTIVE_CUSTOMER_DAYS = 90


class ReportError(ServiceError):
    pass


def _to_number(value):
    if value is None:
        return 0
    if isinstance(value, Decimal):
        return float(value)
    return value


def _iso(value):
    if value is None:
        return None
    return value.isoformat()


def _is_scalar(value):
    return not isinstance(value, (dict, list, tuple))


def _start_of_day(value):
    if isinstance(value, datetime):
        return value if timezone.is_aware(value) else timezone.make_aware(value)
    return timezone.make_aware(datetime.combine(value, time.min))


def _end_of_day(value):
    if isinstance(value, datetime):
        return value if timezone.is_aware(value) else timezone.make_aware(value)
    return timezone.make_aware(datetime.combine(value, time.max))


def resolve_period(start_date=None, end_date=None, default_days=30):
    """
    Turn optional dates into an aware [start, end] datetime range.
    Date-only bounds cover the whole day; a missing start defaults to
    `default_days` before now.
    """
    now = timezone.now()
    end = _end_of_day(end_date) if end_date else now
    start = _start_of_day(start_date) if start_date else now - timedelta(days=default_days)
    return start, end


class ReportService:
    """Builds sales, inventory, customer and payment reports"""

    def __init__(self, file_service=None, temp_dir=None):
        self.file_service = file_service or FileService()
        self._temp_dir = temp_dir

    @property
    def temp_dir(self):
        return Path(self._temp_dir or getattr(settings, 'REPORT_TEMP_DIR', Path(settings.BASE_DIR) / 'storage' / 'temp'))

    # Data collection

    def collect_sales_data(self, start_date=None, end_date=None, company_id=None):
        start, end = resolve_period(start_date, end_date, 30)

        queryset = Order.objects.filter(created_at__range=(start, end))
        if company_id:
            queryset = queryset.filter(company_id=company_id)

        daily = (
            queryset
            .annotate(date=TruncDate('created_at'))
            .values('date')
            .annotate(orderCount=Count('id'), totalSales=Sum('total'), averageOrderValue=Avg('total'))
            .order_by('date')
        )

        rows = [{
            'date': _iso(day['date']),
            'orderCount': day['orderCount'],
            'totalSales': _to_number(day['totalSales']),
            'averageOrderValue': round(_to_number(day['averageOrderValue']), 2),
        } for day in daily]

        total_orders = sum(row['orderCount'] for row in rows)
        total_sales = sum(row['totalSales'] for row in rows)

        return {
            'title': 'Sales Report',
            'period': {'start': _iso(start), 'end': _iso(end)},
            'summary': {
                'totalOrders': total_orders,
                'totalSales': round(total_sales, 2),
                'averageOrderValue': round(total_sales / total_orders, 2) if total_orders else 0,
            },
            'data': rows,
        }

    def collect_inventory_data(self, company_id=None, low_stock_only=False):
        queryset = Inventory.objects.select_related('product')
        if company_id:
            queryset = queryset.filter(product__company_id=company_id)
        if low_stock_only:
            queryset = queryset.filter(quantity__lt=F('reorder_threshold'))
        queryset = queryset.order_by('quantity', 'id')

        items = list(queryset)
        rows = []
        for item in items:
            product = item.product
            price = _to_number(product.price) if product else 0
            rows.append({
                'productId': item.product_id,
                'productName': product.name if product else 'Unknown',
                'sku': product.sku if product else '',
                'quantity': item.quantity,
                'reorderThreshold': item.reorder_threshold,
                'reorderAmount': item.reorder_amount,
                'location': item.location,
                'lastRestocked': _iso(item.last_restock_date),
                'price': price,
                'value': round(price * item.quantity, 2),
            })

        return {
            'title': 'Low Stock Inventory Report' if low_stock_only else 'Inventory Report',
            'generatedAt': _iso(timezone.now()),
            'summary': {
                'totalProducts': len(items),
                'totalItems': sum(item.quantity for item in items),
                'lowStockItems': sum(1 for item in items if item.quantity < item.reorder_threshold),
            },
            'data': rows,
        }

    def collect_customer_data(self, start_date=None, end_date=None, company_id=None):
        start, end = resolve_period(start_date, end_date, 90)
        now = timezone.now()

        customers = Customer.objects.prefetch_related(
            Prefetch(
                'orders',
                queryset=Order.objects.filter(created_at__range=(start, end)).only('id', 'total', 'created_at', 'customer_id'),
                to_attr='period_orders',
            )
        ).order_by('id')
        if company_id:
            customers = customers.filter(company_id=company_id)

        rows = []
        for customer in customers:
            orders = customer.period_orders
            total_spent = sum(_to_number(order.total) for order in orders)
            order_count = len(orders)
            first_order = min((order.created_at for order in orders), default=None)
            last_order = max((order.created_at for order in orders), default=None)

            rows.append({
                'id': customer.id,
                'name': customer.name,
                'email': customer.email,
                'phone': customer.phone,
                'registeredDate': _iso(customer.created_at),
                'orderCount': order_count,
                'totalSpent': round(total_spent, 2),
                'averageOrderValue': round(total_spent / order_count, 2) if order_count else 0,
                'firstOrderDate': _iso(first_order),
                'lastOrderDate': _iso(last_order),
                'daysSinceLastOrder': (now - last_order).days if last_order else None,
                'customerLifetimeValue': round(total_spent, 2),
            })

        rows.sort(key=lambda row: row['totalSpent'], reverse=True)

        active_customers = sum(
            1 for row in rows
            if row['daysSinceLastOrder'] is not None and row['daysSinceLastOrder'] < ACTIVE_CUSTOMER_DAYS
        )

        total_revenue = sum(row['totalSpent'] for row in rows)
        return {
            'title': 'Customer Report',
            'period': {'start': _iso(start), 'end': _iso(end)},
            'summary': {
                'totalCustomers': len(rows),
                'totalRevenue': round(total_revenue, 2),
                'averageCustomerValue': round(total_revenue / (len(rows) or 1), 2),
                'activeCustomers': active_customers,
            },
            'data': rows,
        }

    def collect_payment_data(self, start_date=None, end_date=None, company_id=None, payment_method=None):
        start, end = resolve_period(start_date, end_date, 30)

        queryset = Payment.objects.select_related('order').filter(payment_date__range=(start, end))
        if company_id:
            queryset = queryset.filter(order__company_id=company_id)
        if payment_method:
            queryset = queryset.filter(payment_method=payment_method)
        queryset = queryset.order_by('payment_date', 'id')

        rows = []
        groups = {}
        for payment in queryset:
            amount = _to_number(payment.amount)
            group = groups.setdefault(payment.payment_method, {'count': 0, 'total': 0})
            group['count'] += 1
            group['total'] += amount
            rows.append({
                'id': payment.id,
                'orderId': payment.order_id,
                'orderNumber': payment.order.order_number if payment.order else 'Unknown',
                'amount': amount,
                'method': payment.payment_method,
                'date': _iso(payment.payment_date),
                'status': payment.status,
                'transactionId': payment.transaction_id,
            })

        breakdown = [{
            'method': method,
            'count': group['count'],
            'total': round(group['total'], 2),
            'percentage': f"{group['count'] / len(rows) * 100:.2f}",
        } for method, group in groups.items()]

        return {
            'title': 'Payment Report',
            'period': {'start': _iso(start), 'end': _iso(end)},
            'summary': {
                'totalPayments': len(rows),
                'totalRevenue': round(sum(row['amount'] for row in rows), 2),
                'paymentMethodBreakdown': breakdown,
            },
            'data': rows,
        }

    # Report generation

    def generate_sales_report(self, start_date=None, end_date=None, company_id=None, format='json'):
        try:
            report_data = self.collect_sales_data(start_date, end_date, company_id)
            return self.format_report(report_data, format, 'sales-report')
        except Exception as e:
            logger.error(f"Error generating sales report: {str(e)}", exc_info=True)
            raise ReportError(f"Failed to generate sales report: {str(e)}") from e

    def generate_inventory_report(self, company_id=None, low_stock_only=False, format='json'):
        try:
            report_data = self.collect_inventory_data(company_id, low_stock_only)
            return self.format_report(report_data, format, 'inventory-report')
        except Exception as e:
            logger.error(f"Error generating inventory report: {str(e)}", exc_info=True)
            raise ReportError(f"Failed to generate inventory report: {str(e)}") from e

    def generate_customer_report(self, start_date=None, end_date=None, company_id=None, format='json'):
        try:
            report_data = self.collect_customer_data(start_date, end_date, company_id)
            return self.format_report(report_data, format, 'customer-report')
        except Exception as e:
            logger.error(f"Error generating customer report: {str(e)}", exc_info=True)
            raise ReportError(f"Failed to generate customer report: {str(e)}") from e

    def generate_payment_report(self, start_date=None, end_date=None, company_id=None,
                                payment_method=None, format='json'):
        try:
            report_data = self.collect_payment_data(start_date, end_date, company_id, payment_method)
            return self.format_report(report_data, format, 'payment-report')
        except Exception as e:
            logger.error(f"Error generating payment report: {str(e)}", exc_info=True)
            raise ReportError(f"Failed to generate payment report: {str(e)}") from e

    def format_report(self, report_data, format, filename):
        """
        Write report_data in the requested format and store the file.

        Unknown formats are written as JSON. Returns
        {report, file: {url, filename, mimetype, size}}.
        """
        file_path = None
        try:
            format = (format or 'json').lower()
            if format not in REPORT_FORMATS:
                format = 'json'

            timestamp = timezone.now().isoformat().replace(':', '-').replace('.', '-')
            file_basename = f"{filename}-{timestamp}"
            extension = FORMAT_EXTENSIONS[format]

            self.temp_dir.mkdir(parents=True, exist_ok=True)
            file_path = self.temp_dir / f"{file_basename}.{extension}"

            writer = getattr(self, f"_write_{format}")
            writer(report_data, file_path)

            mimetype = FORMAT_MIME_TYPES[format]
            stored = self.file_service.store_file(
                f"{file_basename}.{extension}",
                file_path.read_bytes(),
                subdir='exports',
                mimetype=mimetype,
            )

            return {
                'report': report_data,
                'file': {
                    'url': stored['url'],
                    'filename': stored['filename'],
                    'mimetype': mimetype,
                    'size': stored['size'],
                },
            }
        except Exception as e:
            logger.error(f"Error formatting report: {str(e)}", exc_info=True)
            raise ReportError(f"Failed to format report: {str(e)}") from e
        finally:
            if file_path is not None and file_path.exists():
                try:
                    os.remove(file_path)
                except OSError as e:
                    logger.warning(f"Could not remove temp report file {file_path}: {str(e)}")

    # Writers

    def _write_json(self, report_data, file_path):
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(report_data, f, indent=2, cls=DjangoJSONEncoder)

    def _write_csv(self, report_data, file_path):
        rows = report_data.get('data')
        if not isinstance(rows, list):
            rows = []

        fieldnames = []
        for row in rows:
            for key in row:
                if key not in fieldnames:
                    fieldnames.append(key)

        with open(file_path, 'w', newline='', encoding='utf-8') as f:
            if not rows:
                return
            writer = csv.DictWriter(f, fieldnames=fieldnames, restval='')
            writer.writeheader()
            for row in rows:
                writer.writerow(row)

    def _write_excel(self, report_data, file_path):
        workbook = Workbook()
        workbook.properties.creator = 'Admin System'
        sheet = workbook.active
        sheet.title = 'Report'

        sheet.append([report_data.get('title', 'Report')])
        sheet.cell(row=1, column=1).font = Font(bold=True, size=16)
        sheet.append([f"Generated: {timezone.localtime():%Y-%m-%d %H:%M:%S}"])
        sheet.append([])

        sheet.append(['Summary'])
        sheet.cell(row=4, column=1).font = Font(bold=True)

        summary_rows = [
            [key, value] for key, value in (report_data.get('summary') or {}).items()
            if _is_scalar(value)
        ]
        for row in summary_rows:
            sheet.append(row)

        sheet.append([])
        sheet.append(['Data'])
        sheet.cell(row=6 + len(summary_rows), column=1).font = Font(bold=True)

        rows = report_data.get('data')
        column_count = 2
        if isinstance(rows, list) and rows:
            headers = list(rows[0].keys())
            column_count = max(column_count, len(headers))
            sheet.append(headers)
            for cell in sheet[7 + len(summary_rows)]:
                cell.font = Font(bold=True)
            for row in rows:
                sheet.append([
                    value if _is_scalar(value) else json.dumps(value, cls=DjangoJSONEncoder)
                    for value in row.values()
                ])

        for index in range(1, column_count + 1):
            sheet.column_dimensions[get_column_letter(index)].width = 15

        workbook.save(file_path)

    def _write_pdf(self, report_data, file_path):
        max_rows = getattr(settings, 'REPORT_PDF_MAX_ROWS', 100)
        rows_per_page = getattr(settings, 'REPORT_PDF_ROWS_PER_PAGE', 5)
        page_width, page_height = letter
        margin = 50

        pdf = canvas.Canvas(str(file_path), pagesize=letter)
        pdf.setTitle(report_data.get('title', 'Report'))
        y = page_height - margin

        def write_line(text, size=12, bold=False, gap=6):
            """Draw text, wrapping it to the printable width"""
            nonlocal y
            font = 'Helvetica-Bold' if bold else 'Helvetica'
            text = str(text)
            stripped = text.lstrip(' ')
            indent = stringWidth(text[:len(text) - len(stripped)], font, size)
            pieces = simpleSplit(stripped, font, size, page_width - 2 * margin - indent) or ['']

            for position, piece in enumerate(pieces):
                if y < margin + size:
                    pdf.showPage()
                    y = page_height - margin
                pdf.setFont(font, size)
                pdf.drawString(margin + indent, y - size, piece)
                y -= size + (gap if position == len(pieces) - 1 else 2)

        pdf.setFont('Helvetica-Bold', 20)
        pdf.drawCentredString(page_width / 2, y - 20, str(report_data.get('title', 'Report')))
        y -= 40
        write_line(f"Generated: {timezone.localtime():%Y-%m-%d %H:%M:%S}", gap=16)

        write_line('Summary', size=16, bold=True, gap=10)
        for key, value in (report_data.get('summary') or {}).items():
            if _is_scalar(value):
                write_line(f"{key}: {value}")
        y -= 12

        rows = report_data.get('data')
        if isinstance(rows, list) and 0 < len(rows) <= max_rows:
            write_line('Data', size=16, bold=True, gap=10)
            for index, row in enumerate(rows):
                write_line(f"Item {index + 1}:")
                for key, value in row.items():
                    write_line(f"  {key}: {value}", size=10, gap=4)
                y -= 12

                if (index + 1) % rows_per_page == 0 and index < len(rows) - 1:
                    pdf.showPage()
                    y = page_height - margin
        elif isinstance(rows, list) and len(rows) > max_rows:
            write_line('Data section too large for PDF. Please use Excel or CSV format for full data.')

        pdf.save()


report_service = ReportService()
