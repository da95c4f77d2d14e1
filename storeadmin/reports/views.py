import logging

from django.conf import settings
from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from storeadmin.core.cache_utils import cached_query, report_cache_key
from storeadmin.core.exceptions import FileStorageError
from storeadmin.core.responses import (
    API_ERRORS, success_response, error_response, validation_error_response,
)
from storeadmin.core.utils import create_audit_log
from .report_service import report_service
from .serializers import ReportQuerySerializer

logger = logging.getLogger('storeadmin.reports')

EXPORTS_SUBDIR = 'exports'


def _run_report(request, report_type, collect, generate, **options):
    """
    Shared flow for the report endpoints.
    JSON is returned inline and cached; other formats are written to a file.
    """
    serializer = ReportQuerySerializer(data=request.query_params)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    params = serializer.validated_data
    report_format = params['format']

    kwargs = {key: params.get(source) for key, source in options.items()}

    if report_format != 'json' and not settings.FEATURES.get('exportReports', True):
        return error_response('Report export is disabled', status.HTTP_403_FORBIDDEN)

    try:
        if report_format == 'json':
            cache_key = report_cache_key(report_type, {k: str(v) for k, v in kwargs.items()})
            report = cached_query(cache_key, lambda: collect(**kwargs))
            return success_response(f"{report['title']} generated", {'report': report})

        result = generate(format=report_format, **kwargs)
    except Exception as e:
        logger.error(f"Error generating {report_type} report: {str(e)}", exc_info=True)
        return error_response(f"Failed to generate {report_type} report", error=e)

    create_audit_log(
        request,
        action='report_generate',
        model_name='Report',
        object_id=result['file']['filename'],
        object_name=result['report']['title'],
        changes={'format': report_format, 'params': {k: str(v) for k, v in kwargs.items() if v}},
    )
    return success_response(f"{result['report']['title']} generated", result)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def sales_report(request):
    """Daily order totals over a date range (default last 30 days)"""
    return _run_report(
        request, 'sales',
        report_service.collect_sales_data, report_service.generate_sales_report,
        start_date='date_from', end_date='date_to', company_id='company',
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def inventory_report(request):
    """Stock levels, optionally only items below their reorder threshold"""
    return _run_report(
        request, 'inventory',
        report_service.collect_inventory_data, report_service.generate_inventory_report,
        company_id='company', low_stock_only='low_stock_only',
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def customer_report(request):
    """Per-customer spend over a date range (default last 90 days)"""
    return _run_report(
        request, 'customer',
        report_service.collect_customer_data, report_service.generate_customer_report,
        start_date='date_from', end_date='date_to', company_id='company',
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def payment_report(request):
    """Payments with a per-method breakdown"""
    return _run_report(
        request, 'payment',
        report_service.collect_payment_data, report_service.generate_payment_report,
        start_date='date_from', end_date='date_to', company_id='company',
        payment_method='payment_method',
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def export_list(request):
    """List generated report files, newest first"""
    try:
        files = report_service.file_service.list_files(EXPORTS_SUBDIR)
    except FileStorageError as e:
        logger.error(f"Error listing report exports: {str(e)}", exc_info=True)
        return error_response('Failed to list report exports', error=e)

    for item in files:
        item.pop('path', None)
    return success_response('Report exports fetched', files)


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def export_detail(request, filename):
    """Download a generated report file, or delete it (admin only)"""
    file_service = report_service.file_service

    if request.method == 'DELETE':
        if not request.user.is_staff:
            return error_response(API_ERRORS['FORBIDDEN'], status.HTTP_403_FORBIDDEN)
        try:
            file_service.delete_file(filename, EXPORTS_SUBDIR)
        except FileStorageError as e:
            if isinstance(e.__cause__, FileNotFoundError):
                return error_response(API_ERRORS['NOT_FOUND'], status.HTTP_404_NOT_FOUND)
            logger.error(f"Error deleting report export {filename}: {str(e)}", exc_info=True)
            return error_response('Failed to delete report export', error=e)

        create_audit_log(request, 'report_export_delete', 'Report', filename, object_name=filename)
        return success_response('Report export deleted')

    try:
        stored = file_service.get_file(filename, EXPORTS_SUBDIR)
    except FileStorageError as e:
        if isinstance(e.__cause__, FileNotFoundError):
            return error_response(API_ERRORS['NOT_FOUND'], status.HTTP_404_NOT_FOUND)
        logger.error(f"Error reading report export {filename}: {str(e)}", exc_info=True)
        return error_response('Failed to read report export', error=e)

    response = HttpResponse(stored['content'], content_type=stored['mimetype'])
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    response['Content-Length'] = stored['size']
    return response
