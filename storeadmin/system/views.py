import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAdminUser

from storeadmin.core.responses import (
    API_ERRORS, success_response, error_response, validation_error_response,
)
from storeadmin.core.utils import create_audit_log
from .backup_service import BackupError, backup_service
from .serializers import (
    BackupCreateSerializer, BackupCleanupSerializer, DataExportSerializer, DataImportSerializer,
)

logger = logging.getLogger('storeadmin.system')


def _public(info):
    """Drop server paths from a service result"""
    return {key: value for key, value in info.items() if key != 'path'}


def _not_found(error):
    return isinstance(error.__cause__, FileNotFoundError)


@api_view(['GET', 'POST'])
@permission_classes([IsAdminUser])
def backup_list_create(request):
    """List backups (GET) or create a database backup (POST)"""
    if request.method == 'GET':
        try:
            backups = backup_service.list_backups()
        except BackupError as e:
            return error_response('Failed to list backups', error=e)
        return success_response('Backups fetched', [_public(item) for item in backups])

    serializer = BackupCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    try:
        backup = backup_service.create_backup(**serializer.validated_data)
    except BackupError as e:
        return error_response('Failed to create backup', error=e)

    create_audit_log(
        request,
        action='backup_create',
        model_name='Backup',
        object_id=backup['filename'],
        object_name=backup['filename'],
        changes={'size': backup['size'], 'tables': backup['tables']},
    )
    return success_response('Backup created', _public(backup), status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAdminUser])
def backup_delete(request, filename):
    try:
        backup_service.delete_backup(filename)
    except BackupError as e:
        if _not_found(e):
            return error_response(API_ERRORS['NOT_FOUND'], status.HTTP_404_NOT_FOUND)
        return error_response('Failed to delete backup', error=e)

    create_audit_log(request, 'backup_delete', 'Backup', filename, object_name=filename)
    return success_response('Backup deleted')


@api_view(['POST'])
@permission_classes([IsAdminUser])
def backup_restore(request, filename):
    """Restore the database from a backup file"""
    try:
        result = backup_service.restore_backup(filename)
    except BackupError as e:
        if _not_found(e):
            return error_response(API_ERRORS['NOT_FOUND'], status.HTTP_404_NOT_FOUND)
        return error_response('Failed to restore backup', error=e)

    create_audit_log(request, 'backup_restore', 'Backup', filename, object_name=filename)
    return success_response('Database restored', result)


@api_view(['POST'])
@permission_classes([IsAdminUser])
def backup_cleanup(request):
    serializer = BackupCleanupSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    days_to_keep = serializer.validated_data['days_to_keep']
    try:
        result = backup_service.cleanup_old_backups(days_to_keep)
    except BackupError as e:
        return error_response('Failed to clean up backups', error=e)

    if result['deletedCount']:
        create_audit_log(
            request,
            action='backup_cleanup',
            model_name='Backup',
            object_id=f"older-than-{days_to_keep}d",
            changes={'deletedBackups': result['deletedBackups']},
        )
    return success_response(f"Deleted {result['deletedCount']} old backups", result)


@api_view(['POST'])
@permission_classes([IsAdminUser])
def data_export(request):
    """Export model rows to a JSON file in the backup directory"""
    serializer = DataExportSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    try:
        result = backup_service.export_to_json(serializer.validated_data.get('models'))
    except BackupError as e:
        return error_response('Failed to export data', error=e)

    create_audit_log(
        request,
        action='data_export',
        model_name='Backup',
        object_id=result['filename'],
        object_name=result['filename'],
        changes={'recordCounts': result['recordCounts']},
    )
    return success_response('Data exported', _public(result), status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAdminUser])
def data_import(request):
    """Import a JSON export; optionally clear the affected tables first"""
    serializer = DataImportSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    filename = serializer.validated_data['filename']
    try:
        result = backup_service.import_from_json(filename, serializer.validated_data['clear_existing'])
    except BackupError as e:
        if _not_found(e):
            return error_response(API_ERRORS['NOT_FOUND'], status.HTTP_404_NOT_FOUND)
        return error_response('Failed to import data', error=e)

    create_audit_log(
        request,
        action='data_import',
        model_name='Backup',
        object_id=filename,
        object_name=filename,
        changes={'recordCounts': result['recordCounts'], 'clearExisting': serializer.validated_data['clear_existing']},
    )
    return success_response('Data imported', result)
