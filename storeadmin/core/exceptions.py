import logging

from django.conf import settings
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .responses import API_ERRORS

logger = logging.getLogger('storeadmin.core')


class ServiceError(Exception):
    """Base class for failures raised by the service layer"""


class FileStorageError(ServiceError):
    pass


def api_exception_handler(exc, context):
    """
    DRF exception handler that renders every error in the
    {success: false, message, ...} envelope.
    """
    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        view_name = view.__class__.__name__ if view else 'unknown view'
        logger.error(f"Unhandled error in {view_name}: {str(exc)}", exc_info=exc)
        body = {'success': False, 'message': API_ERRORS['SERVER_ERROR']}
        if settings.DEBUG:
            body['error'] = str(exc)
        return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(exc, exceptions.ValidationError):
        response.data = {
            'success': False,
            'message': API_ERRORS['VALIDATION_ERROR'],
            'errors': response.data,
        }
    elif isinstance(exc, Http404) or isinstance(exc, exceptions.NotFound):
        response.data = {'success': False, 'message': API_ERRORS['NOT_FOUND']}
    elif isinstance(exc, exceptions.NotAuthenticated) or isinstance(exc, exceptions.AuthenticationFailed):
        detail = response.data.get('detail') if isinstance(response.data, dict) else None
        response.data = {'success': False, 'message': str(detail or API_ERRORS['UNAUTHORIZED'])}
    elif isinstance(exc, exceptions.PermissionDenied):
        response.data = {'success': False, 'message': API_ERRORS['FORBIDDEN']}
    else:
        detail = response.data.get('detail') if isinstance(response.data, dict) else response.data
        response.data = {'success': False, 'message': str(detail or API_ERRORS['BAD_REQUEST'])}

    return response
