"""Response envelope helpers shared by every API view"""
from rest_framework import status
from rest_framework.response import Response

API_ERRORS = {
    'UNAUTHORIZED': 'Unauthorized access',
    'FORBIDDEN': 'Access forbidden',
    'NOT_FOUND': 'Resource not found',
    'BAD_REQUEST': 'Invalid request',
    'SERVER_ERROR': 'Server error',
    'VALIDATION_ERROR': 'Validation error',
}

API_SUCCESS = {
    'CREATED': 'Resource created successfully',
    'UPDATED': 'Resource updated successfully',
    'DELETED': 'Resource deleted successfully',
    'FETCHED': 'Resource fetched successfully',
}


def success_response(message='Success', data=None, status_code=status.HTTP_200_OK):
    """Wrap data in the {success, message, data} envelope"""
    body = {'success': True, 'message': message}
    if data is not None:
        body['data'] = data
    return Response(body, status=status_code)


def error_response(message=API_ERRORS['SERVER_ERROR'], status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                   errors=None, error=None):
    """
    Build a failure envelope.

    `errors` carries field-level validation details, `error` the raw
    exception text and is only included when DEBUG is on.
    """
    from django.conf import settings

    body = {'success': False, 'message': message}
    if errors:
        body['errors'] = errors
    if error and settings.DEBUG:
        body['error'] = str(error)
    return Response(body, status=status_code)


def validation_error_response(errors):
    return error_response(API_ERRORS['VALIDATION_ERROR'], status.HTTP_400_BAD_REQUEST, errors=errors)


def page_payload(page_obj, data):
    """Wrap one page of serialized data with the pagination state"""
    paginator = page_obj.paginator
    total_items = paginator.count

    return {
        'data': data,
        'pagination': {
            'totalItems': total_items,
            'pageSize': paginator.per_page,
            'currentPage': page_obj.number,
            'totalPages': paginator.num_pages if total_items else 0,
            'hasNextPage': page_obj.has_next(),
            'hasPrevPage': page_obj.has_previous(),
        },
    }
