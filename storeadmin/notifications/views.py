import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated, IsAdminUser

from storeadmin.core.responses import success_response, error_response, validation_error_response
from storeadmin.core.utils import create_audit_log
from .notification_service import NotificationError, get_notification_service
from .serializers import (
    NotificationSerializer, SystemNotificationSerializer, NotificationHistoryQuerySerializer,
)

logger = logging.getLogger('storeadmin.notifications')


@api_view(['POST'])
@permission_classes([IsAdminUser])
def send_notification(request):
    """Send a notification to a channel and/or a list of users"""
    serializer = NotificationSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    try:
        notification = get_notification_service().send_notification(dict(serializer.validated_data))
    except NotificationError as e:
        return error_response('Failed to send notification', error=e)

    create_audit_log(
        request,
        action='notification_send',
        model_name='Notification',
        object_id=notification['id'],
        object_name=notification['title'],
        changes={'channel': notification.get('channel'), 'users': notification.get('users')},
    )
    return success_response('Notification sent', notification, status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAdminUser])
def send_system_notification(request):
    serializer = SystemNotificationSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    data = serializer.validated_data
    try:
        notification = get_notification_service().create_system_notification(
            data['title'], data['message'], data['level'],
        )
    except NotificationError as e:
        return error_response('Failed to send notification', error=e)

    create_audit_log(
        request,
        action='notification_send',
        model_name='Notification',
        object_id=notification['id'],
        object_name=notification['title'],
        changes={'channel': 'system', 'level': data['level']},
    )
    return success_response('System notification sent', notification, status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notification_history(request):
    """Recent notifications, newest first. Non-staff users only see their own."""
    serializer = NotificationHistoryQuerySerializer(data=request.query_params)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    params = dict(serializer.validated_data)
    if not request.user.is_staff:
        params['user_id'] = request.user.id

    notifications = get_notification_service().get_notification_history(**params)
    return success_response('Notifications fetched', {
        'notifications': notifications,
        'count': len(notifications),
        'limit': params['limit'],
        'offset': params['offset'],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def channel_list(request):
    channels = get_notification_service().get_channels()
    return success_response('Channels fetched', [
        {'name': name, 'count': count} for name, count in channels.items()
    ])
