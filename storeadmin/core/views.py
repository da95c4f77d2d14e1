import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import ObjectDoesNotExist
from django.core.paginator import Paginator
from django.db import connection
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import IsAuthenticated, IsAdminUser, AllowAny
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .exceptions import FileStorageError
from .file_service import FileService
from .filters import AuditLogFilter
from .models import Setting, AuditLog
from .responses import (
    API_ERRORS, API_SUCCESS, success_response, error_response,
    validation_error_response, page_payload,
)
from .serializers import (
    UserSerializer, UserCreateSerializer,
    SettingSerializer, AuditLogSerializer, FileUploadSerializer, PaginationQuerySerializer,
)
from .utils import create_audit_log

User = get_user_model()
logger = logging.getLogger('storeadmin.core')


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            from rest_framework_simplejwt.exceptions import AuthenticationFailed
            raise AuthenticationFailed('User account is disabled.')
        data['user'] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['is_staff'] = user.is_staff
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        if response.status_code == status.HTTP_200_OK:
            user = User.objects.filter(username=request.data.get('username')).first()
            create_audit_log(
                request=request,
                action='login',
                model_name='User',
                object_id=user.pk if user else '',
                object_name=user.username if user else None,
                user=user,
            )
            return success_response('Login successful', response.data)
        return response


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that reports deleted users as an invalid token"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        if response.status_code == status.HTTP_200_OK:
            return success_response('Token refreshed', response.data)
        return response


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """User registration endpoint"""
    if not settings.FEATURES.get('userRegistration', True):
        return error_response('User registration is disabled', status.HTTP_403_FORBIDDEN)

    serializer = UserCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    user = serializer.save()
    token = CustomTokenObtainPairSerializer.get_token(user)
    logger.info(f"User registered: {user.username}")
    return success_response(API_SUCCESS['CREATED'], {
        'user': UserSerializer(user).data,
        'access': str(token.access_token),
        'refresh': str(token),
    }, status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Current user with feature flags"""
    user_data = UserSerializer(request.user).data
    user_data['groups'] = list(request.user.groups.values_list('name', flat=True))
    user_data['features'] = settings.FEATURES
    return success_response(API_SUCCESS['FETCHED'], user_data)


# Setting views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminUser])
def setting_list_create(request):
    """List all settings or create a new setting"""
    if request.method == 'GET':
        settings_list = Setting.objects.all()
        serializer = SettingSerializer(settings_list, many=True)
        return success_response(API_SUCCESS['FETCHED'], serializer.data)

    serializer = SettingSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    setting = serializer.save()
    create_audit_log(request, 'create', 'Setting', setting.pk, object_name=setting.key,
                     changes={'value': setting.value})
    return success_response(API_SUCCESS['CREATED'], serializer.data, status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminUser])
def setting_detail(request, pk):
    """Retrieve, update or delete a setting"""
    setting = get_object_or_404(Setting, pk=pk)

    if request.method == 'GET':
        return success_response(API_SUCCESS['FETCHED'], SettingSerializer(setting).data)

    if request.method == 'DELETE':
        key = setting.key
        setting.delete()
        create_audit_log(request, 'delete', 'Setting', pk, object_name=key)
        return success_response(API_SUCCESS['DELETED'])

    old_value = setting.value
    serializer = SettingSerializer(setting, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    serializer.save()
    create_audit_log(request, 'update', 'Setting', pk, object_name=setting.key,
                     changes={'value': {'old': old_value, 'new': setting.value}})
    return success_response(API_SUCCESS['UPDATED'], serializer.data)


# AuditLog views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs; non-staff users only see their own entries"""
    queryset = AuditLog.objects.select_related('user').all()
    if not request.user.is_staff:
        queryset = queryset.filter(user=request.user)

    filterset = AuditLogFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return validation_error_response({field: [str(message) for message in messages] for field, messages in filterset.errors.items()})

    paging = PaginationQuerySerializer(data=request.query_params)
    if not paging.is_valid():
        return validation_error_response(paging.errors)

    paginator = Paginator(filterset.qs.order_by('-created_at', '-id'), paging.validated_data['page_size'])
    page_obj = paginator.get_page(paging.validated_data['page'])
    serializer = AuditLogSerializer(page_obj, many=True)
    return success_response(API_SUCCESS['FETCHED'], page_payload(page_obj, serializer.data))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)
    if not request.user.is_staff and audit_log.user != request.user:
        return error_response(API_ERRORS['FORBIDDEN'], status.HTTP_403_FORBIDDEN)
    return success_response(API_SUCCESS['FETCHED'], AuditLogSerializer(audit_log).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def health(request):
    """Liveness probe"""
    return success_response('API is running', {
        'name': settings.APP_NAME,
        'version': settings.APP_VERSION,
        'timestamp': timezone.now().isoformat(),
    })


@api_view(['GET'])
@permission_classes([AllowAny])
def test_connection(request):
    """Check database and cache connectivity"""
    checks = {}
    healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchone()
        checks['database'] = {'status': 'ok', 'vendor': connection.vendor}
    except Exception as e:
        logger.error(f"Database connection check failed: {str(e)}", exc_info=True)
        checks['database'] = {'status': 'error'}
        healthy = False

    try:
        cache.set('storeadmin:connection-check', 'ok', 5)
        ok = cache.get('storeadmin:connection-check') == 'ok'
        checks['cache'] = {'status': 'ok' if ok else 'error'}
        healthy = healthy and ok
    except Exception as e:
        logger.error(f"Cache connection check failed: {str(e)}", exc_info=True)
        checks['cache'] = {'status': 'error'}
        healthy = False

    if not healthy:
        return Response({
            'success': False,
            'message': 'Connection failed',
            'data': checks,
        }, status=status.HTTP_503_SERVICE_UNAVAILABLE)
    return success_response('Connection successful', checks)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser])
def upload_file(request):
    """Store an uploaded file in one of the storage subdirectories"""
    serializer = FileUploadSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    uploaded = serializer.validated_data['file']
    subdir = serializer.validated_data['subdir']
    try:
        stored = FileService().store_file_from_stream(
            uploaded, uploaded.name, subdir=subdir,
            metadata={'uploadedBy': request.user.pk},
        )
    except FileStorageError as e:
        logger.error(f"Error uploading file: {str(e)}", exc_info=True)
        return error_response('Failed to upload file', error=e)

    create_audit_log(request, 'create', 'File', stored['filename'], object_name=uploaded.name)
    stored.pop('path', None)
    return success_response('File uploaded successfully', stored, status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def presigned_upload_url(request):
    """Describe a direct upload target"""
    subdir = request.query_params.get('subdir', 'temp')
    try:
        expires_in = int(request.query_params.get('expires_in', 3600))
    except ValueError:
        return validation_error_response({'expires_in': ['A valid integer is required.']})

    data = FileService().get_presigned_upload_url(
        filename=request.query_params.get('filename'),
        subdir=subdir,
        expires_in=expires_in,
    )
    return success_response(API_SUCCESS['FETCHED'], data)
