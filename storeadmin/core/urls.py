from django.urls import path
from .views import (
    CustomTokenObtainPairView, CustomTokenRefreshView, register, user_me,
    setting_list_create, setting_detail,
    audit_log_list, audit_log_detail,
    health, test_connection,
    upload_file, presigned_upload_url,
)

urlpatterns = [
    # Auth endpoints
    path('auth/register/', register, name='register'),
    path('auth/login/', CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/me/', user_me, name='user-me'),

    # Setting endpoints
    path('settings/', setting_list_create, name='setting-list-create'),
    path('settings/<int:pk>/', setting_detail, name='setting-detail'),

    # AuditLog endpoints
    path('audit-logs/', audit_log_list, name='audit-log-list'),
    path('audit-logs/<int:pk>/', audit_log_detail, name='audit-log-detail'),

    # File storage endpoints
    path('uploads/', upload_file, name='upload-file'),
    path('uploads/presigned/', presigned_upload_url, name='presigned-upload-url'),

    # Status endpoints
    path('health/', health, name='health'),
    path('test-connection/', test_connection, name='test-connection'),
]
