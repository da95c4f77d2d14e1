from django.urls import path
from . import views

urlpatterns = [
    path('notifications/', views.send_notification, name='notification-send'),
    path('notifications/system/', views.send_system_notification, name='notification-system'),
    path('notifications/history/', views.notification_history, name='notification-history'),
    path('notifications/channels/', views.channel_list, name='notification-channels'),
]
