"""
URL configuration for the store admin panel.

All API routes live under /api/v1/; each app contributes its own urlpatterns.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "E-Commerce Admin Panel"
admin.site.site_title = "E-Commerce Admin Portal"
admin.site.index_title = "Welcome to the E-Commerce Admin Panel"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('storeadmin.core.urls')),
    path('api/v1/', include('storeadmin.reports.urls')),
    path('api/v1/', include('storeadmin.notifications.urls')),
    path('api/v1/', include('storeadmin.system.urls')),
]
