from django.urls import path
from . import views

urlpatterns = [
    path('system/backups/', views.backup_list_create, name='backup-list-create'),
    path('system/backups/cleanup/', views.backup_cleanup, name='backup-cleanup'),
    path('system/backups/<str:filename>/', views.backup_delete, name='backup-delete'),
    path('system/backups/<str:filename>/restore/', views.backup_restore, name='backup-restore'),
    path('system/export/', views.data_export, name='data-export'),
    path('system/import/', views.data_import, name='data-import'),
]
