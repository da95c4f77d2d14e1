from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Admin panel user with contact details"""
    phone = models.CharField(max_length=20, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'


class Setting(models.Model):
    """System settings"""
    key = models.CharField(max_length=100, unique=True)
    value = models.TextField()
    description = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key

    class Meta:
        db_table = 'settings'


class AuditLog(models.Model):
    """Audit log for administrative operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('view', 'View'),
        ('login', 'Login'),
        ('report_generate', 'Report Generated'),
        ('report_export_delete', 'Report Export Deleted'),
        ('notification_send', 'Notification Sent'),
        ('backup_create', 'Backup Created'),
        ('backup_restore', 'Backup Restored'),
        ('backup_delete', 'Backup Deleted'),
        ('backup_cleanup', 'Backups Cleaned Up'),
        ('data_export', 'Data Exported'),
        ('data_import', 'Data Imported'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., report title, backup filename)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_logs_created_a2b6e1_idx'),
            models.Index(fields=['action'], name='audit_logs_action_5f1c7d_idx'),
            models.Index(fields=['model_name'], name='audit_logs_model_n_9e0a42_idx'),
        ]
