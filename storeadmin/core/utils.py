"""Utility functions for audit logging and default admin provisioning"""
import logging

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (report_generate, backup_create, etc.)
        model_name: Name of the model or service being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object (e.g., report title, backup filename)
    """
    try:
        audit_user = None
        if user:
            audit_user = user
        elif request and hasattr(request, 'user'):
            audit_user = request.user

        ip_address = get_client_ip(request) if request else None

        if not action or not model_name or not object_id:
            logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
            return None

        return AuditLog.objects.create(
            user=audit_user if audit_user and audit_user.is_authenticated else None,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            object_name=object_name,
            changes=changes or {},
            ip_address=ip_address
        )
    except Exception as e:
        # Audit failures never break the main operation
        logger.error(f"Failed to create audit log: {str(e)}")
        return None


def ensure_default_admin():
    """
    Create the default superuser when no superuser exists yet.
    Returns (user, created).
    """
    from django.conf import settings
    from django.contrib.auth import get_user_model
    from django.db import IntegrityError, transaction

    User = get_user_model()

    existing = User.objects.filter(is_superuser=True).order_by('id').first()
    if existing:
        logger.info(f"Super admin already exists: {existing.username}")
        return existing, False

    try:
        with transaction.atomic():
            user = User.objects.create_superuser(
                username=settings.DEFAULT_ADMIN_USERNAME,
                email=settings.DEFAULT_ADMIN_EMAIL,
                password=settings.DEFAULT_ADMIN_PASSWORD,
                first_name='Super',
                last_name='Admin',
            )
    except IntegrityError:
        user = User.objects.get(username=settings.DEFAULT_ADMIN_USERNAME)
        if not user.is_superuser:
            logger.warning(
                f"Username {user.username} is taken by a non-superuser account; no default admin was created"
            )
        else:
            logger.info(f"Super admin already exists (unique constraint): {user.username}")
        return user, False

    logger.info("Default super admin created successfully")
    logger.info(f"Username: {settings.DEFAULT_ADMIN_USERNAME}")
    logger.info(f"Email: {settings.DEFAULT_ADMIN_EMAIL}")
    logger.warning("Please change the default password after first login!")
    return user, True
