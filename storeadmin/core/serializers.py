from django.conf import settings
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from .models import User, Setting, AuditLog

UPLOAD_SUBDIRS = ['images', 'documents', 'products', 'avatars', 'temp']


class UserSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'full_name', 'phone',
                  'is_active', 'is_staff', 'is_superuser', 'last_login', 'created_at', 'updated_at']
        read_only_fields = ['is_staff', 'is_superuser', 'last_login', 'created_at', 'updated_at']

    def get_full_name(self, obj):
        return obj.get_full_name() or obj.username


class UserCreateSerializer(serializers.ModelSerializer):
    """Self-registration payload"""
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name', 'phone']

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError('A user with this email already exists')
        return value.lower()

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({'password': "Passwords don't match"})
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        return User.objects.create_user(**validated_data)


class SettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = Setting
        fields = ['id', 'key', 'value', 'description', 'updated_at']

    def validate_key(self, value):
        return value.strip()


class AuditLogSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True, default=None)
    action_display = serializers.CharField(source='get_action_display', read_only=True)

    class Meta:
        model = AuditLog
        fields = ['id', 'user', 'username', 'action', 'action_display', 'model_name', 'object_id',
                  'object_name', 'changes', 'ip_address', 'created_at']


class FileUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    subdir = serializers.ChoiceField(choices=UPLOAD_SUBDIRS, default='temp')

    def validate_file(self, value):
        max_size = settings.FILE_STORAGE.get('MAX_UPLOAD_SIZE')
        if max_size and value.size > max_size:
            raise serializers.ValidationError(f"File too large: {value.size} bytes (max {max_size})")
        return value


class PaginationQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    page_size = serializers.IntegerField(required=False, min_value=1, max_value=500, default=50)
