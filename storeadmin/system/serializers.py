from rest_framework import serializers


class BackupCreateSerializer(serializers.Serializer):
    prefix = serializers.RegexField(r'^[A-Za-z0-9_-]+$', max_length=50, required=False, default='backup')
    tables = serializers.ListField(
        child=serializers.RegexField(r'^[A-Za-z0-9_]+$', max_length=64),
        required=False,
        default=list,
    )


class BackupCleanupSerializer(serializers.Serializer):
    days_to_keep = serializers.IntegerField(min_value=1, required=False, default=30)


class DataExportSerializer(serializers.Serializer):
    models = serializers.ListField(child=serializers.CharField(max_length=100), required=False)

    def validate_models(self, value):
        from django.apps import apps

        for label in value:
            try:
                apps.get_model(label)
            except (LookupError, ValueError):
                raise serializers.ValidationError(f"Unknown model: {label}")
        return value


class DataImportSerializer(serializers.Serializer):
    filename = serializers.RegexField(r'^[A-Za-z0-9_.-]+\.json$', max_length=255)
    clear_existing = serializers.BooleanField(required=False, default=False)
