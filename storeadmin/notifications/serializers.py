from rest_framework import serializers

LEVEL_CHOICES = ['info', 'success', 'warning', 'error']


class EmailOptionsSerializer(serializers.Serializer):
    to = serializers.ListField(child=serializers.EmailField(), min_length=1)
    subject = serializers.CharField(required=False, max_length=255)
    template = serializers.CharField(required=False, max_length=100)
    context = serializers.DictField(required=False)
    html = serializers.CharField(required=False)


class SMSOptionsSerializer(serializers.Serializer):
    to = serializers.CharField(max_length=20)
    message = serializers.CharField(required=False, max_length=1600)


class NotificationSerializer(serializers.Serializer):
    """Payload accepted by the send endpoint"""
    title = serializers.CharField(max_length=255)
    message = serializers.CharField(required=False, allow_blank=True, default='')
    type = serializers.CharField(required=False, max_length=50, default='info')
    level = serializers.ChoiceField(choices=LEVEL_CHOICES, required=False, default='info')
    channel = serializers.CharField(required=False, max_length=50)
    users = serializers.ListField(child=serializers.IntegerField(min_value=1), required=False)
    data = serializers.DictField(required=False)
    persistent = serializers.BooleanField(required=False)
    email = EmailOptionsSerializer(required=False)
    sms = SMSOptionsSerializer(required=False)


class SystemNotificationSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    message = serializers.CharField()
    level = serializers.ChoiceField(choices=LEVEL_CHOICES, required=False, default='info')


class NotificationHistoryQuerySerializer(serializers.Serializer):
    channel = serializers.CharField(required=False, max_length=50)
    user_id = serializers.IntegerField(required=False, min_value=1)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=500, default=50)
    offset = serializers.IntegerField(required=False, min_value=0, default=0)
    start_date = serializers.DateTimeField(required=False)
    end_date = serializers.DateTimeField(required=False)

    def validate(self, attrs):
        start_date = attrs.get('start_date')
        end_date = attrs.get('end_date')
        if start_date and end_date and start_date > end_date:
            raise serializers.ValidationError({'start_date': 'start_date must be on or before end_date'})
        return attrs
