from rest_framework import serializers
from storeadmin.sales.models import Payment
from .report_service import REPORT_FORMATS


class ReportQuerySerializer(serializers.Serializer):
    """Query parameters accepted by the report endpoints"""
    format = serializers.ChoiceField(choices=REPORT_FORMATS, default='json')
    date_from = serializers.DateField(required=False, input_formats=['%Y-%m-%d'])
    date_to = serializers.DateField(required=False, input_formats=['%Y-%m-%d'])
    company = serializers.IntegerField(required=False, min_value=1)
    low_stock_only = serializers.BooleanField(required=False, default=False)
    payment_method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES, required=False)

    def validate(self, attrs):
        date_from = attrs.get('date_from')
        date_to = attrs.get('date_to')
        if date_from and date_to and date_from > date_to:
            raise serializers.ValidationError({'date_from': 'date_from must be on or before date_to'})
        return attrs
