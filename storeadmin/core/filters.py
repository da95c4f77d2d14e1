import django_filters
from .models import AuditLog


class AuditLogFilter(django_filters.FilterSet):
    """Filters for the audit log listing"""
    action = django_filters.CharFilter(field_name='action')
    model = django_filters.CharFilter(field_name='model_name')
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')
    search = django_filters.CharFilter(method='filter_search')

    class Meta:
        model = AuditLog
        fields = ['action', 'model', 'date_from', 'date_to', 'search']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        from django.db.models import Q
        return queryset.filter(
            Q(object_name__icontains=value) |
            Q(object_id__icontains=value) |
            Q(user__username__icontains=value)
        )
