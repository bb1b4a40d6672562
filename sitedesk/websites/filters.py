import django_filters
from django.db.models import Q

from .models import Website, ManagementRecord


class WebsiteFilter(django_filters.FilterSet):
    """Filters for the submissions list (``?status=pending&type=id-card``)"""
    status = django_filters.ChoiceFilter(choices=Website.STATUS_CHOICES)
    type = django_filters.ChoiceFilter(choices=Website.TYPE_CHOICES)
    user = django_filters.NumberFilter(field_name='user_id', lookup_expr='exact')
    search = django_filters.CharFilter(method='filter_search', label='Search')

    class Meta:
        model = Website
        fields = ['status', 'type', 'user', 'search']

    def filter_search(self, queryset, name, value):
        value = (value or '').strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(name__icontains=value) |
            Q(url__icontains=value) |
            Q(user_email__icontains=value)
        )


class ManagementRecordFilter(django_filters.FilterSet):
    website = django_filters.UUIDFilter(field_name='website_id', lookup_expr='exact')
    start_date_from = django_filters.DateFilter(field_name='start_date', lookup_expr='gte')
    end_date_to = django_filters.DateFilter(field_name='end_date', lookup_expr='lte')

    class Meta:
        model = ManagementRecord
        fields = ['website', 'start_date_from', 'end_date_to']
