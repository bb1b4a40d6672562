from decimal import Decimal

from rest_framework import serializers
from rest_framework.fields import empty

from sitedesk.core.serializers import StrictFieldsMixin
from .models import Website, ManagementRecord
from .validators import (
    format_url, coerce_amount, amount_in_range, AMOUNT_LIMIT_ERROR, DOCUMENT_TYPES, NO_URL,
)


class AmountField(serializers.DecimalField):
    """Decimal rounded to cents that reads missing, blank or garbage input as 0"""

    def __init__(self, **kwargs):
        kwargs.setdefault('max_digits', 14)
        kwargs.setdefault('decimal_places', 2)
        kwargs.setdefault('required', False)
        super().__init__(**kwargs)

    def run_validation(self, data=empty):
        if data is not empty:
            data = coerce_amount(data)
            if not amount_in_range(data):
                raise serializers.ValidationError(AMOUNT_LIMIT_ERROR)
        return super().run_validation(data)


class FileSerializer(StrictFieldsMixin, serializers.Serializer):
    name = serializers.CharField(max_length=255)
    url = serializers.CharField(max_length=2000)
    size = serializers.IntegerField(required=False, min_value=0)
    type = serializers.CharField(required=False, allow_blank=True, max_length=100)


class TaskSerializer(StrictFieldsMixin, serializers.Serializer):
    type = serializers.CharField(max_length=50)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    status = serializers.ChoiceField(choices=ManagementRecord.TASK_STATUS_CHOICES, default='pending')


class ManagementRecordSerializer(StrictFieldsMixin, serializers.ModelSerializer):
    website_id = serializers.UUIDField(read_only=True)
    credit = AmountField()
    profit = AmountField()
    gross_profit = AmountField()
    service_fee = AmountField()
    net_profit = AmountField()
    tasks = serializers.ListField(child=TaskSerializer(), required=False)

    class Meta:
        model = ManagementRecord
        fields = [
            'id', 'website_id', 'day', 'credit', 'profit', 'gross_profit', 'service_fee',
            'net_profit', 'start_date', 'end_date', 'tasks', 'created_at'
        ]
        read_only_fields = ['id', 'website_id', 'created_at']

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'End date cannot be before start date'})

        # Net profit is derived when a new record does not state it
        if self.instance is None and 'net_profit' not in attrs:
            attrs['net_profit'] = attrs.get('gross_profit', Decimal('0')) - attrs.get('service_fee', Decimal('0'))
            if not amount_in_range(attrs['net_profit']):
                raise serializers.ValidationError({'net_profit': AMOUNT_LIMIT_ERROR})
        return attrs


class WebsiteSerializer(StrictFieldsMixin, serializers.ModelSerializer):
    """Submission as listed and as created; the id may be chosen by the client"""
    id = serializers.UUIDField(required=False)
    user_id = serializers.IntegerField(read_only=True)
    url = serializers.CharField(required=False, allow_blank=True, max_length=500)
    files = serializers.ListField(child=FileSerializer(), required=False)

    class Meta:
        model = Website
        fields = [
            'id', 'user_id', 'user_email', 'name', 'type', 'url', 'login_url', 'username',
            'password', 'files', 'status', 'rejection_reason', 'created_at', 'updated_at'
        ]
        read_only_fields = ['user_id', 'user_email', 'status', 'rejection_reason', 'created_at', 'updated_at']

    def validate_id(self, value):
        if Website.objects.filter(pk=value).exists():
            raise serializers.ValidationError('A submission with this id already exists.')
        return value

    def validate(self, attrs):
        submission_type = attrs.get('type', getattr(self.instance, 'type', 'website'))
        if self.instance is None or 'url' in attrs or 'type' in attrs:
            url = attrs.get('url', getattr(self.instance, 'url', ''))
            attrs['url'] = format_url(url, submission_type)
            if attrs['url'] == NO_URL and submission_type not in DOCUMENT_TYPES:
                raise serializers.ValidationError({'url': 'A URL is required for this submission type'})
        return attrs


class WebsiteUpdateSerializer(WebsiteSerializer):
    """Owner/admin edit of the user-supplied fields only"""
    id = serializers.UUIDField(read_only=True)


class WebsiteDetailSerializer(WebsiteSerializer):
    management_records = ManagementRecordSerializer(many=True, read_only=True)

    class Meta(WebsiteSerializer.Meta):
        fields = WebsiteSerializer.Meta.fields + ['management_records']


class WebsiteStatusSerializer(StrictFieldsMixin, serializers.Serializer):
    status = serializers.ChoiceField(choices=Website.STATUS_CHOICES)
    rejection_reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        website = self.context['website']
        if not website.can_transition_to(attrs['status']):
            raise serializers.ValidationError({
                'status': f"Cannot change status from {website.status} to {attrs['status']}"
            })
        return attrs
