import uuid
from decimal import Decimal

from django.db import models

from sitedesk.core.models import User


class Website(models.Model):
    """
    A submission awaiting or having received admin review.

    Besides websites this also covers document uploads (ID cards, bank
    statements); those carry ``url='N/A'`` and a list of files.
    """
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    TYPE_CHOICES = [
        ('website', 'Website'),
        ('app', 'App'),
        ('other', 'Other'),
        ('id-card', 'ID Card'),
        ('bank-statement', 'Bank Statement'),
        ('document', 'Document'),
    ]

    NO_URL = 'N/A'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='websites')
    user_email = models.EmailField(blank=True)
    name = models.CharField(max_length=255)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='website')
    url = models.CharField(max_length=500, default=NO_URL)
    login_url = models.CharField(max_length=500, blank=True)
    username = models.CharField(max_length=255, blank=True)
    password = models.CharField(max_length=255, blank=True)
    files = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    rejection_reason = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.status})"

    def can_transition_to(self, new_status):
        """Only a pending submission can be decided; re-applying a status is a no-op"""
        return new_status == self.status or self.status == self.STATUS_PENDING

    def apply_status(self, new_status, rejection_reason=None):
        self.status = new_status
        self.rejection_reason = rejection_reason if new_status == self.STATUS_REJECTED else None
        self.save(update_fields=['status', 'rejection_reason', 'updated_at'])

    class Meta:
        db_table = 'websites'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='websites_status_idx'),
            models.Index(fields=['user', '-created_at'], name='websites_user_created_idx'),
        ]


class ManagementRecord(models.Model):
    """A dated entry of financial activity against an approved website"""
    TASK_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('in-progress', 'In Progress'),
        ('completed', 'Completed'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    website = models.ForeignKey(Website, on_delete=models.CASCADE, related_name='management_records')
    day = models.CharField(max_length=50, blank=True)
    credit = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    profit = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    gross_profit = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    service_fee = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    net_profit = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    tasks = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Day {self.day} - {self.website.name}"

    class Meta:
        db_table = 'website_management'
        ordering = ['created_at']
