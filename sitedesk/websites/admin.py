from django.contrib import admin
from .models import Website, ManagementRecord


class ManagementRecordInline(admin.TabularInline):
    model = ManagementRecord
    extra = 0
    fields = ['day', 'credit', 'profit', 'gross_profit', 'service_fee', 'net_profit', 'start_date', 'end_date']


@admin.register(Website)
class WebsiteAdmin(admin.ModelAdmin):
    list_display = ['name', 'type', 'user_email', 'status', 'created_at', 'updated_at']
    list_filter = ['status', 'type', 'created_at']
    search_fields = ['name', 'url', 'user_email']
    ordering = ['-created_at']
    readonly_fields = ['id', 'created_at', 'updated_at']
    inlines = [ManagementRecordInline]


@admin.register(ManagementRecord)
class ManagementRecordAdmin(admin.ModelAdmin):
    list_display = ['website', 'day', 'credit', 'profit', 'net_profit', 'start_date', 'end_date']
    list_filter = ['start_date']
    search_fields = ['website__name', 'day']
    readonly_fields = ['id', 'created_at']
