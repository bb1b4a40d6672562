from django.urls import path
from .views import (
    website_list_create, website_detail, website_status, website_summary,
    record_list, website_records, website_record_detail,
)

urlpatterns = [
    # Website endpoints
    path('websites/', website_list_create, name='website-list-create'),
    path('websites/summary/', website_summary, name='website-summary'),
    path('websites/<uuid:pk>/', website_detail, name='website-detail'),
    path('websites/<uuid:pk>/status/', website_status, name='website-status'),

    # Management record endpoints
    path('records/', record_list, name='record-list'),
    path('websites/<uuid:pk>/records/', website_records, name='website-records'),
    path('websites/<uuid:pk>/records/<uuid:record_pk>/', website_record_detail, name='website-record-detail'),
]
