"""
URL configuration for the sitedesk project.

The API is versioned under ``api/v1/``; the Django admin stays at ``admin/``.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "SiteDesk Admin Panel"
admin.site.site_title = "SiteDesk Admin Portal"
admin.site.index_title = "Website management"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('sitedesk.core.urls')),
    path('api/v1/', include('sitedesk.websites.urls')),
]
