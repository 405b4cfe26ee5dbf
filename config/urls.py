"""
URL configuration for config project.

    /admin/  Django admin
    /api/    operator API (staff only)
    /test/   candidate assessment links
"""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("assessments.urls")),
    path("test/", include("candidate.urls")),
]
