"""
URL configuration for the ticketing API.

All ticketing endpoints are mounted under the `/api/` prefix.
"""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("ticketing.urls")),
]
