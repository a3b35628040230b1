"""Top-level URL map for the Campus Hub Django service.

Plain-language map:
- `/api/<module>/console/...` is the staff workspace for collection tasks.
- `/api/<module>/tasks/...` is the student portal for the same tasks.
- `/api/collect-blob/<token>` serves signed, short-lived blob downloads.
- `/admin/...` is the Django admin surface (superusers only here).
"""

from django.contrib import admin
from django.urls import include, path

from collect.views import healthz

urlpatterns = [
    # Admin surface (operations/configuration). Kept separate from daily staff UI.
    path("admin/", admin.site.urls),

    # Health endpoint for reverse proxy and uptime checks.
    path("healthz", healthz),

    path("api/", include("collect.urls")),
]
