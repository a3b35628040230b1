"""Export surface for collect.views.

Endpoints live in submodules by concern:
- collect.views.console (staff)
- collect.views.portal (students)
- collect.views.blobs (signed downloads)
"""

from django.http import HttpResponse

from .blobs import *  # noqa: F401,F403
from .console import *  # noqa: F401,F403
from .portal import *  # noqa: F401,F403


def healthz(request):
    return HttpResponse("ok", content_type="text/plain")
