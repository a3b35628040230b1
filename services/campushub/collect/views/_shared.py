"""Decorators and response helpers shared by the collection endpoints."""

import logging
from functools import wraps

from django.http import JsonResponse

from ..errors import BadRequest, CollectError
from ..http.headers import apply_no_store
from ..http.payloads import parse_int
from ..services.config import get_module_config

logger = logging.getLogger(__name__)


def _json_no_store_response(payload: dict, *, status: int = 200, private: bool = True) -> JsonResponse:
    response = JsonResponse(payload, status=status)
    apply_no_store(response, private=private, pragma=True)
    return response


def _login_required_json(view_func):
    """Reject anonymous requests with a 401 JSON response."""
    @wraps(view_func)
    def _wrapped_view(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return _json_no_store_response({"error": "unauthorized"}, status=401)
        return view_func(request, *args, **kwargs)
    return _wrapped_view


def _staff_required(view_func):
    """Reject anonymous or non-staff requests with a 401 JSON response."""
    @wraps(view_func)
    def _wrapped_view(request, *args, **kwargs):
        if not (request.user.is_authenticated and request.user.is_staff):
            return _json_no_store_response({"error": "unauthorized"}, status=401)
        return view_func(request, *args, **kwargs)
    return _wrapped_view


def collect_endpoint(view_func):
    """Resolve the `module` URL segment and render CollectError as JSON."""
    @wraps(view_func)
    def _wrapped_view(request, module, *args, **kwargs):
        try:
            config = get_module_config(module)
            return view_func(request, config, *args, **kwargs)
        except CollectError as exc:
            if exc.status >= 500:
                logger.error("collect_request_failed path=%s code=%s message=%s", request.path, exc.code, exc.message)
            return _json_no_store_response(exc.as_payload(), status=exc.status)
    return _wrapped_view


def _uploaded_file_or_400(request, field: str = "file"):
    upload = request.FILES.get(field)
    if upload is None:
        raise BadRequest("Attach a file in the 'file' field")
    return upload


def _page_args(request, *, default_size: int = 20) -> dict:
    return {
        "page": max(1, parse_int(request.GET.get("page"), default=1, field="page")),
        "page_size": parse_int(request.GET.get("page_size"), default=default_size, field="page_size"),
    }
