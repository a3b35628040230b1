"""Signed blob downloads.

The signed token is the capability: it names bucket, key and download name
and expires quickly, so no session is required.
"""

import logging
import mimetypes

from django.http import FileResponse, HttpResponse
from django.views.decorators.http import require_GET

from ..http.headers import mark_attachment
from ..services.storage import get_storage_gateway, verify_blob_token

logger = logging.getLogger(__name__)


@require_GET
def blob_download(request, token: str):
    payload = verify_blob_token(token)
    if payload is None:
        return HttpResponse("Not found", status=404)
    storage = get_storage_gateway()
    opener = getattr(storage, "open", None)
    if opener is None:
        return HttpResponse("Not found", status=404)
    try:
        handle = opener(payload["b"], payload["k"])
    except FileNotFoundError:
        logger.info("blob_download_missing bucket=%s key=%s", payload["b"], payload["k"])
        return HttpResponse("Not found", status=404)

    filename = payload.get("n") or payload["k"].rsplit("/", 1)[-1]
    content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return mark_attachment(FileResponse(handle, content_type=content_type), filename)


__all__ = ["blob_download"]
