"""Response headers for collection JSON and download endpoints."""

from __future__ import annotations

from django.http import HttpResponseBase
from django.utils.http import content_disposition_header

from ..services.filenames import sanitize_file_name

_MAX_ATTACHMENT_NAME = 255


def apply_no_store(response: HttpResponseBase, *, private: bool = True, pragma: bool = True) -> HttpResponseBase:
    """Keep task payloads and signed links out of browser and proxy caches."""
    response["Cache-Control"] = "private, no-store" if private else "no-store"
    if pragma:
        response["Pragma"] = "no-cache"
    return response


def safe_attachment_filename(name: str, *, fallback: str = "download") -> str:
    """Download name without path parts or leading dots; long names keep their extension."""
    cleaned = sanitize_file_name(name or "").lstrip(".")
    if len(cleaned) > _MAX_ATTACHMENT_NAME:
        stem, dot, ext = cleaned.rpartition(".")
        if dot and stem and len(ext) < 16:
            cleaned = f"{stem[: _MAX_ATTACHMENT_NAME - len(ext) - 1]}.{ext}"
        else:
            cleaned = cleaned[:_MAX_ATTACHMENT_NAME]
    return cleaned or fallback


def mark_attachment(response: HttpResponseBase, file_name: str, *, fallback: str = "download") -> HttpResponseBase:
    """Serve as a sandboxed, uncached attachment named `file_name`."""
    response["Content-Disposition"] = content_disposition_header(
        True, safe_attachment_filename(file_name, fallback=fallback)
    )
    response["X-Content-Type-Options"] = "nosniff"
    response["Content-Security-Policy"] = "default-src 'none'; sandbox"
    response["Referrer-Policy"] = "no-referrer"
    return apply_no_store(response)
