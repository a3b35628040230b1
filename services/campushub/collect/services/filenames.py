"""File-name and storage-key sanitizers."""

import re

# Characters that are illegal in file names on at least one common filesystem.
_ILLEGAL_CHARS_RE = re.compile(r'[\\/:*?"<>|\x00-\x1f\x7f]')
_DOT_RUN_RE = re.compile(r"\.{2,}")
_KEY_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_file_name(value: str) -> str:
    """Drop path separators and control characters; collapse dot runs."""
    cleaned = _ILLEGAL_CHARS_RE.sub("", str(value or ""))
    cleaned = _DOT_RUN_RE.sub(".", cleaned)
    return cleaned.strip()


def sanitize_storage_key_part(value: str, *, fallback: str = "file", max_length: int = 80) -> str:
    """Return an ASCII-only object-key segment, keeping the extension when possible."""
    name = sanitize_file_name(value)
    cleaned = _KEY_UNSAFE_RE.sub("_", name).strip("._")
    if not cleaned:
        return fallback
    if len(cleaned) <= max_length:
        return cleaned
    stem, dot, ext = cleaned.rpartition(".")
    if dot and stem and len(ext) < 16:
        return f"{stem[: max_length - len(ext) - 1]}.{ext}"
    return cleaned[:max_length]
