"""Submission export: a pure plan phase, then a streaming ZIP phase.

`export_zip` selects submissions, enforces the size cap and precomputes the
manifest and every entry path without touching the blob store. `stream_zip`
then fetches each object through a fresh signed URL, one at a time.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import logging
import urllib.request
from typing import Callable, Iterator

from django.conf import settings

from ..errors import BadRequest, Internal
from ..models import SubmissionFile
from .config import CollectModuleConfig
from .export_format import ManifestRow, build_manifest_csv, build_zip_path
from .filters import SubmissionFilters, department_names_by_user, filtered_submissions, student_identity
from .permissions import assert_can_operate_task, get_console_task, require_perm
from .storage import get_storage_gateway
from .zip_exports import ExportStreamReport, iter_zip_stream, reserve_archive_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportEntry:
    file_id: str
    file_key: str
    file_name: str
    size: int
    path: str


@dataclass(frozen=True)
class ExportPlan:
    file_name: str
    manifest: str
    entries: tuple[ExportEntry, ...]
    total_bytes: int


def export_zip(
    config: CollectModuleConfig,
    actor,
    task_id,
    filters: SubmissionFilters,
    *,
    include_unsubmitted: bool = False,
) -> ExportPlan:
    require_perm(config, actor, "export")
    task = get_console_task(config, task_id)
    assert_can_operate_task(config, actor, task)

    items = list(task.items.all())
    item_titles = {item.id: item.title for item in items}
    required_ids = [item.id for item in sorted(items, key=lambda i: (i.sort, i.created_at)) if item.required]

    queryset = filtered_submissions(task, filters)
    if not include_unsubmitted:
        queryset = queryset.filter(submitted_at__isnull=False)
    submissions = list(queryset)

    files_by_submission: dict = {}
    files = SubmissionFile.objects.filter(submission__in=[s.pk for s in submissions]).order_by(
        "submission_id", "sort", "created_at"
    )
    for f in files:
        files_by_submission.setdefault(f.submission_id, []).append(f)

    total_bytes = sum(int(f.size or 0) for group in files_by_submission.values() for f in group)
    max_bytes = int(getattr(settings, "COLLECT_MAX_EXPORT_ZIP_BYTES", 1024 * 1024 * 1024))
    if total_bytes > max_bytes:
        raise BadRequest(
            "The export is too large; narrow the filters and try again",
            details={
                "total_mb": round(total_bytes / (1024 * 1024), 2),
                "limit_mb": round(max_bytes / (1024 * 1024), 2),
            },
        )

    departments = department_names_by_user({s.user_id for s in submissions})
    rows: list[ManifestRow] = []
    entries: list[ExportEntry] = []
    used_paths: set[str] = {"manifest.csv", "skipped_files.csv"}
    for submission in submissions:
        student_id, name = student_identity(submission.user)
        group = files_by_submission.get(submission.pk, [])
        provided = {f.item_id for f in group}
        rows.append(
            ManifestRow(
                student_id=student_id,
                name=name,
                departments=departments.get(submission.user_id, []),
                submitted_at=submission.submitted_at,
                status=submission.status,
                missing_item_titles=[item_titles[item_id] for item_id in required_ids if item_id not in provided],
                file_count=len(group),
                total_bytes=sum(int(f.size or 0) for f in group),
            )
        )
        for f in group:
            path = build_zip_path(
                student_id=student_id,
                name=name,
                item_title=item_titles.get(f.item_id, str(f.item_id)),
                file_name=f.file_name,
            )
            entries.append(
                ExportEntry(
                    file_id=str(f.id),
                    file_key=f.file_key,
                    file_name=f.file_name,
                    size=int(f.size or 0),
                    path=reserve_archive_path(path, used_paths),
                )
            )

    logger.info(
        "collect_export_planned module=%s task_id=%s submissions=%s files=%s bytes=%s",
        config.module,
        task.id,
        len(submissions),
        len(entries),
        total_bytes,
    )
    return ExportPlan(
        file_name=f"{task.title}-材料.zip",
        manifest=build_manifest_csv(rows),
        entries=tuple(entries),
        total_bytes=total_bytes,
    )


@contextmanager
def fetch_signed_url(url: str, *, timeout: float | None = None, storage=None):
    """Open a signed download link for reading.

    Host-relative links issued by the local gateway are opened in-process;
    absolute links are fetched over HTTP.
    """
    if url.startswith("/"):
        opener = getattr(storage, "open_signed_url", None)
        handle = opener(url) if opener is not None else None
        if handle is None:
            raise Internal("Download link is invalid or expired")
        with handle:
            yield handle
        return
    if timeout is None:
        timeout = float(getattr(settings, "COLLECT_FETCH_TIMEOUT_SECONDS", 30.0))
    request = urllib.request.Request(url, method="GET")
    with urllib.request.urlopen(request, timeout=max(float(timeout), 0.2)) as response:
        status = int(getattr(response, "status", 200) or 200)
        if status < 200 or status >= 300:
            raise Internal(f"Download failed with HTTP {status}")
        yield response


def stream_zip(
    config: CollectModuleConfig,
    plan: ExportPlan,
    *,
    fetch_fn: Callable | None = None,
    report: ExportStreamReport | None = None,
) -> Iterator[bytes]:
    """Yield the ZIP archive for a plan.

    A signed URL is requested right before each entry is fetched, so short
    link lifetimes are never an issue. Failed entries are skipped.
    """
    storage = get_storage_gateway()
    expires_in = int(getattr(settings, "COLLECT_SIGNED_URL_EXPIRES_IN", 60))
    report = report if report is not None else ExportStreamReport()

    def _open_entry(entry: ExportEntry):
        url = storage.create_signed_download_url(config.submission_bucket, entry.file_key, expires_in, entry.file_name)
        if fetch_fn is not None:
            return fetch_fn(url)
        return fetch_signed_url(url, storage=storage)

    yield from iter_zip_stream(plan.entries, manifest_csv=plan.manifest, open_entry=_open_entry, report=report)
    if report.skipped:
        logger.warning(
            "collect_export_partial module=%s file=%s written=%s skipped=%s",
            config.module,
            plan.file_name,
            len(report.written),
            report.skipped_count,
        )
