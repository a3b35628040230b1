"""Student-facing submission workflow and portal reads.

Every mutating call re-reads the task and re-checks the time window
(`status == published`, `due_at` set, `now <= due_at`); deadlines can move
independently of structural edits.
"""

from __future__ import annotations

import logging
import uuid

from django.conf import settings
from django.core.paginator import Paginator
from django.db import transaction
from django.utils import timezone

from ..errors import BadRequest, CollectError, Conflict, NotFound
from ..models import CollectionItem, CollectionTask, Notice, Submission, SubmissionFile
from .audit import audit_operation
from .config import CollectModuleConfig
from .filenames import sanitize_storage_key_part
from .filters import missing_required_items
from .markdown_content import render_markdown_to_safe_html
from .permissions import parse_uuid_or_404
from .storage import get_storage_gateway, signed_url_or_none
from .tasks import SourceRef, task_source
from .visibility import portal_visible_tasks_q

logger = logging.getLogger(__name__)

PORTAL_STATUSES = (CollectionTask.STATUS_PUBLISHED, CollectionTask.STATUS_CLOSED)


def _portal_tasks(config: CollectModuleConfig, user):
    return CollectionTask.objects.filter(
        portal_visible_tasks_q(user, config.module),
        module=config.module,
        deleted_at__isnull=True,
        archived_at__isnull=True,
        status__in=PORTAL_STATUSES,
    )


def can_submit(task: CollectionTask, now=None) -> bool:
    now = now or timezone.now()
    return task.status == CollectionTask.STATUS_PUBLISHED and task.due_at is not None and now <= task.due_at


def get_portal_task(config: CollectModuleConfig, user, task_id) -> CollectionTask:
    task = _portal_tasks(config, user).filter(id=parse_uuid_or_404(task_id)).first()
    if task is None:
        raise NotFound("Task not found")
    return task


def _open_task_for_changes(config: CollectModuleConfig, user, task_id) -> CollectionTask:
    task = get_portal_task(config, user, task_id)
    if task.status != CollectionTask.STATUS_PUBLISHED or task.due_at is None:
        raise Conflict("This task is not accepting submissions")
    if timezone.now() > task.due_at:
        raise Conflict("The deadline has passed; submissions can no longer change")
    return task


# ---------------------------------------------------------------------------
# Portal reads
# ---------------------------------------------------------------------------


def list_portal_tasks(config: CollectModuleConfig, user, *, q: str = "", page: int = 1, page_size: int = 20) -> dict:
    queryset = _portal_tasks(config, user)
    if (q or "").strip():
        queryset = queryset.filter(title__icontains=q.strip())
    paginator = Paginator(queryset.order_by("-updated_at", "-id"), max(1, min(int(page_size), 100)))
    page_obj = paginator.get_page(page)
    return {
        "page": page_obj.number,
        "page_size": paginator.per_page,
        "total": paginator.count,
        "items": [
            {
                "id": task.id,
                "title": task.title,
                "status": task.status,
                "source": task_source(task),
                "due_at": task.due_at,
                "updated_at": task.updated_at,
            }
            for task in page_obj.object_list
        ],
    }


def find_portal_task_by_source(config: CollectModuleConfig, user, source: SourceRef) -> dict | None:
    if source.type != CollectionTask.SOURCE_NOTICE:
        raise BadRequest(f"Unsupported source type: {source.type}")
    if not (source.id or "").strip():
        raise BadRequest("Source id is required")
    task = _portal_tasks(config, user).filter(source_type=source.type, source_id=source.id.strip()).first()
    if task is None:
        return None
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status,
        "due_at": task.due_at,
        "can_submit": can_submit(task),
        "updated_at": task.updated_at,
    }


def get_portal_task_detail(config: CollectModuleConfig, user, task_id) -> dict:
    task = get_portal_task(config, user, task_id)
    storage = get_storage_gateway()
    items = list(task.items.order_by("sort", "created_at"))

    source_meta = None
    if task.is_source_bound and task.source_id.isdigit():
        notice = Notice.objects.filter(pk=int(task.source_id), deleted_at__isnull=True).first()
        if notice is not None:
            source_meta = {"type": task.source_type, "id": task.source_id, "title": notice.title}

    submission = Submission.objects.filter(task=task, user=user).first()
    my_submission = None
    if submission is not None:
        files = []
        if submission.withdrawn_at is None:
            files = list(submission.files.order_by("sort", "created_at"))
        provided = {f.item_id for f in files}
        my_submission = {
            "id": submission.id,
            "submitted_at": submission.submitted_at,
            "withdrawn_at": submission.withdrawn_at,
            "status": submission.status,
            "student_message": submission.student_message,
            "missing_required": any(item.required and item.id not in provided for item in items),
            "files": [
                {
                    "id": f.id,
                    "item_id": f.item_id,
                    "file_name": f.file_name,
                    "content_type": f.content_type,
                    "size": f.size,
                    "download_url": signed_url_or_none(storage, config.submission_bucket, f.file_key, f.file_name),
                }
                for f in files
            ],
        }

    return {
        "id": task.id,
        "title": task.title,
        "description_md": task.description_md,
        "description_html": render_markdown_to_safe_html(task.description_md),
        "status": task.status,
        "max_files_per_submission": task.max_files_per_submission,
        "due_at": task.due_at,
        "can_submit": can_submit(task),
        "source": task_source(task),
        "source_meta": source_meta,
        "items": [
            {
                "id": item.id,
                "title": item.title,
                "description": item.description,
                "required": item.required,
                "sort": item.sort,
                "template": (
                    {
                        "file_name": item.template_file_name,
                        "content_type": item.template_content_type,
                        "size": item.template_size,
                        "download_url": signed_url_or_none(
                            storage, config.template_bucket, item.template_file_key, item.template_file_name
                        ),
                    }
                    if item.has_template
                    else None
                ),
            }
            for item in items
        ],
        "my_submission": my_submission,
    }


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def upload_file(config: CollectModuleConfig, user, task_id, item_id, upload) -> SubmissionFile:
    """Attach one file to an item; lazily creates (or un-withdraws) the submission."""
    size = int(getattr(upload, "size", 0) or 0)
    file_name = (getattr(upload, "name", "") or "file").strip() or "file"
    with audit_operation(
        user,
        action=f"{config.module}.submission.file.upload",
        target_type="collect_task",
        target_id=task_id,
        diff={"item_id": str(item_id), "file_name": file_name, "size": size},
    ) as op:
        max_bytes = int(getattr(settings, "COLLECT_MAX_SUBMISSION_FILE_BYTES", 200 * 1024 * 1024))
        if size <= 0:
            raise BadRequest("The file is empty")
        if size > max_bytes:
            raise BadRequest(
                f"The file is too large (max {max_bytes // (1024 * 1024)} MB)",
                details={"max_bytes": max_bytes},
            )
        task = _open_task_for_changes(config, user, task_id)
        try:
            item_uuid = uuid.UUID(str(item_id))
        except (TypeError, ValueError):
            raise BadRequest("The item does not belong to this task") from None
        item = CollectionItem.objects.filter(task=task, id=item_uuid).first()
        if item is None:
            raise BadRequest("The item does not belong to this task")

        content_type = getattr(upload, "content_type", "") or "application/octet-stream"
        key = (
            f"collect/{config.module}/tasks/{task.id}/submissions/{user.pk}/{item.id}/"
            f"{uuid.uuid4()}-{sanitize_storage_key_part(file_name, max_length=80)}"
        )

        with transaction.atomic():
            submission, _ = Submission.objects.get_or_create(
                task=task,
                user=user,
                defaults={"status": Submission.STATUS_PENDING},
            )
            # The row lock serialises the quota check and insert per submission.
            submission = Submission.objects.select_for_update().get(pk=submission.pk)
            if submission.withdrawn_at is not None:
                submission.withdrawn_at = None
                submission.save(update_fields=["withdrawn_at", "updated_at"])
            existing = submission.files.count()
            if existing >= task.max_files_per_submission:
                raise BadRequest(
                    f"You can upload at most {task.max_files_per_submission} files",
                    details={"max_files": task.max_files_per_submission},
                )
            try:
                get_storage_gateway().upload_private(config.submission_bucket, key, upload, content_type)
            except CollectError:
                raise
            except Exception as exc:
                raise BadRequest("Upload failed", details={"message": str(exc)}) from exc
            stored = SubmissionFile.objects.create(
                submission=submission,
                item=item,
                file_key=key,
                file_name=file_name[:255],
                content_type=content_type[:200],
                size=size,
                sort=existing,
            )
        op.diff.update({"submission_id": str(submission.id), "file_key": key})
    logger.info(
        "collect_file_uploaded module=%s task_id=%s submission_id=%s size=%s",
        config.module,
        task.id,
        submission.id,
        size,
    )
    return stored


def delete_file(config: CollectModuleConfig, user, task_id, file_id) -> None:
    """Blob first, then row: a crash in between leaves an orphan blob, never a dangling row."""
    with audit_operation(
        user,
        action=f"{config.module}.submission.file.delete",
        target_type="collect_task",
        target_id=task_id,
        diff={"file_id": str(file_id)},
    ) as op:
        task = _open_task_for_changes(config, user, task_id)
        submission = Submission.objects.filter(task=task, user=user).first()
        if submission is None:
            raise NotFound("Submission not found")
        stored = SubmissionFile.objects.filter(submission=submission, id=parse_uuid_or_404(file_id, label="File")).first()
        if stored is None:
            raise NotFound("File not found")
        get_storage_gateway().remove(config.submission_bucket, [stored.file_key])
        stored.delete()
        op.diff["file_key"] = stored.file_key


def submit(config: CollectModuleConfig, user, task_id) -> Submission:
    """Stamp submitted_at when every required item has a file; restarts triage."""
    with audit_operation(user, action=f"{config.module}.submission.submit", target_type="collect_task", target_id=task_id) as op:
        task = _open_task_for_changes(config, user, task_id)
        submission, _ = Submission.objects.get_or_create(
            task=task,
            user=user,
            defaults={"status": Submission.STATUS_PENDING},
        )
        missing = missing_required_items(submission)
        if missing:
            raise BadRequest(
                "Required materials are missing: " + ", ".join(item.title for item in missing),
                details={"missing_item_ids": [str(item.id) for item in missing]},
            )
        now = timezone.now()
        submission.submitted_at = now
        submission.withdrawn_at = None
        submission.status = Submission.STATUS_PENDING
        submission.student_message = None
        submission.save(update_fields=["submitted_at", "withdrawn_at", "status", "student_message", "updated_at"])
        op.diff = {"submission_id": str(submission.id), "submitted_at": now.isoformat()}
    return submission


def withdraw(config: CollectModuleConfig, user, task_id) -> Submission:
    """Delete every file and clear the submit stamp. No-op when already withdrawn."""
    with audit_operation(user, action=f"{config.module}.submission.withdraw", target_type="collect_task", target_id=task_id) as op:
        task = _open_task_for_changes(config, user, task_id)
        submission = Submission.objects.filter(task=task, user=user).first()
        if submission is None:
            raise NotFound("Submission not found")
        if submission.withdrawn_at is not None:
            op.diff = {"submission_id": str(submission.id), "noop": True}
            return submission
        if submission.submitted_at is None:
            raise Conflict("Nothing to withdraw: the submission was never submitted")

        keys = list(submission.files.values_list("file_key", flat=True))
        if keys:
            get_storage_gateway().remove(config.submission_bucket, keys)
        with transaction.atomic():
            submission.files.all().delete()
            submission.withdrawn_at = timezone.now()
            submission.submitted_at = None
            submission.assignee = None
            submission.status = Submission.STATUS_PENDING
            submission.student_message = None
            submission.save(
                update_fields=[
                    "withdrawn_at",
                    "submitted_at",
                    "assignee",
                    "status",
                    "student_message",
                    "updated_at",
                ]
            )
        op.diff = {"submission_id": str(submission.id), "deleted_files": len(keys)}
    logger.info("collect_submission_withdrawn module=%s task_id=%s deleted_files=%s", config.module, task.id, len(keys))
    return submission
