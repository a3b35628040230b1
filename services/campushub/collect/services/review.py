"""Staff-side review: submission listing, detail and batch triage."""

from __future__ import annotations

import logging
import uuid

from django.core.paginator import Paginator
from django.utils import timezone

from ..errors import BadRequest, Conflict, NotFound
from ..models import Submission
from .audit import audit_operation
from .config import CollectModuleConfig
from .filters import SubmissionFilters, department_names_by_user, filtered_submissions, student_identity
from .permissions import assert_can_operate_task, get_console_task, parse_uuid_or_404, require_perm
from .storage import get_storage_gateway, signed_url_or_none

logger = logging.getLogger(__name__)

ACTION_ASSIGN_TO_ME = "assignToMe"
ACTION_UNASSIGN = "unassign"
ACTION_SET_STATUS = "setStatus"
BATCH_ACTIONS = {ACTION_ASSIGN_TO_ME, ACTION_UNASSIGN, ACTION_SET_STATUS}

SUBMISSION_STATUSES = {choice for choice, _label in Submission.STATUS_CHOICES}


def _operable_task(config: CollectModuleConfig, actor, task_id, action: str):
    require_perm(config, actor, action)
    task = get_console_task(config, task_id)
    assert_can_operate_task(config, actor, task)
    return task


def list_submissions(
    config: CollectModuleConfig,
    actor,
    task_id,
    filters: SubmissionFilters,
    *,
    page: int = 1,
    page_size: int = 50,
) -> dict:
    task = _operable_task(config, actor, task_id, "process")
    paginator = Paginator(filtered_submissions(task, filters), max(1, min(int(page_size), 200)))
    page_obj = paginator.get_page(page)
    rows = list(page_obj.object_list)
    departments = department_names_by_user({row.user_id for row in rows})

    items = []
    for row in rows:
        student_id, name = student_identity(row.user)
        items.append(
            {
                "id": row.id,
                "user_id": row.user_id,
                "student_id": student_id,
                "name": name,
                "departments": departments.get(row.user_id, []),
                "submitted_at": row.submitted_at,
                "status": row.status,
                "assignee_user_id": row.assignee_id,
                "student_message": row.student_message,
                "staff_note": row.staff_note,
                "missing_required": bool(row.missing_required),
                "file_count": row.file_count,
                "total_bytes": int(row.total_bytes or 0),
                "archived_at": row.archived_at,
                "updated_at": row.updated_at,
            }
        )
    return {
        "page": page_obj.number,
        "page_size": paginator.per_page,
        "total": paginator.count,
        "items": items,
    }


def get_submission_detail(
    config: CollectModuleConfig,
    actor,
    task_id,
    submission_id,
    *,
    include_download_urls: bool = False,
) -> dict:
    task = _operable_task(config, actor, task_id, "process")
    submission = (
        Submission.objects.select_related("user")
        .filter(task=task, id=parse_uuid_or_404(submission_id, label="Submission"), withdrawn_at__isnull=True)
        .first()
    )
    if submission is None:
        raise NotFound("Submission not found")

    items = list(task.items.order_by("sort", "created_at"))
    files = list(submission.files.order_by("sort", "created_at"))
    storage = get_storage_gateway() if include_download_urls else None
    files_by_item: dict = {}
    for f in files:
        files_by_item.setdefault(f.item_id, []).append(
            {
                "id": f.id,
                "file_name": f.file_name,
                "content_type": f.content_type,
                "size": f.size,
                "created_at": f.created_at,
                "download_url": (
                    signed_url_or_none(storage, config.submission_bucket, f.file_key, f.file_name)
                    if storage is not None
                    else None
                ),
            }
        )
    missing_ids = [item.id for item in items if item.required and item.id not in files_by_item]
    student_id, name = student_identity(submission.user)
    return {
        "id": submission.id,
        "user_id": submission.user_id,
        "student_id": student_id,
        "name": name,
        "departments": department_names_by_user([submission.user_id]).get(submission.user_id, []),
        "submitted_at": submission.submitted_at,
        "status": submission.status,
        "assignee_user_id": submission.assignee_id,
        "student_message": submission.student_message,
        "staff_note": submission.staff_note,
        "archived_at": submission.archived_at,
        "missing_required": bool(missing_ids),
        "missing_required_item_ids": missing_ids,
        "file_count": len(files),
        "total_bytes": sum(int(f.size or 0) for f in files),
        "items": [
            {
                "id": item.id,
                "title": item.title,
                "description": item.description,
                "required": item.required,
                "sort": item.sort,
                "files": files_by_item.get(item.id, []),
            }
            for item in items
        ],
    }


def batch_process(
    config: CollectModuleConfig,
    actor,
    task_id,
    *,
    submission_ids,
    action: str,
    status: str | None = None,
    student_message: str | None = None,
    staff_note: str | None = None,
) -> int:
    """Apply one triage action to many submissions in a single UPDATE.

    The whole batch is validated before the write, so it either applies to
    every selected row or to none.
    """
    unique_ids: list[uuid.UUID] = []
    for raw in submission_ids or []:
        try:
            value = uuid.UUID(str(raw))
        except (TypeError, ValueError):
            continue
        if value not in unique_ids:
            unique_ids.append(value)

    with audit_operation(
        actor,
        action=f"{config.module}.submission.batch",
        target_type="collect_task",
        target_id=task_id,
        diff={"action": action, "submission_count": len(unique_ids)},
    ) as op:
        task = _operable_task(config, actor, task_id, "process")
        if task.is_archived:
            raise Conflict("Submissions of archived tasks are frozen")
        if action not in BATCH_ACTIONS:
            raise BadRequest(f"Unsupported action: {action}")
        if not unique_ids:
            raise BadRequest("Select at least one submission")

        now = timezone.now()
        if action == ACTION_ASSIGN_TO_ME:
            changes = {"assignee": actor}
        elif action == ACTION_UNASSIGN:
            changes = {"assignee": None}
        else:
            if not status:
                raise BadRequest("status is required")
            if status not in SUBMISSION_STATUSES:
                raise BadRequest(f"Unsupported status: {status}")
            message = (student_message or "").strip()
            if status in Submission.MESSAGE_REQUIRED_STATUSES and not message:
                raise BadRequest("A message to the student is required for need_more and rejected")
            changes = {
                "status": status,
                "student_message": message or None,
                "staff_note": (staff_note or "").strip() or None,
            }

        updated = Submission.objects.filter(task=task, id__in=unique_ids).update(updated_at=now, **changes)
        op.diff.update({"status": status, "updated": updated})
    logger.info(
        "collect_batch_processed module=%s task_id=%s action=%s updated=%s",
        config.module,
        task.id,
        action,
        updated,
    )
    return updated
