"""Task lifecycle: draft -> published -> closed -> archived.

`status`, `archived_at` and `deleted_at` are independent fields. Archived
tasks are terminal; deleted tasks drop out of every listing but keep their
last real status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
import uuid

from django.conf import settings
from django.core.paginator import Paginator
from django.db import IntegrityError, transaction
from django.utils import timezone

from ..errors import BadRequest, CollectError, Conflict, NotFound
from ..models import CollectionItem, CollectionTask, CollectionTaskScope, Notice
from .audit import audit_operation
from .config import CollectModuleConfig
from .filenames import sanitize_storage_key_part
from .permissions import assert_can_operate_task, get_console_task, owned_tasks_q, parse_uuid_or_404, require_perm
from .storage import get_storage_gateway

logger = logging.getLogger(__name__)

SCOPE_TYPES = {"role", "department", "position"}


@dataclass(frozen=True)
class SourceRef:
    type: str
    id: str


@dataclass(frozen=True)
class ScopeInput:
    scope_type: str
    ref_id: str


@dataclass(frozen=True)
class ItemInput:
    title: str
    description: str | None = None
    required: bool = False
    sort: int = 0
    id: uuid.UUID | None = None


@dataclass(frozen=True)
class TaskInput:
    title: str
    description_md: str = ""
    source: SourceRef | None = None
    visible_all: bool = False
    scopes: list[ScopeInput] = field(default_factory=list)
    items: list[ItemInput] = field(default_factory=list)
    max_files_per_submission: int = 10
    due_at: datetime | None = None


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


def task_source(task: CollectionTask) -> dict | None:
    if not task.is_source_bound:
        return None
    return {"type": task.source_type, "id": task.source_id}


def task_summary(task: CollectionTask) -> dict:
    return {
        "id": task.id,
        "module": task.module,
        "title": task.title,
        "status": task.status,
        "source": task_source(task),
        "visible_all": task.visible_all,
        "max_files_per_submission": task.max_files_per_submission,
        "due_at": task.due_at,
        "created_by": task.created_by_id,
        "archived_at": task.archived_at,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
    }


def template_meta(item: CollectionItem) -> dict | None:
    if not item.has_template:
        return None
    return {
        "file_key": item.template_file_key,
        "file_name": item.template_file_name,
        "content_type": item.template_content_type,
        "size": item.template_size,
    }


def _audit_snapshot(task: CollectionTask) -> dict:
    return {
        "title": task.title,
        "status": task.status,
        "source": task_source(task),
        "visible_all": task.visible_all,
        "max_files_per_submission": task.max_files_per_submission,
        "due_at": task.due_at.isoformat() if task.due_at else None,
        "archived_at": task.archived_at.isoformat() if task.archived_at else None,
        "deleted_at": task.deleted_at.isoformat() if task.deleted_at else None,
    }


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _validate_source(config: CollectModuleConfig, source: SourceRef | None, *, exclude_task_id=None) -> SourceRef | None:
    if source is None:
        return None
    if source.type != CollectionTask.SOURCE_NOTICE:
        raise BadRequest(f"Unsupported source type: {source.type}")
    source_id = (source.id or "").strip()
    if not source_id:
        raise BadRequest("Source id is required")
    if not source_id.isdigit() or not Notice.objects.filter(pk=int(source_id), deleted_at__isnull=True).exists():
        raise BadRequest("The linked notice does not exist or was deleted")
    bound = CollectionTask.objects.filter(
        module=config.module,
        source_type=source.type,
        source_id=source_id,
        deleted_at__isnull=True,
    )
    if exclude_task_id is not None:
        bound = bound.exclude(id=exclude_task_id)
    if bound.exists():
        raise Conflict("This source is already linked to a collection task")
    return SourceRef(type=source.type, id=source_id)


def _normalized_visibility(data: TaskInput, source: SourceRef | None) -> tuple[bool, list[ScopeInput]]:
    if source is not None:
        return True, []
    scopes = []
    seen = set()
    for scope in data.scopes:
        if scope.scope_type not in SCOPE_TYPES:
            raise BadRequest(f"Unsupported scope type: {scope.scope_type}")
        key = (scope.scope_type, str(scope.ref_id).strip())
        if not key[1] or key in seen:
            continue
        seen.add(key)
        scopes.append(ScopeInput(scope_type=key[0], ref_id=key[1]))
    if not data.visible_all and not scopes:
        raise BadRequest("Pick at least one visibility scope or make the task visible to everyone")
    return bool(data.visible_all), scopes


def _validate_fields(data: TaskInput) -> None:
    if not (data.title or "").strip():
        raise BadRequest("Title is required")
    if int(data.max_files_per_submission) <= 0:
        raise BadRequest("max_files_per_submission must be positive")
    for item in data.items:
        if not (item.title or "").strip():
            raise BadRequest("Every item needs a title")
    item_ids = [item.id for item in data.items if item.id is not None]
    if len(item_ids) != len(set(item_ids)):
        raise BadRequest("Duplicate item ids")


def _replace_scopes(task: CollectionTask, scopes: list[ScopeInput]) -> None:
    CollectionTaskScope.objects.filter(task=task).delete()
    CollectionTaskScope.objects.bulk_create(
        [CollectionTaskScope(task=task, scope_type=s.scope_type, ref_id=s.ref_id) for s in scopes]
    )


def _remove_blobs_quietly(bucket: str, keys: list[str]) -> None:
    keys = [key for key in keys if key]
    if not keys:
        return
    try:
        get_storage_gateway().remove(bucket, keys)
    except Exception:
        logger.warning("blob_cleanup_failed bucket=%s count=%s", bucket, len(keys), exc_info=True)


# ---------------------------------------------------------------------------
# Console reads
# ---------------------------------------------------------------------------


def list_console_tasks(
    config: CollectModuleConfig,
    actor,
    *,
    q: str = "",
    status: str = "",
    mine: bool = False,
    archived: bool = False,
    page: int = 1,
    page_size: int = 20,
) -> dict:
    queryset = CollectionTask.objects.filter(owned_tasks_q(config, actor), module=config.module, deleted_at__isnull=True)
    if mine:
        queryset = queryset.filter(created_by=actor)
    if status:
        queryset = queryset.filter(status=status)
    queryset = queryset.filter(archived_at__isnull=not archived)
    if (q or "").strip():
        queryset = queryset.filter(title__icontains=q.strip())
    paginator = Paginator(queryset.order_by("-updated_at", "-id"), max(1, min(int(page_size), 100)))
    page_obj = paginator.get_page(page)
    return {
        "page": page_obj.number,
        "page_size": paginator.per_page,
        "total": paginator.count,
        "items": [task_summary(task) for task in page_obj.object_list],
    }


def _due_soon_queryset(config: CollectModuleConfig, actor, within_days: int):
    within_days = max(1, min(365, int(within_days)))
    now = timezone.now()
    return CollectionTask.objects.filter(
        owned_tasks_q(config, actor),
        module=config.module,
        deleted_at__isnull=True,
        archived_at__isnull=True,
        status=CollectionTask.STATUS_PUBLISHED,
        due_at__gt=now,
        due_at__lte=now + timedelta(days=within_days),
    )


def count_due_soon(config: CollectModuleConfig, actor, *, within_days: int = 7) -> int:
    return _due_soon_queryset(config, actor, within_days).count()


def list_due_soon(config: CollectModuleConfig, actor, *, within_days: int = 7, limit: int = 10) -> list[dict]:
    limit = max(1, min(100, int(limit)))
    rows = _due_soon_queryset(config, actor, within_days).order_by("due_at", "-updated_at", "-id")[:limit]
    return [
        {"id": task.id, "title": task.title, "due_at": task.due_at, "updated_at": task.updated_at}
        for task in rows
    ]


def get_console_task_detail(config: CollectModuleConfig, actor, task_id) -> dict:
    task = get_console_task(config, task_id, actor=actor)
    source_meta = None
    if task.is_source_bound:
        notice = Notice.objects.filter(pk=int(task.source_id), deleted_at__isnull=True).first() if task.source_id.isdigit() else None
        if notice is not None:
            source_meta = {"type": task.source_type, "id": str(notice.pk), "title": notice.title}
    scopes = [] if task.is_source_bound else [
        {"scope_type": scope.scope_type, "ref_id": scope.ref_id} for scope in task.scopes.all()
    ]
    payload = task_summary(task)
    payload.update(
        {
            "description_md": task.description_md,
            "source_meta": source_meta,
            "scopes": scopes,
            "items": [
                {
                    "id": item.id,
                    "title": item.title,
                    "description": item.description,
                    "required": item.required,
                    "sort": item.sort,
                    "template": template_meta(item),
                }
                for item in task.items.order_by("sort", "created_at")
            ],
        }
    )
    return payload


def find_console_task_by_source(config: CollectModuleConfig, actor, source: SourceRef) -> dict | None:
    if source.type != CollectionTask.SOURCE_NOTICE:
        raise BadRequest(f"Unsupported source type: {source.type}")
    if not (source.id or "").strip():
        raise BadRequest("Source id is required")
    task = CollectionTask.objects.filter(
        owned_tasks_q(config, actor),
        module=config.module,
        deleted_at__isnull=True,
        source_type=source.type,
        source_id=source.id.strip(),
    ).first()
    return task_summary(task) if task else None


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def create_task(config: CollectModuleConfig, actor, data: TaskInput) -> CollectionTask:
    with audit_operation(actor, action=f"{config.module}.task.create", target_type="collect_task") as op:
        require_perm(config, actor, "create")
        _validate_fields(data)
        source = _validate_source(config, data.source)
        visible_all, scopes = _normalized_visibility(data, source)
        if data.items and CollectionItem.objects.filter(id__in=[i.id for i in data.items if i.id]).exists():
            raise BadRequest("Item id already in use")

        try:
            with transaction.atomic():
                task = CollectionTask.objects.create(
                    module=config.module,
                    title=data.title.strip(),
                    description_md=data.description_md or "",
                    source_type=source.type if source else None,
                    source_id=source.id if source else None,
                    visible_all=visible_all,
                    max_files_per_submission=int(data.max_files_per_submission),
                    due_at=data.due_at,
                    created_by=actor,
                    updated_by=actor,
                )
                _replace_scopes(task, scopes)
                CollectionItem.objects.bulk_create(
                    [
                        CollectionItem(
                            id=item.id or uuid.uuid4(),
                            task=task,
                            title=item.title.strip(),
                            description=item.description,
                            required=item.required,
                            sort=item.sort,
                        )
                        for item in data.items
                    ]
                )
        except IntegrityError:
            raise Conflict("This source is already linked to a collection task") from None

        op.target_id = str(task.id)
        op.diff = {"after": _audit_snapshot(task), "items_count": len(data.items), "scopes_count": len(scopes)}
    logger.info("collect_task_created module=%s task_id=%s actor_id=%s", config.module, task.id, actor.pk)
    return task


def update_task(config: CollectModuleConfig, actor, task_id, data: TaskInput) -> CollectionTask:
    removed_template_keys: list[str] = []
    with audit_operation(actor, action=f"{config.module}.task.update", target_type="collect_task", target_id=task_id) as op:
        require_perm(config, actor, "update")
        task = get_console_task(config, task_id)
        assert_can_operate_task(config, actor, task)
        if task.is_archived or task.status != CollectionTask.STATUS_DRAFT:
            raise Conflict("Only draft tasks can be edited")
        _validate_fields(data)
        source = _validate_source(config, data.source, exclude_task_id=task.id)
        visible_all, scopes = _normalized_visibility(data, source)
        before = _audit_snapshot(task)

        existing = {item.id: item for item in task.items.all()}
        incoming_ids = {item.id for item in data.items if item.id is not None}
        foreign = CollectionItem.objects.filter(id__in=incoming_ids).exclude(task=task)
        if foreign.exists():
            raise BadRequest("Item id already in use")

        try:
            with transaction.atomic():
                task.title = data.title.strip()
                task.description_md = data.description_md or ""
                task.source_type = source.type if source else None
                task.source_id = source.id if source else None
                task.visible_all = visible_all
                task.max_files_per_submission = int(data.max_files_per_submission)
                task.due_at = data.due_at
                task.updated_by = actor
                task.save()
                _replace_scopes(task, scopes)

                removed = [item for item_id, item in existing.items() if item_id not in incoming_ids]
                removed_template_keys = [item.template_file_key for item in removed if item.template_file_key]
                CollectionItem.objects.filter(id__in=[item.id for item in removed]).delete()
                for item in data.items:
                    current = existing.get(item.id) if item.id is not None else None
                    if current is not None:
                        current.title = item.title.strip()
                        current.description = item.description
                        current.required = item.required
                        current.sort = item.sort
                        current.save(update_fields=["title", "description", "required", "sort", "updated_at"])
                    else:
                        CollectionItem.objects.create(
                            id=item.id or uuid.uuid4(),
                            task=task,
                            title=item.title.strip(),
                            description=item.description,
                            required=item.required,
                            sort=item.sort,
                        )
        except IntegrityError:
            raise Conflict("This source is already linked to a collection task") from None

        op.diff = {"before": before, "after": _audit_snapshot(task), "items_count": len(data.items)}

    # Rows are gone; template blobs of removed items go after the commit.
    _remove_blobs_quietly(config.template_bucket, removed_template_keys)
    logger.info("collect_task_updated module=%s task_id=%s actor_id=%s", config.module, task.id, actor.pk)
    return task


def update_due_at(config: CollectModuleConfig, actor, task_id, due_at: datetime | None) -> CollectionTask:
    with audit_operation(actor, action=f"{config.module}.task.due_at", target_type="collect_task", target_id=task_id) as op:
        require_perm(config, actor, "update")
        task = get_console_task(config, task_id)
        assert_can_operate_task(config, actor, task)
        if task.is_archived:
            raise Conflict("Archived tasks cannot be changed")
        before = task.due_at
        task.due_at = due_at
        task.updated_by = actor
        task.save(update_fields=["due_at", "updated_by", "updated_at"])
        op.diff = {
            "before": {"due_at": before.isoformat() if before else None},
            "after": {"due_at": due_at.isoformat() if due_at else None},
        }
    return task


def publish_task(config: CollectModuleConfig, actor, task_id) -> CollectionTask:
    with audit_operation(actor, action=f"{config.module}.task.publish", target_type="collect_task", target_id=task_id) as op:
        require_perm(config, actor, "publish")
        with transaction.atomic():
            task = get_console_task(config, task_id, for_update=True)
            assert_can_operate_task(config, actor, task)
            if task.is_archived:
                raise Conflict("Archived tasks cannot be published")
            if task.status == CollectionTask.STATUS_PUBLISHED:
                op.diff = {"noop": True}
                return task
            if task.status != CollectionTask.STATUS_DRAFT:
                raise Conflict("Only draft tasks can be published")
            if task.due_at is None:
                raise BadRequest("Set a due date before publishing")
            if task.due_at <= timezone.now():
                raise BadRequest("The due date must be in the future")
            if not task.items.exists():
                raise BadRequest("At least one item is required")
            if not task.is_source_bound and not task.visible_all and not task.scopes.exists():
                raise BadRequest("At least one visibility scope is required")
            task.status = CollectionTask.STATUS_PUBLISHED
            task.updated_by = actor
            task.save(update_fields=["status", "updated_by", "updated_at"])
        op.diff = {"before": {"status": CollectionTask.STATUS_DRAFT}, "after": {"status": task.status}}
    logger.info("collect_task_published module=%s task_id=%s", config.module, task.id)
    return task


def close_task(config: CollectModuleConfig, actor, task_id) -> CollectionTask:
    with audit_operation(actor, action=f"{config.module}.task.close", target_type="collect_task", target_id=task_id) as op:
        require_perm(config, actor, "close")
        with transaction.atomic():
            task = get_console_task(config, task_id, for_update=True)
            assert_can_operate_task(config, actor, task)
            if task.is_archived:
                raise Conflict("Archived tasks cannot be closed")
            if task.status == CollectionTask.STATUS_CLOSED:
                op.diff = {"noop": True}
                return task
            if task.status != CollectionTask.STATUS_PUBLISHED:
                raise Conflict("Only published tasks can be closed")
            task.status = CollectionTask.STATUS_CLOSED
            task.updated_by = actor
            task.save(update_fields=["status", "updated_by", "updated_at"])
        op.diff = {"before": {"status": CollectionTask.STATUS_PUBLISHED}, "after": {"status": task.status}}
    return task


def archive_task(config: CollectModuleConfig, actor, task_id) -> CollectionTask:
    """Freeze a closed task and stamp every submission in one transaction."""
    with audit_operation(actor, action=f"{config.module}.task.archive", target_type="collect_task", target_id=task_id) as op:
        require_perm(config, actor, "archive")
        with transaction.atomic():
            task = get_console_task(config, task_id, for_update=True)
            assert_can_operate_task(config, actor, task)
            if task.is_archived:
                op.diff = {"noop": True}
                return task
            if task.status != CollectionTask.STATUS_CLOSED:
                raise Conflict("Only closed tasks can be archived")
            now = timezone.now()
            task.archived_at = now
            task.updated_by = actor
            task.save(update_fields=["archived_at", "updated_by", "updated_at"])
            stamped = task.submissions.update(archived_at=now)
        op.diff = {"after": {"archived_at": now.isoformat()}, "submissions_archived": stamped}
    logger.info("collect_task_archived module=%s task_id=%s submissions=%s", config.module, task.id, stamped)
    return task


def delete_task(config: CollectModuleConfig, actor, task_id) -> None:
    """Soft delete; submissions and files stay for audit."""
    with audit_operation(actor, action=f"{config.module}.task.delete", target_type="collect_task", target_id=task_id) as op:
        require_perm(config, actor, "delete")
        task = get_console_task(config, task_id)
        assert_can_operate_task(config, actor, task)
        task.deleted_at = timezone.now()
        task.updated_by = actor
        task.save(update_fields=["deleted_at", "updated_by", "updated_at"])
        op.diff = {"before": {"deleted_at": None}, "after": {"deleted_at": task.deleted_at.isoformat()}}


def upload_item_template(config: CollectModuleConfig, actor, task_id, item_id, upload) -> CollectionItem:
    """Replace an item's template: the new blob is written before the old one goes."""
    with audit_operation(actor, action=f"{config.module}.item.template", target_type="collect_item", target_id=item_id) as op:
        require_perm(config, actor, "update")
        task = get_console_task(config, task_id)
        assert_can_operate_task(config, actor, task)
        if task.is_archived or task.status == CollectionTask.STATUS_CLOSED:
            raise Conflict("Templates cannot change on closed or archived tasks")
        item = CollectionItem.objects.filter(task=task, id=parse_uuid_or_404(item_id, label="Item")).first()
        if item is None:
            raise NotFound("Item not found")

        size = int(getattr(upload, "size", 0) or 0)
        max_bytes = int(getattr(settings, "COLLECT_MAX_TEMPLATE_BYTES", 20 * 1024 * 1024))
        if size <= 0:
            raise BadRequest("The file is empty")
        if size > max_bytes:
            raise BadRequest(f"Templates are limited to {max_bytes // (1024 * 1024)} MB", details={"max_bytes": max_bytes})

        file_name = (getattr(upload, "name", "") or "template").strip() or "template"
        content_type = getattr(upload, "content_type", "") or "application/octet-stream"
        key = (
            f"collect/{config.module}/tasks/{task.id}/templates/{item.id}/"
            f"{uuid.uuid4()}-{sanitize_storage_key_part(file_name)}"
        )
        storage = get_storage_gateway()
        try:
            storage.upload_private(config.template_bucket, key, upload, content_type)
        except CollectError:
            raise
        except Exception as exc:
            raise BadRequest("Upload failed", details={"message": str(exc)}) from exc

        old_key = item.template_file_key
        item.template_file_key = key
        item.template_file_name = file_name[:255]
        item.template_content_type = content_type[:200]
        item.template_size = size
        item.save(
            update_fields=[
                "template_file_key",
                "template_file_name",
                "template_content_type",
                "template_size",
                "updated_at",
            ]
        )
        op.diff = {"task_id": str(task.id), "file_name": item.template_file_name, "size": size}

    if old_key and old_key != key:
        _remove_blobs_quietly(config.template_bucket, [old_key])
    return item
