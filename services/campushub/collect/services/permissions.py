"""Permission oracle and the console ownership rule.

Permission codes are `<module>:<action>`. The default oracle maps them onto
Django model permissions declared on CollectionTask (`collect.<module>_<action>`).
"""

import uuid

from django.conf import settings
from django.db.models import Q
from django.utils.module_loading import import_string

from ..errors import Forbidden, NotFound
from ..models import CollectionTask
from .config import CollectModuleConfig


class DjangoPermissionOracle:
    def has_perm(self, user, code: str) -> bool:
        if not getattr(user, "is_authenticated", False):
            return False
        if not getattr(user, "is_active", True):
            return False
        if getattr(user, "is_superuser", False):
            return True
        module, _, action = (code or "").partition(":")
        if not module or not action:
            return False
        return bool(user.has_perm(f"collect.{module}_{action}"))


def get_permission_oracle():
    factory = import_string(
        getattr(settings, "COLLECT_PERMISSION_ORACLE", "collect.services.permissions.DjangoPermissionOracle")
    )
    return factory()


def has_perm(config: CollectModuleConfig, user, action: str) -> bool:
    return get_permission_oracle().has_perm(user, config.perm(action))


def require_perm(config: CollectModuleConfig, user, action: str) -> None:
    if not has_perm(config, user, action):
        raise Forbidden("Permission denied", details={"permission": config.perm(action)})


def can_operate_task(config: CollectModuleConfig, actor, task: CollectionTask) -> bool:
    """Creator of the task, or holder of `<module>:manage`."""
    actor_id = getattr(actor, "pk", None)
    if actor_id is not None and task.created_by_id == actor_id:
        return True
    return has_perm(config, actor, "manage")


def assert_can_operate_task(config: CollectModuleConfig, actor, task: CollectionTask) -> None:
    if not can_operate_task(config, actor, task):
        raise Forbidden("Only the task owner or a manager may operate this task")


def owned_tasks_q(config: CollectModuleConfig, actor) -> Q:
    """Console data scope: the actor's own tasks, or every task for `<module>:manage`."""
    if has_perm(config, actor, "manage"):
        return Q()
    actor_id = getattr(actor, "pk", None)
    if actor_id is None:
        return Q(pk__in=[])
    return Q(created_by_id=actor_id)


def parse_uuid_or_404(value, *, label: str = "Task") -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise NotFound(f"{label} not found") from None


def get_console_task(config: CollectModuleConfig, task_id, *, actor=None, for_update: bool = False) -> CollectionTask:
    """Scope-filtered lookup: missing, deleted or other-module tasks are NotFound.

    With `actor`, tasks outside the actor's data scope are NotFound as well.
    Mutations look up without it and answer foreign tasks with Forbidden.
    """
    queryset = CollectionTask.objects.filter(
        id=parse_uuid_or_404(task_id),
        module=config.module,
        deleted_at__isnull=True,
    )
    if actor is not None:
        queryset = queryset.filter(owned_tasks_q(config, actor))
    if for_update:
        queryset = queryset.select_for_update()
    task = queryset.first()
    if task is None:
        raise NotFound("Task not found")
    return task


__all__ = [
    "DjangoPermissionOracle",
    "assert_can_operate_task",
    "can_operate_task",
    "get_console_task",
    "get_permission_oracle",
    "has_perm",
    "owned_tasks_q",
    "parse_uuid_or_404",
    "require_perm",
]
