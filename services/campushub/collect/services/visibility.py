"""Portal visibility: which tasks and notices a student may see.

Scope refs are matched as strings:
- role: Django group ids the user belongs to
- department: the user's departments and all of their ancestors
- position: position ids on the user's profile
"""

from django.conf import settings
from django.db.models import Q
from django.utils.module_loading import import_string

from ..models import (
    SCOPE_DEPARTMENT,
    SCOPE_POSITION,
    SCOPE_ROLE,
    CollectionTask,
    CollectionTaskScope,
    DepartmentClosure,
    Notice,
    NoticeScope,
    UserProfile,
)


class ScopeVisibilityResolver:
    def user_scope_refs(self, user) -> dict[str, set[str]]:
        refs = {SCOPE_ROLE: set(), SCOPE_DEPARTMENT: set(), SCOPE_POSITION: set()}
        if not getattr(user, "is_authenticated", False):
            return refs
        refs[SCOPE_ROLE] = {str(pk) for pk in user.groups.values_list("id", flat=True)}
        refs[SCOPE_DEPARTMENT] = {
            str(pk)
            for pk in DepartmentClosure.objects.filter(
                descendant__memberships__user=user,
            ).values_list("ancestor_id", flat=True)
        }
        refs[SCOPE_POSITION] = {
            str(pk)
            for pk in UserProfile.objects.filter(user=user).values_list("positions__id", flat=True)
            if pk is not None
        }
        return refs

    @staticmethod
    def _scope_q(refs: dict[str, set[str]]) -> Q:
        matched = Q(pk__in=[])
        for scope_type, ref_ids in refs.items():
            if ref_ids:
                matched |= Q(scope_type=scope_type, ref_id__in=sorted(ref_ids))
        return matched

    def resolve_visible_task_ids(self, user, module: str) -> set:
        """Ids of source-less tasks the user matches by visible_all or scope."""
        if not getattr(user, "is_authenticated", False):
            return set()
        refs = self.user_scope_refs(user)
        scoped = CollectionTaskScope.objects.filter(
            self._scope_q(refs),
            task__module=module,
        ).values_list("task_id", flat=True)
        open_to_all = CollectionTask.objects.filter(
            module=module,
            source_type__isnull=True,
            visible_all=True,
        ).values_list("id", flat=True)
        return set(open_to_all) | set(scoped)

    def visible_notice_ids(self, user) -> set[str]:
        """Published, non-deleted notices the user can see, as string ids."""
        if not getattr(user, "is_authenticated", False):
            return set()
        refs = self.user_scope_refs(user)
        scoped_notice_ids = NoticeScope.objects.filter(self._scope_q(refs)).values_list("notice_id", flat=True)
        notices = Notice.objects.filter(
            status=Notice.STATUS_PUBLISHED,
            deleted_at__isnull=True,
        ).filter(Q(visible_all=True) | Q(id__in=scoped_notice_ids))
        return {str(pk) for pk in notices.values_list("id", flat=True)}

    def is_notice_visible(self, user, notice_id) -> bool:
        return str(notice_id) in self.visible_notice_ids(user)


def get_visibility_resolver():
    factory = import_string(
        getattr(settings, "COLLECT_VISIBILITY_RESOLVER", "collect.services.visibility.ScopeVisibilityResolver")
    )
    return factory()


def portal_visible_tasks_q(user, module: str) -> Q:
    """Q over CollectionTask for tasks the user can see in the portal."""
    resolver = get_visibility_resolver()
    task_ids = resolver.resolve_visible_task_ids(user, module)
    notice_ids = resolver.visible_notice_ids(user)
    return Q(source_type__isnull=True, id__in=task_ids) | Q(
        source_type=CollectionTask.SOURCE_NOTICE,
        source_id__in=sorted(notice_ids),
    )
