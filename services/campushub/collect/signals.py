"""Keep DepartmentClosure in step with the Department tree.

Department filters match descendants through the closure table, so every
insert or re-parent must update it.
"""

from __future__ import annotations

from django.db import transaction
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from .models import Department, DepartmentClosure


def rebuild_department_closure() -> int:
    """Recompute the full closure table from parent links; returns row count."""
    parents = dict(Department.objects.values_list("id", "parent_id"))
    rows = []
    for dept_id in parents:
        depth = 0
        current = dept_id
        seen = set()
        while current is not None and current not in seen:
            seen.add(current)
            rows.append(DepartmentClosure(ancestor_id=current, descendant_id=dept_id, depth=depth))
            current = parents.get(current)
            depth += 1
    with transaction.atomic():
        DepartmentClosure.objects.all().delete()
        DepartmentClosure.objects.bulk_create(rows)
    return len(rows)


@receiver(pre_save, sender=Department)
def _department_parent_snapshot(sender, instance: Department, **kwargs):
    previous = None
    if instance.pk:
        previous = Department.objects.filter(pk=instance.pk).values_list("parent_id", flat=True).first()
    instance._closure_previous_parent_id = previous


@receiver(post_save, sender=Department)
def _department_closure_sync(sender, instance: Department, created: bool, raw: bool = False, **kwargs):
    if raw:
        return
    if created:
        rows = [DepartmentClosure(ancestor_id=instance.pk, descendant_id=instance.pk, depth=0)]
        if instance.parent_id:
            for link in DepartmentClosure.objects.filter(descendant_id=instance.parent_id):
                rows.append(
                    DepartmentClosure(
                        ancestor_id=link.ancestor_id,
                        descendant_id=instance.pk,
                        depth=link.depth + 1,
                    )
                )
        DepartmentClosure.objects.bulk_create(rows)
        return
    if getattr(instance, "_closure_previous_parent_id", None) != instance.parent_id:
        rebuild_department_closure()
