"""Recompute DepartmentClosure from Department.parent links."""

from django.core.management.base import BaseCommand

from collect.signals import rebuild_department_closure


class Command(BaseCommand):
    help = "Rebuild the department closure table used by department filters and visibility scopes."

    def handle(self, *args, **options):
        rows = rebuild_department_closure()
        self.stdout.write(self.style.SUCCESS(f"Department closure rows: {rows}"))
