"""Data model for material collection.

Staff publish a collection task ("submit your ID scan + signed form"); each
task has ordered material slots (items). Students fulfil a task through one
submission that holds the uploaded files.

Task state lives on three independent axes:
- `status` (draft -> published -> closed)
- `archived_at` (only reachable from closed; terminal)
- `deleted_at` (soft delete from any status)
"""

import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q


SCOPE_ROLE = "role"
SCOPE_DEPARTMENT = "department"
SCOPE_POSITION = "position"
SCOPE_TYPE_CHOICES = [
    (SCOPE_ROLE, "Role"),
    (SCOPE_DEPARTMENT, "Department"),
    (SCOPE_POSITION, "Position"),
]


class Department(models.Model):
    """Organisational unit; the tree is mirrored into DepartmentClosure."""

    name = models.CharField(max_length=200)
    parent = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="children",
    )

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return self.name


class DepartmentClosure(models.Model):
    """Transitive closure of the department tree (self rows have depth 0)."""

    ancestor = models.ForeignKey(Department, on_delete=models.CASCADE, related_name="descendant_links")
    descendant = models.ForeignKey(Department, on_delete=models.CASCADE, related_name="ancestor_links")
    depth = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["ancestor", "descendant"], name="uniq_department_closure_pair"),
        ]

    def __str__(self) -> str:
        return f"{self.ancestor_id} -> {self.descendant_id} ({self.depth})"


class Position(models.Model):
    name = models.CharField(max_length=120, unique=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return self.name


class UserProfile(models.Model):
    """Directory data for a portal user (display name + student number)."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="collect_profile",
    )
    name = models.CharField(max_length=120, blank=True, default="")
    student_id = models.CharField(max_length=64, blank=True, default="")
    positions = models.ManyToManyField(Position, blank=True, related_name="profiles")

    class Meta:
        indexes = [
            models.Index(fields=["student_id"], name="collect_profile_sid_idx"),
        ]

    def __str__(self) -> str:
        return self.name or str(self.user_id)


class UserDepartment(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="collect_departments",
    )
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name="memberships")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "department"], name="uniq_user_department"),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} @ {self.department_id}"


class Notice(models.Model):
    """Minimal notice record: tasks may bind to one and inherit its visibility."""

    STATUS_DRAFT = "draft"
    STATUS_PUBLISHED = "published"
    STATUS_CHOICES = [
        (STATUS_DRAFT, "Draft"),
        (STATUS_PUBLISHED, "Published"),
    ]

    title = models.CharField(max_length=200)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    visible_all = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return self.title


class NoticeScope(models.Model):
    notice = models.ForeignKey(Notice, on_delete=models.CASCADE, related_name="scopes")
    scope_type = models.CharField(max_length=16, choices=SCOPE_TYPE_CHOICES)
    ref_id = models.CharField(max_length=64)

    class Meta:
        indexes = [
            models.Index(fields=["scope_type", "ref_id"], name="collect_ntcscope_ref_idx"),
        ]


class CollectionTask(models.Model):
    """A unit of work staff publish for students to fulfil."""

    STATUS_DRAFT = "draft"
    STATUS_PUBLISHED = "published"
    STATUS_CLOSED = "closed"
    STATUS_CHOICES = [
        (STATUS_DRAFT, "Draft"),
        (STATUS_PUBLISHED, "Published"),
        (STATUS_CLOSED, "Closed"),
    ]

    SOURCE_NOTICE = "notice"
    SOURCE_TYPE_CHOICES = [
        (SOURCE_NOTICE, "Notice"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    module = models.CharField(max_length=32, default="collect")
    title = models.CharField(max_length=200)
    description_md = models.TextField(blank=True, default="")
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_DRAFT)

    # When bound to a source object the task inherits that object's visibility.
    source_type = models.CharField(max_length=16, choices=SOURCE_TYPE_CHOICES, null=True, blank=True)
    source_id = models.CharField(max_length=64, null=True, blank=True)

    visible_all = models.BooleanField(default=False)
    max_files_per_submission = models.PositiveIntegerField(default=10)
    due_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="collect_tasks_created",
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="collect_tasks_updated",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    archived_at = models.DateTimeField(null=True, blank=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-updated_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["module", "source_type", "source_id"],
                condition=Q(deleted_at__isnull=True, source_id__isnull=False),
                name="uniq_collect_task_source_binding",
            ),
            models.CheckConstraint(
                condition=Q(archived_at__isnull=True) | Q(status="closed"),
                name="collect_task_archived_requires_closed",
            ),
            models.CheckConstraint(
                condition=Q(max_files_per_submission__gt=0),
                name="collect_task_max_files_positive",
            ),
        ]
        indexes = [
            models.Index(fields=["module", "status", "due_at"], name="collect_task_modstadue_idx"),
            models.Index(fields=["module", "created_by"], name="collect_task_modowner_idx"),
        ]
        permissions = [
            ("collect_create", "Create collection tasks"),
            ("collect_update", "Edit collection tasks"),
            ("collect_publish", "Publish collection tasks"),
            ("collect_close", "Close collection tasks"),
            ("collect_archive", "Archive collection tasks"),
            ("collect_delete", "Delete collection tasks"),
            ("collect_process", "Review collection submissions"),
            ("collect_export", "Export collection submissions"),
            ("collect_manage", "Manage every collection task"),
            ("material_create", "Create material tasks"),
            ("material_update", "Edit material tasks"),
            ("material_publish", "Publish material tasks"),
            ("material_close", "Close material tasks"),
            ("material_archive", "Archive material tasks"),
            ("material_delete", "Delete material tasks"),
            ("material_process", "Review material submissions"),
            ("material_export", "Export material submissions"),
            ("material_manage", "Manage every material task"),
        ]

    @property
    def is_source_bound(self) -> bool:
        return bool(self.source_type and self.source_id)

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def __str__(self) -> str:
        return f"{self.module}: {self.title}"


class CollectionTaskScope(models.Model):
    """Visibility scope used only when a task is neither source-bound nor visible to all."""

    task = models.ForeignKey(CollectionTask, on_delete=models.CASCADE, related_name="scopes")
    scope_type = models.CharField(max_length=16, choices=SCOPE_TYPE_CHOICES)
    ref_id = models.CharField(max_length=64)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["scope_type", "created_at", "id"]
        indexes = [
            models.Index(fields=["scope_type", "ref_id"], name="collect_tskscope_ref_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.task_id}: {self.scope_type}={self.ref_id}"


class CollectionItem(models.Model):
    """A named material slot belonging to a task, ordered by `sort`."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4)
    task = models.ForeignKey(CollectionTask, on_delete=models.CASCADE, related_name="items")
    title = models.CharField(max_length=200)
    description = models.TextField(null=True, blank=True)
    required = models.BooleanField(default=False)
    sort = models.IntegerField(default=0)

    # Optional staff-provided example/blank file.
    template_file_key = models.CharField(max_length=512, null=True, blank=True)
    template_file_name = models.CharField(max_length=255, null=True, blank=True)
    template_content_type = models.CharField(max_length=200, null=True, blank=True)
    template_size = models.BigIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sort", "created_at"]

    @property
    def has_template(self) -> bool:
        return bool(
            self.template_file_key
            and self.template_file_name
            and self.template_content_type
            and self.template_size is not None
        )

    def __str__(self) -> str:
        return self.title


class Submission(models.Model):
    """At most one per (task, user); `status` is a staff triage label."""

    STATUS_PENDING = "pending"
    STATUS_COMPLETE = "complete"
    STATUS_NEED_MORE = "need_more"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_COMPLETE, "Complete"),
        (STATUS_NEED_MORE, "Need more"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_REJECTED, "Rejected"),
    ]
    # Statuses that must explain themselves to the student.
    MESSAGE_REQUIRED_STATUSES = {STATUS_NEED_MORE, STATUS_REJECTED}

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    task = models.ForeignKey(CollectionTask, on_delete=models.CASCADE, related_name="submissions")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="collect_submissions",
    )
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    submitted_at = models.DateTimeField(null=True, blank=True)
    withdrawn_at = models.DateTimeField(null=True, blank=True)
    archived_at = models.DateTimeField(null=True, blank=True)
    assignee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="collect_assigned_submissions",
    )
    student_message = models.TextField(null=True, blank=True)
    staff_note = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-submitted_at", "-updated_at", "-id"]
        constraints = [
            models.UniqueConstraint(fields=["task", "user"], name="uniq_collect_submission_task_user"),
            models.CheckConstraint(
                condition=Q(submitted_at__isnull=True) | Q(withdrawn_at__isnull=True),
                name="collect_submission_submit_xor_withdraw",
            ),
        ]
        indexes = [
            models.Index(fields=["task", "status"], name="collect_sub_taskstat_idx"),
            models.Index(fields=["task", "submitted_at"], name="collect_sub_tasksubm_idx"),
        ]

    def __str__(self) -> str:
        return f"Submission {self.id} ({self.user_id} -> {self.task_id})"


class SubmissionFile(models.Model):
    """One uploaded artifact for one item within one submission."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    submission = models.ForeignKey(Submission, on_delete=models.CASCADE, related_name="files")
    item = models.ForeignKey(CollectionItem, on_delete=models.CASCADE, related_name="files")
    file_key = models.CharField(max_length=512)
    file_name = models.CharField(max_length=255)
    content_type = models.CharField(max_length=200, default="application/octet-stream")
    size = models.BigIntegerField()
    # Upload order within the submission; doubles as the quota counter.
    sort = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["sort", "created_at"]
        indexes = [
            models.Index(fields=["submission", "item"], name="collect_file_subitem_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.file_name} ({self.submission_id})"


class AuditEvent(models.Model):
    """Immutable action record for operations and incident review."""

    actor_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="collect_audit_events",
    )
    action = models.CharField(max_length=80)
    target_type = models.CharField(max_length=80, blank=True, default="")
    target_id = models.CharField(max_length=64, blank=True, default="")
    success = models.BooleanField(default=True)
    error_code = models.CharField(max_length=40, blank=True, default="")
    reason = models.CharField(max_length=500, blank=True, default="")
    diff = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["action", "created_at"], name="collect_audit_action_idx"),
            models.Index(fields=["target_type", "target_id"], name="collect_audit_target_idx"),
        ]

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError("AuditEvent is append-only and cannot be updated.")
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.created_at.isoformat()} {self.action} {self.target_type}:{self.target_id}"
