import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


SCOPE_TYPE_CHOICES = [("role", "Role"), ("department", "Department"), ("position", "Position")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Department",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                (
                    "parent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="children",
                        to="collect.department",
                    ),
                ),
            ],
            options={
                "ordering": ["name", "id"],
            },
        ),
        migrations.CreateModel(
            name="DepartmentClosure",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("depth", models.PositiveIntegerField(default=0)),
                (
                    "ancestor",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="descendant_links",
                        to="collect.department",
                    ),
                ),
                (
                    "descendant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="ancestor_links",
                        to="collect.department",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("ancestor", "descendant"), name="uniq_department_closure_pair"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Position",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=120, unique=True)),
            ],
            options={
                "ordering": ["name", "id"],
            },
        ),
        migrations.CreateModel(
            name="UserProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(blank=True, default="", max_length=120)),
                ("student_id", models.CharField(blank=True, default="", max_length=64)),
                ("positions", models.ManyToManyField(blank=True, related_name="profiles", to="collect.position")),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="collect_profile",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["student_id"], name="collect_profile_sid_idx")],
            },
        ),
        migrations.CreateModel(
            name="UserDepartment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="collect.department",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="collect_departments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("user", "department"), name="uniq_user_department"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Notice",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=200)),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("published", "Published")],
                        default="draft",
                        max_length=16,
                    ),
                ),
                ("visible_all", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="NoticeScope",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("scope_type", models.CharField(choices=SCOPE_TYPE_CHOICES, max_length=16)),
                ("ref_id", models.CharField(max_length=64)),
                (
                    "notice",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="scopes",
                        to="collect.notice",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["scope_type", "ref_id"], name="collect_ntcscope_ref_idx")],
            },
        ),
        migrations.CreateModel(
            name="CollectionTask",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("module", models.CharField(default="collect", max_length=32)),
                ("title", models.CharField(max_length=200)),
                ("description_md", models.TextField(blank=True, default="")),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("published", "Published"), ("closed", "Closed")],
                        default="draft",
                        max_length=16,
                    ),
                ),
                (
                    "source_type",
                    models.CharField(blank=True, choices=[("notice", "Notice")], max_length=16, null=True),
                ),
                ("source_id", models.CharField(blank=True, max_length=64, null=True)),
                ("visible_all", models.BooleanField(default=False)),
                ("max_files_per_submission", models.PositiveIntegerField(default=10)),
                ("due_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("archived_at", models.DateTimeField(blank=True, null=True)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="collect_tasks_created",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "updated_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="collect_tasks_updated",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-updated_at", "-id"],
                "permissions": [
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
                ],
                "indexes": [
                    models.Index(fields=["module", "status", "due_at"], name="collect_task_modstadue_idx"),
                    models.Index(fields=["module", "created_by"], name="collect_task_modowner_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(deleted_at__isnull=True, source_id__isnull=False),
                        fields=("module", "source_type", "source_id"),
                        name="uniq_collect_task_source_binding",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(archived_at__isnull=True) | models.Q(status="closed"),
                        name="collect_task_archived_requires_closed",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(max_files_per_submission__gt=0),
                        name="collect_task_max_files_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CollectionTaskScope",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("scope_type", models.CharField(choices=SCOPE_TYPE_CHOICES, max_length=16)),
                ("ref_id", models.CharField(max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "task",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="scopes",
                        to="collect.collectiontask",
                    ),
                ),
            ],
            options={
                "ordering": ["scope_type", "created_at", "id"],
                "indexes": [models.Index(fields=["scope_type", "ref_id"], name="collect_tskscope_ref_idx")],
            },
        ),
        migrations.CreateModel(
            name="CollectionItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True, null=True)),
                ("required", models.BooleanField(default=False)),
                ("sort", models.IntegerField(default=0)),
                ("template_file_key", models.CharField(blank=True, max_length=512, null=True)),
                ("template_file_name", models.CharField(blank=True, max_length=255, null=True)),
                ("template_content_type", models.CharField(blank=True, max_length=200, null=True)),
                ("template_size", models.BigIntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "task",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="collect.collectiontask",
                    ),
                ),
            ],
            options={
                "ordering": ["sort", "created_at"],
            },
        ),
        migrations.CreateModel(
            name="Submission",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("complete", "Complete"),
                            ("need_more", "Need more"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("withdrawn_at", models.DateTimeField(blank=True, null=True)),
                ("archived_at", models.DateTimeField(blank=True, null=True)),
                ("student_message", models.TextField(blank=True, null=True)),
                ("staff_note", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "assignee",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="collect_assigned_submissions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "task",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="submissions",
                        to="collect.collectiontask",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="collect_submissions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-submitted_at", "-updated_at", "-id"],
                "indexes": [
                    models.Index(fields=["task", "status"], name="collect_sub_taskstat_idx"),
                    models.Index(fields=["task", "submitted_at"], name="collect_sub_tasksubm_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("task", "user"), name="uniq_collect_submission_task_user"),
                    models.CheckConstraint(
                        condition=models.Q(submitted_at__isnull=True) | models.Q(withdrawn_at__isnull=True),
                        name="collect_submission_submit_xor_withdraw",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SubmissionFile",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("file_key", models.CharField(max_length=512)),
                ("file_name", models.CharField(max_length=255)),
                ("content_type", models.CharField(default="application/octet-stream", max_length=200)),
                ("size", models.BigIntegerField()),
                ("sort", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="files",
                        to="collect.collectionitem",
                    ),
                ),
                (
                    "submission",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="files",
                        to="collect.submission",
                    ),
                ),
            ],
            options={
                "ordering": ["sort", "created_at"],
                "indexes": [models.Index(fields=["submission", "item"], name="collect_file_subitem_idx")],
            },
        ),
        migrations.CreateModel(
            name="AuditEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=80)),
                ("target_type", models.CharField(blank=True, default="", max_length=80)),
                ("target_id", models.CharField(blank=True, default="", max_length=64)),
                ("success", models.BooleanField(default=True)),
                ("error_code", models.CharField(blank=True, default="", max_length=40)),
                ("reason", models.CharField(blank=True, default="", max_length=500)),
                ("diff", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "actor_user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="collect_audit_events",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["action", "created_at"], name="collect_audit_action_idx"),
                    models.Index(fields=["target_type", "target_id"], name="collect_audit_target_idx"),
                ],
            },
        ),
    ]
