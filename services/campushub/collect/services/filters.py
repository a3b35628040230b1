"""Submission filters shared by the review list and the export plan."""

from dataclasses import dataclass
from datetime import datetime

from django.db.models import BigIntegerField, Count, Exists, F, OuterRef, Q, QuerySet, Sum
from django.db.models.functions import Coalesce

from ..models import CollectionItem, CollectionTask, Submission, SubmissionFile, UserDepartment, UserProfile


@dataclass(frozen=True)
class SubmissionFilters:
    q: str = ""
    status: str = ""
    missing_required: bool | None = None
    submitted_from: datetime | None = None
    submitted_to: datetime | None = None
    department_id: int | None = None


def missing_required_expression() -> Exists:
    """True iff some required item of the submission's task has no file in it."""
    files_for_item = SubmissionFile.objects.filter(
        submission_id=OuterRef(OuterRef("pk")),
        item_id=OuterRef("pk"),
    )
    required_without_file = CollectionItem.objects.filter(
        task_id=OuterRef("task_id"),
        required=True,
    ).filter(~Exists(files_for_item))
    return Exists(required_without_file)


def missing_required_items(submission: Submission) -> list[CollectionItem]:
    """Required items of the task that have zero files in this submission."""
    return list(
        CollectionItem.objects.filter(task_id=submission.task_id, required=True)
        .exclude(files__submission_id=submission.pk)
        .order_by("sort", "created_at")
    )


def filtered_submissions(task: CollectionTask, filters: SubmissionFilters) -> QuerySet[Submission]:
    """Non-withdrawn submissions of a task, narrowed by the review filters."""
    queryset = (
        Submission.objects.filter(task=task, withdrawn_at__isnull=True)
        .select_related("user", "user__collect_profile")
        .annotate(
            missing_required=missing_required_expression(),
            file_count=Count("files", distinct=True),
            total_bytes=Coalesce(Sum("files__size"), 0, output_field=BigIntegerField()),
        )
    )
    q = (filters.q or "").strip()
    if q:
        queryset = queryset.filter(
            Q(user__collect_profile__name__icontains=q)
            | Q(user__collect_profile__student_id__icontains=q)
            | Q(user__username__icontains=q)
        )
    if filters.status:
        queryset = queryset.filter(status=filters.status)
    if filters.missing_required is not None:
        queryset = queryset.filter(missing_required=filters.missing_required)
    if filters.submitted_from is not None:
        queryset = queryset.filter(submitted_at__gte=filters.submitted_from)
    if filters.submitted_to is not None:
        queryset = queryset.filter(submitted_at__lte=filters.submitted_to)
    if filters.department_id is not None:
        in_department = UserDepartment.objects.filter(
            user_id=OuterRef("user_id"),
            department__ancestor_links__ancestor_id=filters.department_id,
        )
        queryset = queryset.filter(Exists(in_department))
    return queryset.order_by(
        F("submitted_at").desc(nulls_last=True),
        "-updated_at",
        "-id",
    )


def department_names_by_user(user_ids) -> dict[int, list[str]]:
    names: dict[int, list[str]] = {}
    rows = UserDepartment.objects.filter(user_id__in=list(user_ids)).values_list("user_id", "department__name")
    for user_id, name in rows:
        names.setdefault(user_id, []).append(name)
    return {user_id: sorted(values) for user_id, values in names.items()}


def student_identity(user) -> tuple[str, str]:
    """Return (student_id, display name) for a portal user."""
    try:
        profile = user.collect_profile
    except UserProfile.DoesNotExist:
        profile = None
    student_id = (getattr(profile, "student_id", "") or "").strip()
    name = (getattr(profile, "name", "") or "").strip()
    if not name:
        name = (user.get_full_name() or "").strip() or user.get_username()
    return student_id, name
