from django.contrib import admin
from .models import (
    AuditEvent,
    CollectionItem,
    CollectionTask,
    CollectionTaskScope,
    Department,
    Notice,
    Position,
    Submission,
    SubmissionFile,
    UserDepartment,
    UserProfile,
)


class CollectionItemInline(admin.TabularInline):
    model = CollectionItem
    extra = 0
    fields = ("title", "required", "sort", "template_file_name", "template_size")
    readonly_fields = ("template_file_name", "template_size")


class CollectionTaskScopeInline(admin.TabularInline):
    model = CollectionTaskScope
    extra = 0


@admin.register(CollectionTask)
class CollectionTaskAdmin(admin.ModelAdmin):
    list_display = ("title", "module", "status", "due_at", "archived_at", "deleted_at", "created_by")
    list_filter = ("module", "status")
    search_fields = ("title",)
    inlines = [CollectionItemInline, CollectionTaskScopeInline]


@admin.register(Submission)
class SubmissionAdmin(admin.ModelAdmin):
    list_display = ("id", "task", "user", "status", "submitted_at", "withdrawn_at", "archived_at", "assignee")
    list_filter = ("status", "task__module")
    search_fields = ("user__username", "task__title")


@admin.register(SubmissionFile)
class SubmissionFileAdmin(admin.ModelAdmin):
    list_display = ("file_name", "submission", "item", "size", "sort", "created_at")
    search_fields = ("file_name", "file_key")


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ("name", "parent")
    search_fields = ("name",)


@admin.register(UserDepartment)
class UserDepartmentAdmin(admin.ModelAdmin):
    list_display = ("user", "department")
    list_filter = ("department",)


@admin.register(Position)
class PositionAdmin(admin.ModelAdmin):
    list_display = ("name",)


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "name", "student_id")
    search_fields = ("name", "student_id", "user__username")


@admin.register(Notice)
class NoticeAdmin(admin.ModelAdmin):
    list_display = ("title", "status", "visible_all", "created_at", "deleted_at")
    list_filter = ("status",)


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ("created_at", "action", "target_type", "target_id", "success", "error_code", "actor_user")
    list_filter = ("success", "action")
    search_fields = ("target_id", "action")
    readonly_fields = [field.name for field in AuditEvent._meta.fields]
