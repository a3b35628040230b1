"""URL map for the collection API, mounted under `/api/`.

Every task route is namespaced by module (`/api/collect/...`,
`/api/material/...`); unknown modules answer 404 JSON.
"""

from django.urls import path, re_path

from . import views

urlpatterns = [
    # Signed blob downloads (token is the capability).
    path("collect-blob/<str:token>", views.blob_download),

    # Staff console.
    path("<slug:module>/console/tasks", views.console_tasks),
    path("<slug:module>/console/tasks/due-soon", views.console_tasks_due_soon),
    path("<slug:module>/console/tasks/by-source", views.console_task_by_source),
    path("<slug:module>/console/tasks/<uuid:task_id>", views.console_task_detail),
    path("<slug:module>/console/tasks/<uuid:task_id>/due-at", views.console_task_due_at),
    re_path(
        r"^(?P<module>[-a-zA-Z0-9_]+)/console/tasks/(?P<task_id>[0-9a-f-]{36})/(?P<action>publish|close|archive|delete)$",
        views.console_task_transition,
    ),
    path("<slug:module>/console/tasks/<uuid:task_id>/items/<uuid:item_id>/template", views.console_item_template),
    path("<slug:module>/console/tasks/<uuid:task_id>/submissions", views.console_submissions),
    path("<slug:module>/console/tasks/<uuid:task_id>/submissions/batch", views.console_submissions_batch),
    path(
        "<slug:module>/console/tasks/<uuid:task_id>/submissions/<uuid:submission_id>",
        views.console_submission_detail,
    ),
    path("<slug:module>/console/tasks/<uuid:task_id>/export", views.console_export),

    # Student portal.
    path("<slug:module>/tasks", views.portal_tasks),
    path("<slug:module>/tasks/by-source", views.portal_task_by_source),
    path("<slug:module>/tasks/<uuid:task_id>", views.portal_task_detail),
    path("<slug:module>/tasks/<uuid:task_id>/items/<uuid:item_id>/files", views.portal_upload_file),
    path("<slug:module>/tasks/<uuid:task_id>/files/<uuid:file_id>/delete", views.portal_delete_file),
    path("<slug:module>/tasks/<uuid:task_id>/submit", views.portal_submit),
    path("<slug:module>/tasks/<uuid:task_id>/withdraw", views.portal_withdraw),
]
