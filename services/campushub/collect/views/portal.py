"""Student portal endpoints: browse tasks, upload files, submit and withdraw."""

from django.views.decorators.http import require_GET, require_POST

from ..http.payloads import parse_source
from ..services import submissions
from ._shared import _json_no_store_response, _login_required_json, _page_args, _uploaded_file_or_400, collect_endpoint


@require_GET
@_login_required_json
@collect_endpoint
def portal_tasks(request, config):
    result = submissions.list_portal_tasks(config, request.user, q=request.GET.get("q", ""), **_page_args(request))
    return _json_no_store_response(result)


@require_GET
@_login_required_json
@collect_endpoint
def portal_task_by_source(request, config):
    source = parse_source({"type": request.GET.get("type", ""), "id": request.GET.get("id", "")})
    return _json_no_store_response({"task": submissions.find_portal_task_by_source(config, request.user, source)})


@require_GET
@_login_required_json
@collect_endpoint
def portal_task_detail(request, config, task_id):
    return _json_no_store_response({"task": submissions.get_portal_task_detail(config, request.user, task_id)})


@require_POST
@_login_required_json
@collect_endpoint
def portal_upload_file(request, config, task_id, item_id):
    stored = submissions.upload_file(config, request.user, task_id, item_id, _uploaded_file_or_400(request))
    return _json_no_store_response(
        {
            "file": {
                "id": stored.id,
                "item_id": stored.item_id,
                "file_name": stored.file_name,
                "content_type": stored.content_type,
                "size": stored.size,
            }
        },
        status=201,
    )


@require_POST
@_login_required_json
@collect_endpoint
def portal_delete_file(request, config, task_id, file_id):
    submissions.delete_file(config, request.user, task_id, file_id)
    return _json_no_store_response({"ok": True})


@require_POST
@_login_required_json
@collect_endpoint
def portal_submit(request, config, task_id):
    submission = submissions.submit(config, request.user, task_id)
    return _json_no_store_response(
        {"ok": True, "submission_id": submission.id, "submitted_at": submission.submitted_at}
    )


@require_POST
@_login_required_json
@collect_endpoint
def portal_withdraw(request, config, task_id):
    submissions.withdraw(config, request.user, task_id)
    return _json_no_store_response({"ok": True})


__all__ = [
    "portal_delete_file",
    "portal_submit",
    "portal_task_by_source",
    "portal_task_detail",
    "portal_tasks",
    "portal_upload_file",
    "portal_withdraw",
]
