"""Staff console endpoints: task lifecycle, review and export."""

import logging

from django.http import StreamingHttpResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from ..http.headers import mark_attachment
from ..http.payloads import (
    parse_batch_body,
    parse_bool,
    parse_datetime_value,
    parse_int,
    parse_source,
    parse_submission_filters,
    parse_task_input,
    read_json_body,
)
from ..services import export as export_service
from ..services import review, tasks
from ._shared import _json_no_store_response, _page_args, _staff_required, _uploaded_file_or_400, collect_endpoint

logger = logging.getLogger(__name__)


@require_http_methods(["GET", "POST"])
@_staff_required
@collect_endpoint
def console_tasks(request, config):
    """GET lists tasks of the module; POST creates a draft."""
    if request.method == "POST":
        task = tasks.create_task(config, request.user, parse_task_input(read_json_body(request)))
        return _json_no_store_response({"task": tasks.get_console_task_detail(config, request.user, task.id)}, status=201)
    result = tasks.list_console_tasks(
        config,
        request.user,
        q=request.GET.get("q", ""),
        status=request.GET.get("status", ""),
        mine=bool(parse_bool(request.GET.get("mine"), default=False)),
        archived=bool(parse_bool(request.GET.get("archived"), default=False)),
        **_page_args(request),
    )
    return _json_no_store_response(result)


@require_GET
@_staff_required
@collect_endpoint
def console_tasks_due_soon(request, config):
    within_days = parse_int(request.GET.get("within_days"), default=7, field="within_days")
    limit = parse_int(request.GET.get("limit"), default=10, field="limit")
    return _json_no_store_response(
        {
            "count": tasks.count_due_soon(config, request.user, within_days=within_days),
            "items": tasks.list_due_soon(config, request.user, within_days=within_days, limit=limit),
        }
    )


@require_GET
@_staff_required
@collect_endpoint
def console_task_by_source(request, config):
    source = parse_source({"type": request.GET.get("type", ""), "id": request.GET.get("id", "")})
    return _json_no_store_response({"task": tasks.find_console_task_by_source(config, request.user, source)})


@require_http_methods(["GET", "POST"])
@_staff_required
@collect_endpoint
def console_task_detail(request, config, task_id):
    """GET returns the task with scopes and items; POST replaces a draft."""
    if request.method == "POST":
        tasks.update_task(config, request.user, task_id, parse_task_input(read_json_body(request)))
    return _json_no_store_response({"task": tasks.get_console_task_detail(config, request.user, task_id)})


@require_POST
@_staff_required
@collect_endpoint
def console_task_due_at(request, config, task_id):
    body = read_json_body(request)
    task = tasks.update_due_at(config, request.user, task_id, parse_datetime_value(body.get("due_at"), field="due_at"))
    return _json_no_store_response({"task": tasks.task_summary(task)})


_LIFECYCLE_ACTIONS = {
    "publish": tasks.publish_task,
    "close": tasks.close_task,
    "archive": tasks.archive_task,
}


@require_POST
@_staff_required
@collect_endpoint
def console_task_transition(request, config, task_id, action):
    if action == "delete":
        tasks.delete_task(config, request.user, task_id)
        return _json_no_store_response({"ok": True})
    task = _LIFECYCLE_ACTIONS[action](config, request.user, task_id)
    return _json_no_store_response({"task": tasks.task_summary(task)})


@require_POST
@_staff_required
@collect_endpoint
def console_item_template(request, config, task_id, item_id):
    item = tasks.upload_item_template(config, request.user, task_id, item_id, _uploaded_file_or_400(request))
    return _json_no_store_response({"item_id": item.id, "template": tasks.template_meta(item)})


@require_GET
@_staff_required
@collect_endpoint
def console_submissions(request, config, task_id):
    filters = parse_submission_filters(request.GET)
    result = review.list_submissions(config, request.user, task_id, filters, **_page_args(request, default_size=50))
    return _json_no_store_response(result)


@require_GET
@_staff_required
@collect_endpoint
def console_submission_detail(request, config, task_id, submission_id):
    detail = review.get_submission_detail(
        config,
        request.user,
        task_id,
        submission_id,
        include_download_urls=bool(parse_bool(request.GET.get("include_download_urls"), default=False)),
    )
    return _json_no_store_response({"submission": detail})


@require_POST
@_staff_required
@collect_endpoint
def console_submissions_batch(request, config, task_id):
    updated = review.batch_process(config, request.user, task_id, **parse_batch_body(read_json_body(request)))
    return _json_no_store_response({"ok": True, "updated": updated})


@require_GET
@_staff_required
@collect_endpoint
def console_export(request, config, task_id):
    """GET streams `<title>-材料.zip`: manifest.csv plus every selected file."""
    plan = export_service.export_zip(
        config,
        request.user,
        task_id,
        parse_submission_filters(request.GET),
        include_unsubmitted=bool(parse_bool(request.GET.get("include_unsubmitted"), default=False)),
    )
    response = StreamingHttpResponse(export_service.stream_zip(config, plan), content_type="application/zip")
    mark_attachment(response, plan.file_name, fallback="export.zip")
    response["X-Collect-Export-Files"] = str(len(plan.entries))
    logger.info("collect_export_started module=%s task_id=%s user_id=%s", config.module, task_id, request.user.pk)
    return response


__all__ = [
    "console_export",
    "console_item_template",
    "console_submission_detail",
    "console_submissions",
    "console_submissions_batch",
    "console_task_by_source",
    "console_task_detail",
    "console_task_due_at",
    "console_task_transition",
    "console_tasks",
    "console_tasks_due_soon",
]
