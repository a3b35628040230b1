"""Request parsing for the collection JSON API.

Everything here raises BadRequest on malformed input; nothing touches the
database.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ..errors import BadRequest
from ..services.filters import SubmissionFilters
from ..services.tasks import ItemInput, ScopeInput, SourceRef, TaskInput

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def read_json_body(request) -> dict:
    if not request.body:
        return {}
    try:
        payload = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise BadRequest("Request body must be valid JSON") from None
    if not isinstance(payload, dict):
        raise BadRequest("Request body must be a JSON object")
    return payload


def parse_bool(value, *, default: bool | None = None) -> bool | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise BadRequest(f"Invalid boolean value: {value}")


def parse_int(value, *, default: int, field: str = "value") -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadRequest(f"{field} must be an integer") from None


def parse_datetime_value(value, *, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    parsed = parse_datetime(str(value)) if not isinstance(value, datetime) else value
    if parsed is None:
        raise BadRequest(f"{field} must be an ISO-8601 datetime")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, timezone.get_default_timezone())
    return parsed


def parse_source(raw) -> SourceRef | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise BadRequest("source must be an object")
    return SourceRef(type=str(raw.get("type") or "").strip(), id=str(raw.get("id") or "").strip())


def _parse_item(raw, index: int) -> ItemInput:
    if not isinstance(raw, dict):
        raise BadRequest("items must be objects")
    item_id = raw.get("id")
    if item_id:
        try:
            item_id = uuid.UUID(str(item_id))
        except ValueError:
            raise BadRequest(f"Invalid item id: {raw.get('id')}") from None
    else:
        item_id = None
    description = raw.get("description")
    return ItemInput(
        id=item_id,
        title=str(raw.get("title") or "").strip(),
        description=str(description) if description is not None else None,
        required=bool(parse_bool(raw.get("required"), default=False)),
        sort=parse_int(raw.get("sort"), default=index, field="sort"),
    )


def parse_task_input(body: dict) -> TaskInput:
    scopes_raw = body.get("scopes") or []
    items_raw = body.get("items") or []
    if not isinstance(scopes_raw, list) or not isinstance(items_raw, list):
        raise BadRequest("scopes and items must be lists")
    scopes = []
    for raw in scopes_raw:
        if not isinstance(raw, dict):
            raise BadRequest("scopes must be objects")
        scopes.append(
            ScopeInput(
                scope_type=str(raw.get("scope_type") or "").strip(),
                ref_id=str(raw.get("ref_id") or "").strip(),
            )
        )
    return TaskInput(
        title=str(body.get("title") or "").strip(),
        description_md=str(body.get("description_md") or ""),
        source=parse_source(body.get("source")),
        visible_all=bool(parse_bool(body.get("visible_all"), default=False)),
        scopes=scopes,
        items=[_parse_item(raw, index) for index, raw in enumerate(items_raw)],
        max_files_per_submission=parse_int(
            body.get("max_files_per_submission"), default=10, field="max_files_per_submission"
        ),
        due_at=parse_datetime_value(body.get("due_at"), field="due_at"),
    )


def parse_submission_filters(query) -> SubmissionFilters:
    department = (query.get("department_id") or "").strip()
    if department and not department.isdigit():
        raise BadRequest("department_id must be an integer")
    return SubmissionFilters(
        q=(query.get("q") or "").strip(),
        status=(query.get("status") or "").strip(),
        missing_required=parse_bool(query.get("missing_required")),
        submitted_from=parse_datetime_value(query.get("from"), field="from"),
        submitted_to=parse_datetime_value(query.get("to"), field="to"),
        department_id=int(department) if department else None,
    )


def parse_batch_body(body: dict) -> dict:
    ids = body.get("submission_ids")
    if not isinstance(ids, list):
        raise BadRequest("submission_ids must be a list")
    action = str(body.get("action") or "").strip()
    if not action:
        raise BadRequest("action is required")
    return {
        "submission_ids": [str(value) for value in ids],
        "action": action,
        "status": (str(body.get("status")).strip() if body.get("status") else None),
        "student_message": body.get("student_message"),
        "staff_note": body.get("staff_note"),
    }
