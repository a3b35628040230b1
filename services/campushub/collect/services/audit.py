"""Audit trail for state-changing collection operations.

Every audited call emits exactly one record: a success record carrying a
diff, or a failure record carrying an error code. Writing the record is
best-effort and never replaces the caller's own error.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
import logging
from typing import Any

from django.conf import settings
from django.utils.module_loading import import_string

from ..errors import CollectError
from ..models import AuditEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditRecord:
    actor_id: int | None
    action: str
    target_type: str
    target_id: str
    success: bool
    diff: dict = field(default_factory=dict)
    error_code: str = ""
    reason: str = ""


class ModelAuditSink:
    def record(self, record: AuditRecord) -> None:
        AuditEvent.objects.create(
            actor_user_id=record.actor_id,
            action=record.action[:80],
            target_type=record.target_type[:80],
            target_id=record.target_id[:64],
            success=record.success,
            error_code=record.error_code[:40],
            reason=record.reason[:500],
            diff=record.diff or {},
        )


def get_audit_sink():
    factory = import_string(getattr(settings, "COLLECT_AUDIT_SINK", "collect.services.audit.ModelAuditSink"))
    return factory()


def record_audit(record: AuditRecord) -> None:
    try:
        get_audit_sink().record(record)
    except Exception:
        logger.exception(
            "audit_record_failed action=%s target=%s:%s",
            record.action,
            record.target_type,
            record.target_id,
        )


@dataclass
class AuditedOperation:
    """Mutable handle the audited block uses to fill in its target and diff."""

    target_id: str = ""
    diff: dict[str, Any] = field(default_factory=dict)


@contextmanager
def audit_operation(actor, *, action: str, target_type: str, target_id: Any = "", diff: dict | None = None):
    op = AuditedOperation(target_id=str(target_id or ""), diff=dict(diff or {}))
    actor_id = getattr(actor, "pk", None)
    try:
        yield op
    except CollectError as exc:
        record_audit(
            AuditRecord(
                actor_id=actor_id,
                action=action,
                target_type=target_type,
                target_id=op.target_id,
                success=False,
                error_code=exc.code,
                reason=str(exc.message)[:500],
            )
        )
        raise
    except Exception as exc:
        record_audit(
            AuditRecord(
                actor_id=actor_id,
                action=action,
                target_type=target_type,
                target_id=op.target_id,
                success=False,
                error_code="internal_error",
                reason=f"{type(exc).__name__}: {exc}"[:500],
            )
        )
        raise
    record_audit(
        AuditRecord(
            actor_id=actor_id,
            action=action,
            target_type=target_type,
            target_id=op.target_id,
            success=True,
            diff=op.diff,
        )
    )
