"""Manifest CSV and ZIP entry-path formatting for submission exports."""

from dataclasses import dataclass
from datetime import datetime
import re

from .filenames import sanitize_file_name

MANIFEST_HEADER = ["学号", "姓名", "部门", "提交时间", "状态", "缺材料", "缺失必交项", "文件数", "总大小(MB)"]

STUDENT_FALLBACK = "unknown"
ITEM_FALLBACK = "未命名材料项"
FILE_FALLBACK = "file"

_FORMULA_TRIGGER_RE = re.compile(r"^[=+\-@]")


@dataclass(frozen=True)
class ManifestRow:
    student_id: str
    name: str
    departments: list[str]
    submitted_at: datetime | None
    status: str
    missing_item_titles: list[str]
    file_count: int
    total_bytes: int


def sanitize_for_csv_formula(value) -> str:
    """Trim, then neutralise spreadsheet formula triggers with a leading apostrophe."""
    text = str(value if value is not None else "").strip()
    if not text:
        return ""
    if _FORMULA_TRIGGER_RE.match(text):
        return f"'{text}"
    return text


def escape_csv_cell(value) -> str:
    text = str(value if value is not None else "")
    return '"' + text.replace('"', '""') + '"'


def _csv_line(cells) -> str:
    return ",".join(escape_csv_cell(sanitize_for_csv_formula(cell)) for cell in cells)


def _iso(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.isoformat()


def build_manifest_csv(rows: list[ManifestRow]) -> str:
    """UTF-8 text, "\\n" line endings, no trailing newline."""
    lines = [_csv_line(MANIFEST_HEADER)]
    for row in rows:
        lines.append(
            _csv_line(
                [
                    row.student_id,
                    row.name,
                    " / ".join(row.departments),
                    _iso(row.submitted_at),
                    row.status,
                    "是" if row.missing_item_titles else "否",
                    " / ".join(row.missing_item_titles),
                    str(row.file_count),
                    f"{row.total_bytes / 1024 / 1024:.2f}",
                ]
            )
        )
    return "\n".join(lines)


def sanitize_zip_segment(value, fallback: str) -> str:
    cleaned = sanitize_file_name(value).lstrip(".").strip()
    if not cleaned or cleaned in {".", ".."}:
        return fallback
    return cleaned


def build_zip_path(*, student_id: str, name: str, item_title: str, file_name: str) -> str:
    """`<student>/<item>/<file>`; each segment sanitised on its own."""
    parts = [sanitize_zip_segment(student_id, ""), sanitize_zip_segment(name, "")]
    student = sanitize_zip_segment("-".join(part for part in parts if part), STUDENT_FALLBACK)
    item = sanitize_zip_segment(item_title, ITEM_FALLBACK)
    file = sanitize_zip_segment(file_name, FILE_FALLBACK)
    return f"{student}/{item}/{file}"
