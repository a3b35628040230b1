"""Tests for manifest CSV formatting, ZIP entry paths and name sanitizers."""

from datetime import datetime, timezone as dt_timezone

from ._shared import *  # noqa: F401,F403
from ..services.export_format import (
    MANIFEST_HEADER,
    ManifestRow,
    build_manifest_csv,
    build_zip_path,
    escape_csv_cell,
    sanitize_for_csv_formula,
)
from ..services.filenames import sanitize_file_name, sanitize_storage_key_part
from ..services.zip_exports import reserve_archive_path


class CsvFormulaSanitizerTests(SimpleTestCase):
    def test_formula_triggers_get_apostrophe_prefix(self):
        self.assertEqual(sanitize_for_csv_formula("=1+1"), "'=1+1")
        self.assertEqual(sanitize_for_csv_formula("+SUM(A1)"), "'+SUM(A1)")
        self.assertEqual(sanitize_for_csv_formula("-2"), "'-2")
        self.assertEqual(sanitize_for_csv_formula("@cmd"), "'@cmd")

    def test_value_is_trimmed_before_checking(self):
        self.assertEqual(sanitize_for_csv_formula("  =HYPERLINK()  "), "'=HYPERLINK()")

    def test_plain_and_empty_values(self):
        self.assertEqual(sanitize_for_csv_formula("张三"), "张三")
        self.assertEqual(sanitize_for_csv_formula("   "), "")
        self.assertEqual(sanitize_for_csv_formula(None), "")

    def test_escape_doubles_quotes(self):
        self.assertEqual(escape_csv_cell('say "hi"'), '"say ""hi"""')
        self.assertEqual(escape_csv_cell('a"b'), '"a""b"')


class ManifestCsvTests(SimpleTestCase):
    def _row(self, **overrides):
        values = {
            "student_id": "2024001",
            "name": "张三",
            "departments": ["计算机学院", "软件工程系"],
            "submitted_at": datetime(2025, 3, 1, 8, 30, tzinfo=dt_timezone.utc),
            "status": "pending",
            "missing_item_titles": [],
            "file_count": 2,
            "total_bytes": 3 * 1024 * 1024,
        }
        values.update(overrides)
        return ManifestRow(**values)

    def test_header_only_when_no_rows(self):
        text = build_manifest_csv([])
        self.assertEqual(text, ",".join(f'"{cell}"' for cell in MANIFEST_HEADER))

    def test_row_cells_are_quoted_and_joined(self):
        text = build_manifest_csv([self._row()])
        lines = text.split("\n")
        self.assertEqual(len(lines), 2)
        self.assertFalse(text.endswith("\n"))
        self.assertEqual(
            lines[1],
            '"2024001","张三","计算机学院 / 软件工程系","2025-03-01T08:30:00+00:00","pending","否","","2","3.00"',
        )

    def test_missing_items_and_formula_names(self):
        text = build_manifest_csv(
            [self._row(name="=cmd()", missing_item_titles=["身份证", "照片"], submitted_at=None, total_bytes=0)]
        )
        cells = text.split("\n")[1].split('","')
        self.assertEqual(cells[1], "'=cmd()")
        self.assertEqual(cells[3], "")
        self.assertEqual(cells[5], "是")
        self.assertEqual(cells[6], "身份证 / 照片")
        self.assertTrue(cells[8].startswith("0.00"))


class ZipPathTests(SimpleTestCase):
    def test_path_separators_and_dot_runs_are_neutralised(self):
        path = build_zip_path(student_id="../..", name="evil", item_title="../x", file_name="../a.zip")
        self.assertEqual(path, "evil/x/a.zip")
        self.assertNotIn("..", path)

    def test_empty_segments_fall_back(self):
        path = build_zip_path(student_id="", name="", item_title="  ", file_name="")
        self.assertEqual(path, "unknown/未命名材料项/file")

    def test_student_segment_joins_id_and_name(self):
        path = build_zip_path(student_id="2024001", name="张三", item_title="身份证", file_name="正面.jpg")
        self.assertEqual(path, "2024001-张三/身份证/正面.jpg")

    def test_illegal_characters_are_removed(self):
        path = build_zip_path(student_id="1", name="a:b", item_title='q"t<>', file_name="f|x?.pdf")
        self.assertEqual(path, "1-ab/qt/fx.pdf")

    def test_reserve_archive_path_numbers_duplicates(self):
        used = {"manifest.csv"}
        self.assertEqual(reserve_archive_path("s/i/a.pdf", used), "s/i/a.pdf")
        self.assertEqual(reserve_archive_path("s/i/a.pdf", used), "s/i/a (2).pdf")
        self.assertEqual(reserve_archive_path("s/i/a.pdf", used), "s/i/a (3).pdf")
        self.assertEqual(reserve_archive_path("manifest.csv", used), "manifest (2).csv")


class FileNameSanitizerTests(SimpleTestCase):
    def test_sanitize_file_name(self):
        self.assertEqual(sanitize_file_name(" a/b\\c.txt "), "abc.txt")
        self.assertEqual(sanitize_file_name("x\x00y...pdf"), "xy.pdf")

    def test_storage_key_part_is_ascii(self):
        self.assertEqual(sanitize_storage_key_part("我的 简历.pdf"), "pdf")
        self.assertEqual(sanitize_storage_key_part("My CV (final).pdf"), "My_CV_final_.pdf")
        self.assertEqual(sanitize_storage_key_part("///"), "file")

    def test_storage_key_part_keeps_extension_when_truncating(self):
        value = sanitize_storage_key_part("a" * 200 + ".docx", max_length=20)
        self.assertEqual(len(value), 20)
        self.assertTrue(value.endswith(".docx"))
