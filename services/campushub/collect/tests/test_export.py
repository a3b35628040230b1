"""Tests for the export plan, the streaming ZIP and its failure handling."""

from ._shared import *  # noqa: F401,F403
from ..services.export_format import MANIFEST_HEADER
from ..services.zip_exports import iter_zip_stream


class ExportPlanTests(_CollectScenario):
    def setUp(self):
        super().setUp()
        self._submit_complete()
        self.draft_student = _make_student("s2", student_id="2024002", name="李四")
        submissions.upload_file(
            self.config, self.draft_student, self.task.id, _optional_item(self.task).id, _upload("photo.jpg"),
        )

    def test_plan_covers_submitted_only_by_default(self):
        plan = export_service.export_zip(self.config, self.owner, self.task.id, SubmissionFilters())
        self.assertEqual(plan.file_name, "新生材料-材料.zip")
        self.assertEqual([entry.path for entry in plan.entries], ["2024001-张三/身份证/scan.pdf"])
        self.assertEqual(plan.total_bytes, len(b"%PDF-1.4 test"))
        lines = plan.manifest.split("\n")
        self.assertEqual(len(lines), 2)
        self.assertTrue(lines[1].startswith('"2024001","张三"'))

    def test_include_unsubmitted(self):
        plan = export_service.export_zip(
            self.config, self.owner, self.task.id, SubmissionFilters(), include_unsubmitted=True,
        )
        self.assertEqual(len(plan.entries), 2)
        rows = plan.manifest.split("\n")[1:]
        draft_row = [row for row in rows if row.startswith('"2024002"')][0]
        self.assertIn('"是","身份证"', draft_row)

    def test_filters_narrow_the_plan(self):
        plan = export_service.export_zip(
            self.config, self.owner, self.task.id, SubmissionFilters(q="nobody"), include_unsubmitted=True,
        )
        self.assertEqual(plan.entries, ())
        self.assertEqual(plan.manifest.split("\n"), [",".join(f'"{cell}"' for cell in MANIFEST_HEADER)])

    def test_size_cap_rejects_before_any_fetch(self):
        with override_settings(COLLECT_MAX_EXPORT_ZIP_BYTES=5):
            with patch.object(DjangoStorageGateway, "create_signed_download_url") as signer:
                with self.assertRaises(BadRequest) as ctx:
                    export_service.export_zip(self.config, self.owner, self.task.id, SubmissionFilters())
        signer.assert_not_called()
        self.assertIn("limit_mb", ctx.exception.details)
        self.assertIn("total_mb", ctx.exception.details)

    def test_duplicate_paths_are_numbered(self):
        submissions.upload_file(self.config, self.student, self.task.id, _required_item(self.task).id, _upload())
        plan = export_service.export_zip(self.config, self.owner, self.task.id, SubmissionFilters())
        self.assertEqual(
            sorted(entry.path for entry in plan.entries),
            ["2024001-张三/身份证/scan (2).pdf", "2024001-张三/身份证/scan.pdf"],
        )

    def test_export_requires_permission_and_ownership(self):
        reviewer = _make_staff("reviewer", "process", "manage")
        with self.assertRaises(Forbidden):
            export_service.export_zip(self.config, reviewer, self.task.id, SubmissionFilters())
        exporter = _make_staff("exporter", "export")
        with self.assertRaises(Forbidden):
            export_service.export_zip(self.config, exporter, self.task.id, SubmissionFilters())

    def test_archived_tasks_remain_exportable(self):
        tasks.close_task(self.config, self.owner, self.task.id)
        tasks.archive_task(self.config, self.owner, self.task.id)
        plan = export_service.export_zip(self.config, self.owner, self.task.id, SubmissionFilters())
        self.assertEqual(len(plan.entries), 1)


class ExportStreamTests(_CollectScenario):
    def setUp(self):
        super().setUp()
        self._submit_complete(extra_files=1)

    def _plan(self):
        return export_service.export_zip(self.config, self.owner, self.task.id, SubmissionFilters())

    def test_stream_reads_blobs_through_signed_links(self):
        report = ExportStreamReport()
        archive = _read_zip(export_service.stream_zip(self.config, self._plan(), report=report))
        names = archive.namelist()
        self.assertEqual(names[0], "manifest.csv")
        self.assertEqual(
            sorted(names[1:]),
            ["2024001-张三/Photo/extra-0.jpg", "2024001-张三/身份证/scan.pdf"],
        )
        self.assertEqual(archive.read("2024001-张三/身份证/scan.pdf"), b"%PDF-1.4 test")
        rows = _manifest_rows(archive)
        self.assertEqual(rows[0], MANIFEST_HEADER)
        self.assertEqual(rows[1][0], "2024001")
        self.assertTrue(report.finalized)
        self.assertEqual(report.skipped_count, 0)

    def test_fetch_fn_receives_fresh_signed_url(self):
        seen = []

        def fetch(url):
            seen.append(url)
            return _bytes_fetch(b"remote")

        plan = self._plan()
        archive = _read_zip(export_service.stream_zip(self.config, plan, fetch_fn=fetch))
        self.assertEqual(len(seen), 2)
        self.assertEqual(len(set(seen)), 2)
        for entry in plan.entries:
            self.assertEqual(archive.read(entry.path), b"remote")

    def test_missing_blob_is_skipped_and_reported(self):
        plan = self._plan()
        lost = plan.entries[0]
        get_storage_gateway().remove(self.config.submission_bucket, [lost.file_key])
        report = ExportStreamReport()
        archive = _read_zip(export_service.stream_zip(self.config, plan, report=report))
        names = archive.namelist()
        self.assertNotIn(lost.path, names)
        self.assertIn(plan.entries[1].path, names)
        self.assertIn("skipped_files.csv", names)
        self.assertEqual([path for path, _reason in report.skipped], [lost.path])
        self.assertTrue(report.finalized)
        skipped = archive.read("skipped_files.csv").decode("utf-8")
        self.assertIn(lost.path, skipped)

    def test_closing_the_stream_stops_fetching(self):
        fetched = []

        def fetch(url):
            fetched.append(url)
            return _bytes_fetch(b"remote")

        plan = self._plan()
        self.assertEqual(len(plan.entries), 2)
        stream = export_service.stream_zip(self.config, plan, fetch_fn=fetch)
        while not fetched:
            next(stream)
        stream.close()
        self.assertEqual(len(fetched), 1)


class ZipStreamUnitTests(SimpleTestCase):
    class _Entry:
        def __init__(self, path, payload):
            self.path = path
            self.payload = payload

    def test_manifest_only_archive(self):
        archive = _read_zip(iter_zip_stream([], manifest_csv='"a"', open_entry=lambda entry: _bytes_fetch(b"")))
        self.assertEqual(archive.namelist(), ["manifest.csv"])
        self.assertEqual(archive.read("manifest.csv"), b'"a"')

    def test_entries_are_streamed_in_chunks(self):
        payload = bytes(range(256)) * 1024
        entries = [self._Entry("s/i/big.bin", payload)]
        chunks = list(
            iter_zip_stream(
                entries,
                manifest_csv="x",
                open_entry=lambda entry: _bytes_fetch(entry.payload),
                chunk_size=4096,
            )
        )
        self.assertGreater(len(chunks), 2)
        self.assertEqual(_read_zip(chunks).read("s/i/big.bin"), payload)

    def test_failing_entry_does_not_abort_stream(self):
        def opener(entry):
            if entry.path.endswith("bad.pdf"):
                raise OSError("connection reset")
            return _bytes_fetch(entry.payload)

        report = ExportStreamReport()
        entries = [self._Entry("s/i/bad.pdf", b""), self._Entry("s/i/good.pdf", b"ok")]
        archive = _read_zip(iter_zip_stream(entries, manifest_csv="x", open_entry=opener, report=report))
        self.assertEqual(archive.namelist(), ["manifest.csv", "s/i/good.pdf", "skipped_files.csv"])
        self.assertEqual(report.written, ["s/i/good.pdf"])
        self.assertIn("connection reset", report.skipped[0][1])

    def test_skipped_report_neutralises_formulas(self):
        def opener(entry):
            raise OSError("gone")

        entries = [self._Entry("=HYPERLINK(1)-x/item/a.pdf", b"")]
        archive = _read_zip(iter_zip_stream(entries, manifest_csv="x", open_entry=opener))
        lines = archive.read("skipped_files.csv").decode("utf-8").split("\n")
        self.assertEqual(lines, ['"path","reason"', '"\'=HYPERLINK(1)-x/item/a.pdf","OSError: gone"'])
