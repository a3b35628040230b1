"""One task from draft to archive, driven through the service layer."""

from ._shared import *  # noqa: F401,F403


class CollectionEndToEndTests(_StorageTestCase):
    def test_draft_to_archive(self):
        config = _config()
        owner = _make_staff("owner", "create", "update", "publish", "close", "archive", "process", "export")
        student = _make_student("s1", student_id="2024001", name="张三")

        task = tasks.create_task(
            config,
            owner,
            _task_input(
                items=[ItemInput(title="身份证", required=True)],
                max_files_per_submission=1,
                due_at=None,
            ),
        )
        with self.assertRaises(BadRequest):
            tasks.publish_task(config, owner, task.id)

        tasks.update_due_at(config, owner, task.id, timezone.now() + timedelta(days=1))
        task = tasks.publish_task(config, owner, task.id)
        self.assertEqual(task.status, CollectionTask.STATUS_PUBLISHED)

        item = _required_item(task)
        submissions.upload_file(config, student, task.id, item.id, _upload())
        with self.assertRaises(BadRequest):
            submissions.upload_file(config, student, task.id, item.id, _upload("second.pdf"))
        before = timezone.now()
        submission = submissions.submit(config, student, task.id)
        self.assertGreaterEqual(submission.submitted_at, before)

        submissions.withdraw(config, student, task.id)
        submission.refresh_from_db()
        self.assertEqual(submission.files.count(), 0)
        self.assertIsNone(submission.submitted_at)

        tasks.close_task(config, owner, task.id)
        task = tasks.archive_task(config, owner, task.id)
        submission.refresh_from_db()
        self.assertIsNotNone(submission.archived_at)
        self.assertEqual(submission.archived_at, task.archived_at)

        # Every mutating call above left exactly one audit record.
        self.assertEqual(AuditEvent.objects.filter(action="collect.task.publish").count(), 2)
        self.assertEqual(AuditEvent.objects.filter(action="collect.task.publish", success=False).count(), 1)
        self.assertEqual(AuditEvent.objects.filter(action="collect.submission.file.upload", success=False).count(), 1)
        self.assertEqual(AuditEvent.objects.filter(action="collect.task.archive").count(), 1)
