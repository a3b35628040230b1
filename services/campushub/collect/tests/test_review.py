"""Tests for the staff review list, submission detail and batch triage."""

from ._shared import *  # noqa: F401,F403


class _ReviewBase(_CollectScenario):
    def setUp(self):
        super().setUp()
        self.complete = self._submit_complete(extra_files=1)
        self.partial_student = _make_student("s2", student_id="2024002", name="李四")
        submissions.upload_file(
            self.config, self.partial_student, self.task.id, _optional_item(self.task).id, _upload("photo.jpg"),
        )
        self.partial = Submission.objects.get(task=self.task, user=self.partial_student)

    def _list(self, **filters):
        return review.list_submissions(self.config, self.owner, self.task.id, SubmissionFilters(**filters))


class SubmissionListTests(_ReviewBase):
    def test_list_shape_and_order(self):
        listing = self._list()
        self.assertEqual(listing["total"], 2)
        first, second = listing["items"]
        self.assertEqual(first["id"], self.complete.id)
        self.assertEqual(first["student_id"], "2024001")
        self.assertEqual(first["name"], "张三")
        self.assertFalse(first["missing_required"])
        self.assertEqual(first["file_count"], 2)
        self.assertEqual(first["total_bytes"], 2 * len(b"%PDF-1.4 test"))
        self.assertEqual(second["id"], self.partial.id)
        self.assertIsNone(second["submitted_at"])
        self.assertTrue(second["missing_required"])

    def test_filter_by_missing_required(self):
        self.assertEqual([row["id"] for row in self._list(missing_required=True)["items"]], [self.partial.id])
        self.assertEqual([row["id"] for row in self._list(missing_required=False)["items"]], [self.complete.id])

    def test_filter_by_query_and_status(self):
        self.assertEqual(self._list(q="李四")["total"], 1)
        self.assertEqual(self._list(q="2024001")["total"], 1)
        self.assertEqual(self._list(q="s2")["total"], 1)
        self.assertEqual(self._list(status="approved")["total"], 0)
        self.assertEqual(self._list(status="pending")["total"], 2)

    def test_filter_by_submitted_window(self):
        now = timezone.now()
        self.assertEqual(self._list(submitted_from=now - timedelta(hours=1))["total"], 1)
        self.assertEqual(self._list(submitted_to=now - timedelta(hours=1))["total"], 0)

    def test_filter_by_department_includes_descendants(self):
        school = Department.objects.create(name="School")
        dept = Department.objects.create(name="Dept", parent=school)
        UserDepartment.objects.create(user=self.student, department=dept)
        listing = self._list(department_id=school.id)
        self.assertEqual([row["id"] for row in listing["items"]], [self.complete.id])
        self.assertEqual(listing["items"][0]["departments"], ["Dept"])

    def test_withdrawn_submissions_are_excluded(self):
        submissions.withdraw(self.config, self.student, self.task.id)
        self.assertEqual([row["id"] for row in self._list()["items"]], [self.partial.id])

    def test_requires_process_permission(self):
        exporter = _make_staff("exporter", "export", "manage")
        with self.assertRaises(Forbidden):
            review.list_submissions(self.config, exporter, self.task.id, SubmissionFilters())

    def test_non_owner_needs_manage(self):
        reviewer = _make_staff("reviewer", "process")
        with self.assertRaises(Forbidden):
            review.list_submissions(self.config, reviewer, self.task.id, SubmissionFilters())
        manager = _make_staff("manager", "process", "manage")
        self.assertEqual(review.list_submissions(self.config, manager, self.task.id, SubmissionFilters())["total"], 2)


class SubmissionDetailTests(_ReviewBase):
    def test_detail_groups_files_by_item(self):
        detail = review.get_submission_detail(
            self.config, self.owner, self.task.id, self.complete.id, include_download_urls=True,
        )
        self.assertFalse(detail["missing_required"])
        self.assertEqual(detail["file_count"], 2)
        by_title = {item["title"]: item["files"] for item in detail["items"]}
        self.assertEqual(len(by_title["身份证"]), 1)
        self.assertEqual(len(by_title["Photo"]), 1)
        self.assertTrue(by_title["身份证"][0]["download_url"].startswith("/api/collect-blob/"))

    def test_detail_without_urls(self):
        detail = review.get_submission_detail(self.config, self.owner, self.task.id, self.partial.id)
        self.assertTrue(detail["missing_required"])
        self.assertEqual(detail["missing_required_item_ids"], [_required_item(self.task).id])
        self.assertIsNone(detail["items"][1]["files"][0]["download_url"])

    def test_withdrawn_submission_is_not_found(self):
        submissions.withdraw(self.config, self.student, self.task.id)
        with self.assertRaises(NotFound):
            review.get_submission_detail(self.config, self.owner, self.task.id, self.complete.id)


class BatchProcessTests(_ReviewBase):
    def _batch(self, ids, action, **kwargs):
        return review.batch_process(self.config, self.owner, self.task.id, submission_ids=ids, action=action, **kwargs)

    def test_assign_and_unassign(self):
        ids = [str(self.complete.id), str(self.partial.id), str(self.complete.id)]
        self.assertEqual(self._batch(ids, "assignToMe"), 2)
        self.assertEqual(
            set(Submission.objects.filter(task=self.task).values_list("assignee_id", flat=True)), {self.owner.id}
        )
        self.assertEqual(self._batch(ids, "unassign"), 2)
        self.assertFalse(Submission.objects.filter(assignee__isnull=False).exists())

    def test_set_status_with_message(self):
        updated = self._batch(
            [str(self.complete.id)],
            "setStatus",
            status="need_more",
            student_message="  Photo is blurry  ",
            staff_note="call back",
        )
        self.assertEqual(updated, 1)
        self.complete.refresh_from_db()
        self.assertEqual(self.complete.status, Submission.STATUS_NEED_MORE)
        self.assertEqual(self.complete.student_message, "Photo is blurry")
        self.assertEqual(self.complete.staff_note, "call back")

    def test_need_more_and_rejected_require_message(self):
        for status in ("need_more", "rejected"):
            with self.assertRaises(BadRequest):
                self._batch([str(self.complete.id)], "setStatus", status=status, student_message="   ")
        self.complete.refresh_from_db()
        self.assertEqual(self.complete.status, Submission.STATUS_PENDING)

    def test_approve_clears_blank_message(self):
        self._batch([str(self.complete.id)], "setStatus", status="approved", student_message="")
        self.complete.refresh_from_db()
        self.assertEqual(self.complete.status, Submission.STATUS_APPROVED)
        self.assertIsNone(self.complete.student_message)

    def test_invalid_input(self):
        with self.assertRaises(BadRequest):
            self._batch([str(self.complete.id)], "explode")
        with self.assertRaises(BadRequest):
            self._batch([str(self.complete.id)], "setStatus", status="lost")
        with self.assertRaises(BadRequest):
            self._batch([str(self.complete.id)], "setStatus")
        with self.assertRaises(BadRequest):
            self._batch([], "assignToMe")

    def test_ids_of_other_tasks_are_ignored(self):
        other = tasks.create_task(self.config, self.owner, _task_input(title="Other"))
        tasks.publish_task(self.config, self.owner, other.id)
        submissions.upload_file(self.config, self.student, other.id, _required_item(other).id, _upload())
        foreign = Submission.objects.get(task=other, user=self.student)
        self.assertEqual(self._batch([str(foreign.id), str(self.complete.id)], "assignToMe"), 1)
        foreign.refresh_from_db()
        self.assertIsNone(foreign.assignee_id)

    def test_archived_task_batch_conflicts(self):
        tasks.close_task(self.config, self.owner, self.task.id)
        tasks.archive_task(self.config, self.owner, self.task.id)
        with self.assertRaises(Conflict):
            self._batch([str(self.complete.id)], "assignToMe")

    def test_batch_is_audited(self):
        self._batch([str(self.complete.id)], "assignToMe")
        event = AuditEvent.objects.get(action="collect.submission.batch")
        self.assertTrue(event.success)
        self.assertEqual(event.diff["updated"], 1)
        self.assertEqual(event.diff["action"], "assignToMe")
