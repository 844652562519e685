import json
import unittest
from unittest.mock import MagicMock

from nowandlater.auth import Principal
from nowandlater.errors import (
    ConfigurationError,
    NeedsRefresh,
    PermanentBackendFailure,
    TransientBackendFailure,
)
from nowandlater.observers import Backend
from nowandlater.router import AttemptContext
from nowandlater.sheets import (
    SheetsBackend,
    SheetsClient,
    parse_attachments,
    row_to_project,
    row_to_task,
    task_to_row,
)
from nowandlater.shared.types import (
    AreaDraft,
    DriveFile,
    FolderRepair,
    ProjectChanges,
    ProjectDraft,
    TaskAttachment,
    TaskChanges,
    TaskDraft,
    TaskReorder,
)

TASK_HEADER = [
    "id", "title", "description", "projectId", "context", "dueDate",
    "isCompleted", "sortOrder", "createdAt", "attachments",
]
PROJECT_HEADER = [
    "id", "name", "description", "areaId", "status",
    "driveFolderId", "driveFolderUrl", "createdAt",
]
SETTINGS_HEADER = ["email", "setting_key", "setting_value"]


def make_response(body=None, status=200):
    response = MagicMock()
    response.ok = status < 400
    response.status_code = status
    response.text = json.dumps(body) if body is not None else ""
    response.json.return_value = body
    return response


def task_rows():
    return [
        TASK_HEADER,
        ["task_1", "Buy milk", "", "", "@errands", "", "false", "1", "2024-01-01T00:00:00Z", ""],
        ["task_2", "Ship it", "Release", "proj_1", "@work", "2024-02-01", "true", "0", "", ""],
    ]


class SheetsBackendTests(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.client = SheetsClient(spreadsheet_id="sheet-123", session=self.session)
        self.drive = MagicMock()
        self.drive.parent_folder_id = None
        self.backend = SheetsBackend(self.client, drive=self.drive)
        self.principal = Principal(id="u1", email="u1@example.com", credential="ya29.token")
        self.context = AttemptContext(
            operation="test", backend=Backend.PRIMARY, timeout_seconds=5.0
        )

    def respond(self, *responses):
        self.session.request.side_effect = list(responses)

    def request_call(self, index):
        return self.session.request.call_args_list[index]

    def test_load_app_data_decodes_all_tabs(self):
        attachments = json.dumps([{"id": "a1", "name": "spec.pdf", "size": 10}])
        rows = task_rows()
        rows[1][9] = attachments
        self.respond(
            make_response(
                {
                    "valueRanges": [
                        {"values": [["id", "name"], ["area_1", "Home", "", "", "", ""]]},
                        {"values": [PROJECT_HEADER, ["proj_1", "Launch", "", "", ""]]},
                        {"values": rows},
                    ]
                }
            )
        )

        data = self.backend.load_app_data(self.principal, None, self.context)

        self.assertEqual([area.name for area in data.areas], ["Home"])
        self.assertEqual(data.projects[0].status, "Active")
        self.assertIsNone(data.projects[0].area_id)
        first, second = data.tasks
        self.assertIsNone(first.project_id)
        self.assertFalse(first.is_completed)
        self.assertEqual(first.sort_order, 1)
        self.assertEqual(first.attachments[0].name, "spec.pdf")
        self.assertTrue(second.is_completed)
        self.assertEqual(second.due_date, "2024-02-01")

        call = self.request_call(0)
        self.assertEqual(call.args[0], "GET")
        self.assertTrue(call.args[1].endswith("/sheet-123/values:batchGet"))
        self.assertEqual(
            call.kwargs["params"], {"ranges": ["Areas!A:F", "Projects!A:H", "Tasks!A:J"]}
        )
        self.assertEqual(call.kwargs["headers"], {"Authorization": "Bearer ya29.token"})
        self.assertEqual(call.kwargs["timeout"], 5.0)

    def test_empty_tabs_yield_empty_lists(self):
        self.respond(make_response({"valueRanges": [{}, {}]}))

        data = self.backend.load_app_data(self.principal, None, self.context)

        self.assertEqual((data.areas, data.projects, data.tasks), ([], [], []))

    def test_bypass_cache_sends_no_cache(self):
        self.respond(make_response({"values": task_rows()}))
        context = AttemptContext(
            operation="list_tasks", backend=Backend.PRIMARY,
            timeout_seconds=5.0, bypass_cache=True,
        )

        tasks = self.backend.list_tasks(self.principal, None, context)

        self.assertEqual(len(tasks), 2)
        self.assertEqual(self.request_call(0).kwargs["headers"]["Cache-Control"], "no-cache")

    def test_id_token_principal_needs_refresh(self):
        principal = Principal(id="u1", credential="eyJhbGciOi", is_bearer=False)

        with self.assertRaises(NeedsRefresh):
            self.backend.list_tasks(principal, None, self.context)
        self.session.request.assert_not_called()

    def test_upstream_statuses_are_classified(self):
        self.respond(make_response({"error": "busy"}, status=503))
        with self.assertRaises(TransientBackendFailure) as ctx:
            self.backend.list_tasks(self.principal, None, self.context)
        self.assertEqual(ctx.exception.upstream_status, 503)

        self.respond(make_response({"error": "expired"}, status=401))
        with self.assertRaises(NeedsRefresh):
            self.backend.list_tasks(self.principal, None, self.context)

        self.respond(make_response({"error": "bad range"}, status=400))
        with self.assertRaises(PermanentBackendFailure) as ctx:
            self.backend.list_tasks(self.principal, None, self.context)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_unexpected_shape_is_transient(self):
        self.respond(
            make_response({"valueRanges": "oops"}),
            make_response({"values": "oops"}),
            make_response(["values"]),
        )

        with self.assertLogs("nowandlater.transport", level="ERROR"):
            with self.assertRaises(TransientBackendFailure):
                self.backend.load_app_data(self.principal, None, self.context)
            with self.assertRaises(TransientBackendFailure):
                self.backend.list_tasks(self.principal, None, self.context)
            with self.assertRaises(TransientBackendFailure):
                self.backend.list_tasks(self.principal, None, self.context)

    def test_bad_attachment_entry_does_not_fail_the_task(self):
        rows = task_rows()
        rows[1][9] = json.dumps([{"name": "x.pdf"}])
        rows[2][9] = json.dumps([{"name": "x.pdf"}, {"id": "a2", "name": "ok.pdf"}])
        self.respond(make_response({"values": rows}))

        with self.assertLogs("nowandlater.sheets", level="WARNING"):
            tasks = self.backend.list_tasks(self.principal, None, self.context)

        self.assertEqual([task.id for task in tasks], ["task_1", "task_2"])
        self.assertEqual(tasks[0].attachments, [])
        self.assertEqual([a.name for a in tasks[1].attachments], ["ok.pdf"])

    def test_deadline_bounds_each_request(self):
        self.respond(make_response({"values": task_rows()}))
        context = AttemptContext(
            operation="list_tasks",
            backend=Backend.PRIMARY,
            timeout_seconds=5.0,
            deadline=10.0,
            clock=lambda: 9.25,
        )

        self.backend.list_tasks(self.principal, None, context)

        self.assertEqual(self.request_call(0).kwargs["timeout"], 0.75)

    def test_expired_deadline_sends_nothing(self):
        context = AttemptContext(
            operation="list_tasks",
            backend=Backend.PRIMARY,
            timeout_seconds=5.0,
            deadline=10.0,
            clock=lambda: 10.0,
        )

        with self.assertRaises(TransientBackendFailure) as ctx:
            self.backend.list_tasks(self.principal, None, context)

        self.assertIn("timed out", ctx.exception.detail)
        self.session.request.assert_not_called()

    def test_missing_spreadsheet_is_configuration_error(self):
        backend = SheetsBackend(SheetsClient(spreadsheet_id=None, session=self.session))

        with self.assertRaises(ConfigurationError):
            backend.list_tasks(self.principal, None, self.context)

    def test_create_task_appends_row(self):
        self.respond(make_response({"updates": {"updatedRange": "Tasks!A5:J5"}}))
        draft = TaskDraft(
            title="Buy milk",
            context="@errands",
            attachments=[TaskAttachment(id="a1", name="list.txt")],
        )

        task = self.backend.create_task(self.principal, draft, self.context)

        self.assertTrue(task.id.startswith("task_"))
        self.assertTrue(task.created_at.endswith("Z"))
        call = self.request_call(0)
        self.assertEqual(call.args[0], "POST")
        self.assertTrue(call.args[1].endswith("/values/Tasks!A:J:append"))
        row = call.kwargs["json"]["values"][0]
        self.assertEqual(row[:8], [task.id, "Buy milk", "", "", "@errands", "", "false", "0"])
        self.assertEqual(json.loads(row[9])[0]["name"], "list.txt")

    def test_update_task_writes_changed_cells(self):
        self.respond(make_response({"values": task_rows()}), make_response({}))
        changes = TaskChanges(task_id="task_2", title="Ship it now", is_completed=False)

        update = self.backend.update_task(self.principal, changes, self.context)

        self.assertEqual(update.updated_fields, ["is_completed", "title"])
        self.assertEqual(update.row_number, 3)
        data = self.request_call(1).kwargs["json"]["data"]
        self.assertIn({"range": "Tasks!B3", "values": [["Ship it now"]]}, data)
        self.assertIn({"range": "Tasks!G3", "values": [["false"]]}, data)

    def test_update_unknown_task_is_not_found(self):
        self.respond(make_response({"values": task_rows()}))

        with self.assertRaises(PermanentBackendFailure) as ctx:
            self.backend.update_task(
                self.principal, TaskChanges(task_id="task_9", title="x"), self.context
            )
        self.assertEqual(ctx.exception.status_code, 404)

    def test_delete_task_removes_row(self):
        self.respond(
            make_response({"values": task_rows()}),
            make_response({"sheets": [{"properties": {"sheetId": 7, "title": "Tasks"}}]}),
            make_response({}),
        )

        deleted = self.backend.delete_task(self.principal, "task_1", self.context)

        self.assertEqual(deleted.task_id, "task_1")
        dimension = self.request_call(2).kwargs["json"]["requests"][0]["deleteDimension"]
        self.assertEqual(
            dimension["range"],
            {"sheetId": 7, "dimension": "ROWS", "startIndex": 1, "endIndex": 2},
        )

    def test_reorder_tasks_writes_sort_order(self):
        self.respond(make_response({"values": task_rows()}), make_response({}))

        self.backend.reorder_tasks(
            self.principal, TaskReorder(task_ids=["task_2", "task_1"]), self.context
        )

        data = self.request_call(1).kwargs["json"]["data"]
        self.assertEqual(
            data,
            [
                {"range": "Tasks!H3", "values": [["0"]]},
                {"range": "Tasks!H2", "values": [["1"]]},
            ],
        )

    def test_reorder_with_unknown_ids_writes_nothing(self):
        self.respond(make_response({"values": task_rows()}))

        with self.assertRaises(PermanentBackendFailure):
            self.backend.reorder_tasks(
                self.principal, TaskReorder(task_ids=["task_1", "task_9"]), self.context
            )
        self.assertEqual(self.session.request.call_count, 1)

    def test_create_project_links_drive_folder(self):
        self.respond(
            make_response({"updates": {"updatedRange": "Projects!A4:H4"}}),
            make_response(
                {"values": [SETTINGS_HEADER, ["u1@example.com", "master_folder_id", "master_1"]]}
            ),
            make_response({}),
        )
        self.drive.create_folder.return_value = DriveFile(
            id="folder_1", name="Launch",
            web_view_link="https://drive.google.com/drive/folders/folder_1"
        )

        project = self.backend.create_project(
            self.principal, ProjectDraft(name="Launch"), self.context
        )

        self.assertTrue(project.id.startswith("proj_"))
        self.assertEqual(project.drive_folder_id, "folder_1")
        self.drive.create_folder.assert_called_once_with(
            self.principal, self.context, "Launch", "master_1"
        )
        self.assertTrue(self.request_call(1).args[1].endswith("/values/Settings!A:C"))
        data = self.request_call(2).kwargs["json"]["data"]
        self.assertEqual(data[0]["range"], "Projects!F4:G4")

    def test_create_project_survives_folder_failure(self):
        self.respond(
            make_response({"updates": {"updatedRange": "Projects!A4:H4"}}),
            make_response({"error": "Unable to parse range: Settings!A:C"}, status=400),
        )
        self.drive.parent_folder_id = "default_parent"
        self.drive.create_folder.side_effect = TransientBackendFailure("Drive down")

        with self.assertLogs("nowandlater.sheets", level="WARNING"):
            project = self.backend.create_project(
                self.principal, ProjectDraft(name="Launch"), self.context
            )

        self.assertEqual(project.drive_folder_id, "")
        self.assertEqual(self.drive.create_folder.call_args.args[3], "default_parent")
        self.assertEqual(self.session.request.call_count, 2)

    def test_setup_folder_keeps_existing_link(self):
        self.respond(
            make_response(
                {
                    "values": [
                        PROJECT_HEADER,
                        ["proj_1", "Launch", "", "", "Active", "f1", "https://drive/f1"],
                    ]
                }
            )
        )

        setup = self.backend.setup_project_folder(self.principal, "proj_1", self.context)

        self.assertFalse(setup.created)
        self.assertEqual(setup.drive_folder_id, "f1")
        self.assertEqual(setup.message, "Drive folder already configured")
        self.drive.create_folder.assert_not_called()

    def test_setup_folder_creates_and_links(self):
        self.respond(
            make_response(
                {"values": [PROJECT_HEADER, ["proj_0"], ["proj_1", "Launch", "", "", "Active"]]}
            ),
            make_response({"values": [SETTINGS_HEADER]}),
            make_response({}),
        )
        self.drive.create_folder.return_value = DriveFile(
            id="folder_7", name="Launch",
            web_view_link="https://drive.google.com/drive/folders/folder_7"
        )

        setup = self.backend.setup_project_folder(self.principal, "proj_1", self.context)

        self.assertTrue(setup.created)
        self.assertEqual(setup.project_name, "Launch")
        self.assertEqual(setup.message, "Drive folder created and configured successfully")
        data = self.request_call(2).kwargs["json"]["data"]
        self.assertEqual(
            data,
            [
                {
                    "range": "Projects!F3:G3",
                    "values": [["folder_7", "https://drive.google.com/drive/folders/folder_7"]],
                }
            ],
        )

    def test_setup_folder_for_unknown_project_is_not_found(self):
        self.respond(make_response({"values": [PROJECT_HEADER]}))

        with self.assertRaises(PermanentBackendFailure) as ctx:
            self.backend.setup_project_folder(self.principal, "proj_9", self.context)
        self.assertEqual(ctx.exception.status_code, 404)

    def test_setup_folder_without_drive_is_configuration_error(self):
        backend = SheetsBackend(self.client)
        self.respond(make_response({"values": [PROJECT_HEADER, ["proj_1", "Launch"]]}))

        with self.assertRaises(ConfigurationError):
            backend.setup_project_folder(self.principal, "proj_1", self.context)

    def test_fix_folders_links_what_it_can(self):
        self.respond(
            make_response(
                {
                    "values": [
                        PROJECT_HEADER,
                        ["proj_1", "Done", "", "", "Active", "f1", "https://drive/f1"],
                        ["proj_2", "Missing", "", "", "Active"],
                        ["proj_3", "Broken link", "", "", "Active", "f3", "f3"],
                    ]
                }
            ),
            make_response({"values": [SETTINGS_HEADER]}),
            make_response({}),
        )
        self.drive.create_folder.side_effect = [
            DriveFile(id="f2", name="Missing", web_view_link="https://drive/f2"),
            TransientBackendFailure("Drive down"),
        ]

        with self.assertLogs("nowandlater.sheets", level="WARNING"):
            repair = self.backend.fix_project_folders(self.principal, None, self.context)

        self.assertEqual(
            repair,
            FolderRepair(
                fixed=1,
                total=3,
                failed=["proj_3"],
                message="Fixed 1 projects with missing drive folders",
            ),
        )
        data = self.request_call(2).kwargs["json"]["data"]
        self.assertEqual(
            data, [{"range": "Projects!F3:G3", "values": [["f2", "https://drive/f2"]]}]
        )

    def test_fix_folders_with_nothing_to_fix_writes_nothing(self):
        self.respond(
            make_response(
                {
                    "values": [
                        PROJECT_HEADER,
                        ["proj_1", "Done", "", "", "Active", "f1", "https://x"],
                    ]
                }
            )
        )

        repair = self.backend.fix_project_folders(self.principal, None, self.context)

        self.assertEqual((repair.fixed, repair.total), (0, 1))
        self.assertEqual(self.session.request.call_count, 1)

    def test_master_folder_defaults_when_settings_tab_is_missing(self):
        self.respond(make_response({"error": "Unable to parse range"}, status=400))

        setting = self.backend.get_master_folder(self.principal, None, self.context)

        self.assertIsNone(setting.folder_id)
        self.assertEqual(setting.owner, "u1@example.com")

    def test_master_folder_is_read_per_user(self):
        self.respond(
            make_response(
                {
                    "values": [
                        SETTINGS_HEADER,
                        ["other@example.com", "master_folder_id", "theirs"],
                        ["u1@example.com", "master_folder_id", "mine"],
                    ]
                }
            )
        )

        setting = self.backend.get_master_folder(self.principal, None, self.context)

        self.assertEqual(setting.folder_id, "mine")

    def test_set_master_folder_creates_settings_tab(self):
        self.respond(
            make_response({"error": "Unable to parse range"}, status=400),
            make_response({}),
            make_response({}),
            make_response({"updates": {"updatedRange": "Settings!A2:C2"}}),
        )

        setting = self.backend.set_master_folder(self.principal, "master_1", self.context)

        self.assertEqual(setting.folder_id, "master_1")
        add = self.request_call(1).kwargs["json"]["requests"][0]
        self.assertEqual(add, {"addSheet": {"properties": {"title": "Settings"}}})
        header = self.request_call(2).kwargs["json"]["data"][0]
        self.assertEqual(header, {"range": "Settings!A1:C1", "values": [SETTINGS_HEADER]})
        appended = self.request_call(3).kwargs["json"]["values"][0]
        self.assertEqual(appended, ["u1@example.com", "master_folder_id", "master_1"])

    def test_set_master_folder_overwrites_existing_row(self):
        self.respond(
            make_response(
                {"values": [SETTINGS_HEADER, ["u1@example.com", "master_folder_id", "old"]]}
            ),
            make_response({}),
        )

        self.backend.set_master_folder(self.principal, "new", self.context)

        data = self.request_call(1).kwargs["json"]["data"]
        self.assertEqual(data, [{"range": "Settings!C2", "values": [["new"]]}])
        self.assertEqual(self.session.request.call_count, 2)

    def test_update_project_merges_fields(self):
        self.respond(
            make_response(
                {"values": [PROJECT_HEADER, ["proj_1", "Launch", "", "area_1", "Active", "f1"]]}
            ),
            make_response({}),
        )

        project = self.backend.update_project(
            self.principal,
            ProjectChanges(project_id="proj_1", status="Paused"),
            self.context,
        )

        self.assertEqual(project.status, "Paused")
        self.assertEqual(project.area_id, "area_1")
        self.assertEqual(project.drive_folder_id, "f1")
        data = self.request_call(1).kwargs["json"]["data"]
        self.assertEqual(data, [{"range": "Projects!E2", "values": [["Paused"]]}])

    def test_delete_project_reports_name(self):
        self.respond(
            make_response({"values": [PROJECT_HEADER, ["proj_1", "Launch"]]}),
            make_response({"sheets": [{"properties": {"sheetId": 3, "title": "Projects"}}]}),
            make_response({}),
        )

        deleted = self.backend.delete_project(self.principal, "proj_1", self.context)

        self.assertEqual(deleted.project_name, "Launch")

    def test_create_area_appends_row(self):
        self.respond(make_response({"updates": {"updatedRange": "Areas!A3:F3"}}))

        area = self.backend.create_area(
            self.principal, AreaDraft(name="Home", description="House stuff"), self.context
        )

        self.assertTrue(area.id.startswith("area_"))
        call = self.request_call(0)
        self.assertTrue(call.args[1].endswith("/values/Areas!A:F:append"))
        self.assertEqual(call.kwargs["json"]["values"][0][:3], [area.id, "Home", "House stuff"])

    def test_project_folder_id(self):
        self.respond(
            make_response({"values": [PROJECT_HEADER, ["proj_1", "Launch", "", "", "", "f1"]]})
        )
        self.assertEqual(
            self.backend.project_folder_id(self.principal, "proj_1", self.context), "f1"
        )


class RowConversionTests(unittest.TestCase):
    def test_rows_without_id_are_skipped(self):
        self.assertIsNone(row_to_task(["", "orphan"]))
        self.assertIsNone(row_to_project([]))

    def test_task_row_round_trip_keeps_blank_optionals(self):
        task = row_to_task(task_rows()[1])
        row = task_to_row(task)
        self.assertEqual(row[3], "")
        self.assertEqual(row[5], "")
        self.assertEqual(row[9], "[]")

    def test_malformed_attachments_are_ignored(self):
        self.assertEqual(parse_attachments("{not json"), [])
        self.assertEqual(parse_attachments('{"id": "a1"}'), [])
        self.assertEqual(parse_attachments(""), [])

    def test_attachment_missing_required_fields_is_skipped(self):
        with self.assertLogs("nowandlater.sheets", level="WARNING"):
            attachments = parse_attachments(
                '[{"name": "x.pdf"}, "junk", {"id": "a2", "name": "ok.pdf", "size": "12"}]'
            )

        self.assertEqual(attachments, [TaskAttachment(id="a2", name="ok.pdf", size=12)])


if __name__ == "__main__":
    unittest.main()
