"""
The operation table: one descriptor per operation, pairing its primary and
legacy executors with the resource class it reads or invalidates.
"""

from __future__ import annotations

from nowandlater.apps_script import AppsScriptBackend, Unsupported
from nowandlater.drive import DriveBackend
from nowandlater.router import OperationDescriptor, OperationKind
from nowandlater.sheets import SheetsBackend

APP_DATA = "app-data"
TASKS = "tasks"
SETTINGS = "settings"
PROJECT_FILES = "project-files"
DRIVE_FOLDER = "drive"
DRIVE_SEARCH = "drive-search"
DRIVE_RECENT = "drive-recent"
DRIVE_SHARED = "drive-shared"
DRIVE_TRASH = "drive-trash"
DRIVE_PATH = "drive-path"

READ = OperationKind.READ
WRITE = OperationKind.WRITE


class OperationSet:
    """
    Descriptors for every routed operation.

    Per-record reads (project files, drive folders, file paths) are declared
    with a base resource class and narrowed per request with `scoped(id)`.
    """

    def __init__(
        self,
        sheets: SheetsBackend,
        drive: DriveBackend,
        legacy: AppsScriptBackend,
    ):
        self.load_app_data = OperationDescriptor(
            "load_app_data", APP_DATA, READ, sheets.load_app_data, legacy.load_app_data
        )
        self.list_tasks = OperationDescriptor(
            "list_tasks", TASKS, READ, sheets.list_tasks, legacy.list_tasks
        )
        self.create_task = OperationDescriptor(
            "create_task", TASKS, WRITE, sheets.create_task, legacy.create_task,
            invalidates=(APP_DATA,),
        )
        self.update_task = OperationDescriptor(
            "update_task", TASKS, WRITE, sheets.update_task, legacy.update_task,
            invalidates=(APP_DATA,),
        )
        self.delete_task = OperationDescriptor(
            "delete_task", TASKS, WRITE, sheets.delete_task, legacy.delete_task,
            invalidates=(APP_DATA,),
        )
        self.reorder_tasks = OperationDescriptor(
            "reorder_tasks", TASKS, WRITE, sheets.reorder_tasks, legacy.reorder_tasks,
            invalidates=(APP_DATA,),
        )
        self.create_project = OperationDescriptor(
            "create_project", APP_DATA, WRITE, sheets.create_project, legacy.create_project,
        )
        self.update_project = OperationDescriptor(
            "update_project", APP_DATA, WRITE, sheets.update_project, legacy.update_project,
        )
        # Deleting a project orphans its tasks in every task view.
        self.delete_project = OperationDescriptor(
            "delete_project", APP_DATA, WRITE, sheets.delete_project, legacy.delete_project,
            invalidates=(TASKS,),
        )
        self.create_area = OperationDescriptor(
            "create_area", APP_DATA, WRITE, sheets.create_area, legacy.create_area,
        )
        # Folder setup is scoped per project like the file listing it affects.
        self.setup_project_folder = OperationDescriptor(
            "setup_project_folder", PROJECT_FILES, WRITE,
            sheets.setup_project_folder, Unsupported("setup_project_folder"),
            invalidates=(APP_DATA,),
        )
        self.fix_project_folders = OperationDescriptor(
            "fix_project_folders", APP_DATA, WRITE,
            sheets.fix_project_folders, Unsupported("fix_project_folders"),
        )
        self.get_master_folder = OperationDescriptor(
            "get_master_folder", SETTINGS, READ,
            sheets.get_master_folder, Unsupported("get_master_folder"),
        )
        self.set_master_folder = OperationDescriptor(
            "set_master_folder", SETTINGS, WRITE,
            sheets.set_master_folder, Unsupported("set_master_folder"),
        )
        self.list_project_files = OperationDescriptor(
            "list_project_files", PROJECT_FILES, READ,
            drive.list_project_files, legacy.list_project_files,
        )
        self.list_drive_files = OperationDescriptor(
            "list_drive_files", DRIVE_FOLDER, READ,
            drive.list_drive_files, legacy.list_drive_files,
        )
        self.search_drive_files = OperationDescriptor(
            "search_drive_files", DRIVE_SEARCH, READ,
            drive.search_drive_files, legacy.search_drive_files,
        )
        self.recent_drive_files = OperationDescriptor(
            "recent_drive_files", DRIVE_RECENT, READ,
            drive.recent_drive_files, Unsupported("recent_drive_files"),
        )
        self.shared_drive_files = OperationDescriptor(
            "shared_drive_files", DRIVE_SHARED, READ,
            drive.shared_drive_files, Unsupported("shared_drive_files"),
        )
        self.trash_drive_files = OperationDescriptor(
            "trash_drive_files", DRIVE_TRASH, READ,
            drive.trash_drive_files, Unsupported("trash_drive_files"),
        )
        self.get_file_path = OperationDescriptor(
            "get_file_path", DRIVE_PATH, READ,
            drive.get_file_path, legacy.get_file_path,
        )

    def all(self) -> list[OperationDescriptor]:
        return [
            value for value in vars(self).values()
            if isinstance(value, OperationDescriptor)
        ]
