from .test_api import ApiAuthTests, ConsoleApiTests, PortalAndReviewApiTests
from .test_end_to_end import CollectionEndToEndTests
from .test_export import ExportPlanTests, ExportStreamTests, ZipStreamUnitTests
from .test_export_format import (
    CsvFormulaSanitizerTests,
    FileNameSanitizerTests,
    ManifestCsvTests,
    ZipPathTests,
)
from .test_ops import CollaboratorOverrideTests, DepartmentClosureCommandTests, OrphanBlobScavengerCommandTests
from .test_review import BatchProcessTests, SubmissionDetailTests, SubmissionListTests
from .test_submission_workflow import (
    DeleteFileTests,
    PortalReadTests,
    PortalVisibilityTests,
    SubmitTests,
    UploadFileTests,
    WithdrawTests,
)
from .test_task_lifecycle import (
    ConsoleDataScopeTests,
    ItemTemplateTests,
    TaskCreateTests,
    TaskListingTests,
    TaskTransitionTests,
    TaskUpdateTests,
)

__all__ = [
    "ApiAuthTests",
    "BatchProcessTests",
    "CollectionEndToEndTests",
    "CollaboratorOverrideTests",
    "ConsoleApiTests",
    "ConsoleDataScopeTests",
    "CsvFormulaSanitizerTests",
    "DeleteFileTests",
    "DepartmentClosureCommandTests",
    "ExportPlanTests",
    "ExportStreamTests",
    "FileNameSanitizerTests",
    "ItemTemplateTests",
    "ManifestCsvTests",
    "OrphanBlobScavengerCommandTests",
    "PortalAndReviewApiTests",
    "PortalReadTests",
    "PortalVisibilityTests",
    "SubmissionDetailTests",
    "SubmissionListTests",
    "SubmitTests",
    "TaskCreateTests",
    "TaskListingTests",
    "TaskTransitionTests",
    "TaskUpdateTests",
    "UploadFileTests",
    "WithdrawTests",
    "ZipPathTests",
    "ZipStreamUnitTests",
]
