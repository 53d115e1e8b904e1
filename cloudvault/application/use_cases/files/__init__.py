"""File use cases: upload, download and removal."""

from cloudvault.application.use_cases.files.file_operations import (
    FileDownloadService,
    FileRemovalService,
    FileUploadService,
)

__all__ = ["FileDownloadService", "FileRemovalService", "FileUploadService"]
