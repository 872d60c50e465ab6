"""Cloud provider integrations for folder apps."""

from folder_core.integrations.cloud.client import (
    FolderCloudService,
    HttpFolderCloudService,
    LocalFolderCloudService,
    get_cloud_service,
)

__all__ = ["FolderCloudService", "HttpFolderCloudService", "LocalFolderCloudService", "get_cloud_service"]
