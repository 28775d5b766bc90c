"""Package manager client.

Transport, retry and the lifecycle client are imported from their modules
directly; only the response models are re-exported here.
"""

from .models import (
    OperationReport,
    PackageListing,
    RemotePackage,
    ReportStatus,
    UploadResult,
)

__all__ = [
    "OperationReport",
    "PackageListing",
    "RemotePackage",
    "ReportStatus",
    "UploadResult",
]
