"""Models of package manager responses."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RemotePackage(BaseModel):
    """Package known by the instance package manager."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    group: str = ""
    name: str = ""
    version: str = ""
    path: str = ""
    downloadName: str = ""
    size: Optional[int] = None
    lastUnpacked: Optional[int] = None
    lastModified: Optional[int] = None

    @property
    def installed(self) -> bool:
        return self.lastUnpacked is not None

    @property
    def identity_blank(self) -> bool:
        return not (self.group.strip() or self.name.strip() or self.version.strip())

    def matches(self, expected: RemotePackage) -> bool:
        """Compare by group, name and version; by path when identity is not known."""
        if expected.identity_blank:
            return bool(expected.path) and self.path == expected.path
        return (
            self.group == expected.group
            and self.name == expected.name
            and self.version == expected.version
        )

    def __str__(self) -> str:
        if self.identity_blank:
            return self.path
        return f"{self.group}:{self.name}:{self.version}"


class PackageListing(BaseModel):
    """Snapshot of packages uploaded on an instance."""

    model_config = ConfigDict(extra="ignore")

    results: List[RemotePackage] = Field(default_factory=list)
    total: int = 0

    def resolve(self, expected: RemotePackage) -> Optional[RemotePackage]:
        return next((pkg for pkg in self.results if pkg.matches(expected)), None)


class UploadResult(BaseModel):
    """Acknowledgement of upload, replicate or build commands."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    success: bool
    msg: str = Field(validation_alias=AliasChoices("msg", "message"))
    path: str = ""


class ReportStatus(str, Enum):
    SUCCESS = "success"
    SUCCESS_WITH_ERRORS = "success_with_errors"
    FAIL = "fail"


class OperationReport(BaseModel):
    """Outcome of install, delete or uninstall scraped from an HTML report."""

    status: ReportStatus
    errors: List[str] = Field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return self.status == ReportStatus.SUCCESS and not self.errors
