"""Custom exceptions for crx-sync."""

from typing import List, Optional


class CrxSyncError(Exception):
    """Base exception for all client errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class RemoteRequestFailed(CrxSyncError):
    """HTTP call failed at transport level or returned a non-success status."""

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, code)
        self.status_code = status_code


class PackageFileNotFound(RemoteRequestFailed):
    """Local package file to be uploaded does not exist."""
    pass


class PackageFileInvalid(CrxSyncError):
    """Local file is not a valid CRX package."""
    pass


class MalformedResponse(CrxSyncError):
    """Instance response could not be decoded."""
    pass


class DeploymentRejected(CrxSyncError):
    """Instance accepted the call but reported a failed or partial outcome."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ):
        self.status = status
        self.errors = list(errors or [])
        if self.errors:
            message = message + "\n" + "\n".join(self.errors)
        super().__init__(message, code)


class InstanceUnreachable(CrxSyncError):
    """Instance cannot be reached for a runtime command (e.g. restart)."""
    pass


class ConfigurationError(CrxSyncError):
    """Configuration error."""
    pass
