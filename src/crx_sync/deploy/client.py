"""Package manager client driving the remote package lifecycle.

A package moves through ``upload -> install -> activate``; ``delete`` and
``uninstall`` undo the first two steps. Steps are never chained implicitly
apart from the :meth:`PackageClient.deploy` and
:meth:`PackageClient.distribute` shortcuts, and a failed step is never
rolled back.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Union

import structlog

from crx_sync.core.exceptions import (
    CrxSyncError,
    DeploymentRejected,
    MalformedResponse,
    PackageFileNotFound,
)
from crx_sync.core.models import Instance
from crx_sync.deploy.models import OperationReport, RemotePackage, ReportStatus, UploadResult
from crx_sync.deploy.responses import (
    parse_operation_report,
    parse_package_listing,
    parse_upload_result,
    read_package_identity,
)
from crx_sync.deploy.retry import retry_with_delay
from crx_sync.deploy.transport import InstanceTransport
from crx_sync.utils.patterns import matches_wildcard

if TYPE_CHECKING:
    from crx_sync.core.config import Settings

logger = structlog.get_logger()

PACKAGE_MANAGER_SERVICE_SUFFIX = "/crx/packmgr/service"

PACKAGE_MANAGER_LIST_SUFFIX = "/crx/packmgr/list.jsp"


class PackageClient:
    """Uploads, installs, activates, deletes and uninstalls packages on one instance."""

    def __init__(
        self,
        instance: Instance,
        transport: InstanceTransport,
        settings: "Settings",
        wait: Optional[Callable[[str, float], None]] = None,
    ):
        self.instance = instance
        self.transport = transport
        self.settings = settings
        self.wait = wait
        self.logger = logger.bind(instance=instance.name)

        self.json_target_url = instance.url + PACKAGE_MANAGER_SERVICE_SUFFIX + "/.json"
        self.html_target_url = instance.url + PACKAGE_MANAGER_SERVICE_SUFFIX + "/.html"
        self.list_packages_url = instance.url + PACKAGE_MANAGER_LIST_SUFFIX

    # Remote package lookup

    def resolve_remote_package(
        self,
        file: Optional[Union[str, Path]] = None,
        expected: Optional[RemotePackage] = None,
        refresh: bool = True,
    ) -> Optional[RemotePackage]:
        """Find the uploaded counterpart of a local package.

        Identity is read from the package descriptor when ``file`` is given,
        otherwise ``expected`` is matched. The instance listing is fetched
        again unless ``refresh`` is false and a listing is already cached.
        """
        if file is not None:
            expected = read_package_identity(Path(file))
        if expected is None:
            raise ValueError("Package file or expected package is required")

        if self.instance.packages is None or refresh:
            self.logger.debug("Asking instance for uploaded packages", url=self.list_packages_url)
            json = self.transport.post_multipart(self.list_packages_url)
            try:
                self.instance.packages = parse_package_listing(json)
            except MalformedResponse as e:
                self.logger.error("Cannot ask instance for uploaded packages", error=str(e))
                raise

        return self.instance.packages.resolve(expected)

    def determine_remote_package_path(
        self,
        file: Optional[Union[str, Path]] = None,
        expected: Optional[RemotePackage] = None,
    ) -> str:
        if self.settings.package_remote_path.strip():
            return self.settings.package_remote_path

        pkg = self.resolve_remote_package(file, expected)
        if pkg is None:
            raise DeploymentRejected(f"Package is not uploaded on instance {self.instance}")
        return pkg.path

    def is_snapshot(self, file: Union[str, Path]) -> bool:
        return matches_wildcard(Path(file), self.settings.package_snapshots)

    # Upload

    def upload(self, file: Union[str, Path]) -> UploadResult:
        file = self._require_file(file)
        return retry_with_delay(
            lambda: self.upload_once(file),
            self.settings.upload_retry,
            label="upload",
            on_wait=self.wait,
        )

    def upload_once(self, file: Union[str, Path]) -> UploadResult:
        file = self._require_file(file)
        url = f"{self.json_target_url}/?cmd=upload"
        force = self.settings.upload_force or self.is_snapshot(file)

        self.logger.info("Uploading package", path=str(file), url=url, force=force)

        json = self.transport.post_multipart(url, {"package": file, "force": force})
        response = parse_upload_result(json)

        if not response.success:
            self.logger.error("Package upload failed", msg=response.msg)
            raise DeploymentRejected(response.msg or "Package upload failed")
        if not response.path:
            raise MalformedResponse("Upload acknowledgement does not contain package path")

        self.logger.info(response.msg, path=response.path)
        return response

    def _require_file(self, file: Union[str, Path]) -> Path:
        file = Path(file)
        if not file.is_file():
            raise PackageFileNotFound(f"Package file '{file}' not found!")
        return file

    # Install

    def install(self, remote_path: str) -> OperationReport:
        return retry_with_delay(
            lambda: self.install_once(remote_path),
            self.settings.install_retry,
            label="install",
            on_wait=self.wait,
        )

    def install_once(self, remote_path: str) -> OperationReport:
        url = f"{self.html_target_url}{remote_path}/?cmd=install"

        self.logger.info("Installing package", url=url)

        html = self.transport.post_multipart(url, {"recursive": self.settings.install_recursive})
        report = parse_operation_report(html, "install")
        self._check_report(report, "install", "installed")
        return report

    # Activation

    def activate(self, remote_path: str) -> UploadResult:
        url = f"{self.json_target_url}{remote_path}/?cmd=replicate"

        self.logger.info("Activating package", url=url)

        json = self.transport.post_multipart(url)
        try:
            response = parse_upload_result(json)
        except MalformedResponse as e:
            self.logger.error("Package activation failed, malformed response", error=str(e))
            raise

        if not response.success:
            self.logger.error("Package activation failed", msg=response.msg)
            raise DeploymentRejected(response.msg or "Package activation failed")

        self.logger.info("Package activated", path=remote_path)
        return response

    # Removal

    def delete(self, remote_path: str) -> OperationReport:
        url = f"{self.html_target_url}{remote_path}/?cmd=delete"

        self.logger.info("Deleting package", url=url)

        html = self.transport.post_multipart(url)
        report = parse_operation_report(html, "delete")
        self._check_report(report, "delete", "deleted")
        return report

    def uninstall(self, remote_path: str) -> OperationReport:
        url = f"{self.html_target_url}{remote_path}/?cmd=uninstall"

        self.logger.info("Uninstalling package", url=url)

        html = self.transport.post_multipart(url, {"recursive": self.settings.install_recursive})
        report = parse_operation_report(html, "uninstall")
        self._check_report(report, "uninstall", "uninstalled")
        return report

    def _check_report(self, report: OperationReport, operation: str, done: str) -> None:
        """Raise unless the report is a success without any error line."""
        if report.is_clean:
            self.logger.info(f"Package successfully {done}")
            return

        for error in report.errors:
            self.logger.error(f"Package {operation} error", line=error)

        if report.status == ReportStatus.FAIL:
            self.logger.error(f"Package {operation} failed", errors=len(report.errors))
            message = f"Package {operation} failed on {self.instance}!"
        else:
            self.logger.error(f"Package {done} with errors", errors=len(report.errors))
            message = f"Package {done} with errors on {self.instance}!"

        raise DeploymentRejected(message, status=report.status.value, errors=report.errors)

    # Build

    def build(self, remote_path: str) -> UploadResult:
        """Rebuild an already uploaded package definition on the instance."""
        url = f"{self.json_target_url}{remote_path}/?cmd=build"

        self.logger.info("Building package", url=url)

        response = parse_upload_result(self.transport.post_multipart(url))
        if not response.success:
            self.logger.error("Package build failed", msg=response.msg)
            raise DeploymentRejected(response.msg or "Package build failed")
        return response

    # Compositions

    def deploy(self, file: Union[str, Path]) -> str:
        """Upload then install. Returns the remote package path."""
        path = self.upload(file).path
        self.install(path)
        return path

    def distribute(self, file: Union[str, Path]) -> str:
        """Upload, install then activate. Returns the remote package path."""
        path = self.upload(file).path
        self.install(path)
        self.activate(path)
        return path

    def run(self, operation: str, remote_path: str) -> object:
        """Dispatch a path-based lifecycle step by name."""
        steps = {
            "install": self.install,
            "activate": self.activate,
            "delete": self.delete,
            "uninstall": self.uninstall,
            "build": self.build,
        }
        if operation not in steps:
            raise CrxSyncError(f"Unknown package operation: {operation}")
        return steps[operation](remote_path)
