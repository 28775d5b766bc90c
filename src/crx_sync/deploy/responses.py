"""Parsers for package manager responses.

The package manager speaks two dialects: JSON for listing, upload and
replicate commands, and an HTML log page for install, delete and uninstall.
The HTML page is not an API, so everything that depends on its markup is
kept in :func:`parse_operation_report`.
"""

from __future__ import annotations

import json
import re
import zipfile
from pathlib import Path
from typing import List

from bs4 import BeautifulSoup
from pydantic import ValidationError

from crx_sync.core.exceptions import MalformedResponse, PackageFileInvalid
from crx_sync.deploy.models import (
    OperationReport,
    PackageListing,
    RemotePackage,
    ReportStatus,
    UploadResult,
)

VLT_PROPERTIES = "META-INF/vault/properties.xml"

# Completion markers printed by the package manager at the end of the log page
OPERATION_MARKERS = {
    "install": re.compile(r"Package\s+installed\s+in", re.IGNORECASE),
    "delete": re.compile(r"Package\s+deleted\s+in", re.IGNORECASE),
    "uninstall": re.compile(r"Package\s+uninstalled\s+in", re.IGNORECASE),
}

WITH_ERRORS_MARKER = re.compile(r"\(\s*with\s+errors", re.IGNORECASE)

_WHITESPACE = re.compile(r"\s+")


def _decode_json(text: str, what: str) -> dict:
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedResponse(f"Malformed {what} JSON response: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponse(f"Malformed {what} JSON response: object expected")
    return data


def parse_package_listing(text: str) -> PackageListing:
    """Parse the ``list.jsp`` response into a package listing."""
    data = _decode_json(text, "package listing")
    try:
        listing = PackageListing.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f"Unexpected package listing structure: {e}") from e
    if not listing.total:
        listing.total = len(listing.results)
    return listing


def parse_upload_result(text: str) -> UploadResult:
    """Parse a JSON acknowledgement ``{success, msg, path}``."""
    data = _decode_json(text, "acknowledgement")
    try:
        return UploadResult.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f"Acknowledgement lacks required fields: {e}") from e


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text.replace("\xa0", " ")).strip()


def parse_operation_report(html: str, operation: str) -> OperationReport:
    """Classify an install, delete or uninstall HTML log page.

    Error lines are the ``span.E`` entries of the log, returned in document
    order. A page without any recognized marker is reported as FAIL; it never
    raises so callers can always branch on the status.
    """
    marker = OPERATION_MARKERS[operation]
    soup = BeautifulSoup(html or "", "html.parser")

    errors: List[str] = []
    for span in soup.select("span.E"):
        flag = span.find("b")
        if flag is not None:
            flag.extract()
        line = _normalize(span.get_text(" "))
        if line:
            errors.append(line)

    text = _normalize(soup.get_text(" "))
    if WITH_ERRORS_MARKER.search(text):
        status = ReportStatus.SUCCESS_WITH_ERRORS
    elif marker.search(text):
        status = ReportStatus.SUCCESS
    else:
        status = ReportStatus.FAIL
        if not errors:
            errors.append(f"No {operation} outcome found in instance response")

    return OperationReport(status=status, errors=errors)


def read_package_identity(file: Path) -> RemotePackage:
    """Read group, name and version from the package descriptor."""
    try:
        with zipfile.ZipFile(file) as zf:
            if VLT_PROPERTIES not in zf.namelist():
                raise PackageFileInvalid(f"File is not a valid CRX package: {file}")
            xml = zf.read(VLT_PROPERTIES)
    except (OSError, zipfile.BadZipFile) as e:
        raise PackageFileInvalid(f"File is not a valid CRX package: {file}") from e

    doc = BeautifulSoup(xml, features="xml")

    def entry(key: str) -> str:
        node = doc.select_one(f'entry[key="{key}"]')
        return node.get_text().strip() if node is not None else ""

    return RemotePackage(group=entry("group"), name=entry("name"), version=entry("version"))
