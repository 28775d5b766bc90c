"""
Pytest configuration and fixtures for crx-sync tests.
"""

import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Tuple

import httpx
import pytest

from crx_sync.core.config import Settings
from crx_sync.core.models import Instance


PROPERTIES_XML = """<?xml version="1.0" encoding="utf-8" standalone="no"?>
<!DOCTYPE properties SYSTEM "http://java.sun.com/dtd/properties.dtd">
<properties>
<comment>FileVault Package Properties</comment>
<entry key="name">{name}</entry>
<entry key="group">{group}</entry>
<entry key="version">{version}</entry>
<entry key="buildCount">1</entry>
</properties>
"""


class FakeInstance:
    """Routes requests to canned handlers and records them.

    Routes are matched on (method, path); each route holds a list of
    responses served in order, the last one repeating.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Callable[[httpx.Request], httpx.Response]]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, *responses):
        handlers = self.routes.setdefault((method, path), [])
        for response in responses:
            if callable(response):
                handlers.append(response)
            else:
                status, body = response
                handlers.append(lambda request, s=status, b=body: httpx.Response(s, text=b))
        return self

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handlers = self.routes.get((request.method, request.url.path))
        if not handlers:
            return httpx.Response(404, text="Not found")
        count = len([r for r in self.requests if (r.method, r.url.path) == (request.method, request.url.path)])
        handler = handlers[min(count, len(handlers)) - 1]
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def fake_instance() -> FakeInstance:
    return FakeInstance()


@pytest.fixture
def instance() -> Instance:
    return Instance(name="author", url="http://localhost:4502/", user="admin", password="admin")


@pytest.fixture
def settings(instance) -> Settings:
    return Settings(
        instances=[instance],
        upload_force=False,
        upload_retry_times=2,
        upload_retry_delay=0,
        install_retry_times=1,
        install_retry_delay=0,
        package_snapshots=["**/*-SNAPSHOT*.zip"],
        package_remote_path="",
    )


@pytest.fixture
def no_wait():
    waits = []

    def wait(header: str, delay: float) -> None:
        waits.append((header, delay))

    wait.calls = waits
    return wait


def make_package(path: Path, group: str = "my", name: str = "pkg", version: str = "1.0.0") -> Path:
    """Create a minimal CRX package archive."""
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr(
            "META-INF/vault/properties.xml",
            PROPERTIES_XML.format(group=group, name=name, version=version),
        )
        zf.writestr("jcr_root/apps/my/.content.xml", "<jcr:root/>")
    return path


@pytest.fixture
def package_file(tmp_path: Path) -> Path:
    return make_package(tmp_path / "pkg-1.0.0.zip")
