"""Authenticated HTTP calls against a single instance."""

from __future__ import annotations

import os
from contextlib import ExitStack
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, List, Mapping, Optional, Tuple, Union

import httpx
import structlog

from crx_sync.core.exceptions import RemoteRequestFailed
from crx_sync.core.models import Instance

if TYPE_CHECKING:
    from crx_sync.core.config import Settings

logger = structlog.get_logger()

# Connect retries performed by httpx itself when enabled
TRANSPORT_RETRIES = 3

MultipartField = Tuple[str, Union[str, Path]]


def normalize_url(url: str) -> str:
    """Escape spaces, which are not valid in a request target."""
    return url.replace(" ", "%20")


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def multipart_fields(params: Optional[Mapping[str, Any]]) -> List[MultipartField]:
    """Select the parts of a multipart request.

    Paths are attached only when the file exists. Other values are sent as
    text and skipped when blank.
    """
    fields: List[MultipartField] = []
    for key, value in (params or {}).items():
        if isinstance(value, Path):
            if value.is_file():
                fields.append((key, value))
        else:
            text = _stringify(value)
            if text.strip():
                fields.append((key, text))
    return fields


class InstanceTransport:
    """Performs single HTTP calls against an instance and normalizes failures.

    Every call uses a short-lived ``httpx.Client`` so the connection is
    released whatever the outcome. Basic auth is sent preemptively with the
    first request. Any failure is raised as :class:`RemoteRequestFailed`.
    """

    def __init__(
        self,
        instance: Instance,
        *,
        timeout: float = 5.0,
        untrusted_ssl: bool = True,
        retries: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.instance = instance
        self.timeout = timeout
        self.untrusted_ssl = untrusted_ssl
        self.retries = retries
        self.request_configurer: Callable[[httpx.Request], None] = lambda request: None
        self.response_handler: Callable[[httpx.Response], None] = lambda response: None
        self._transport = transport
        self.logger = logger.bind(instance=instance.name)

    @classmethod
    def from_settings(
        cls,
        instance: Instance,
        settings: "Settings",
        transport: Optional[httpx.BaseTransport] = None,
    ) -> "InstanceTransport":
        return cls(
            instance,
            timeout=settings.connection_timeout,
            untrusted_ssl=settings.connection_untrusted_ssl,
            retries=settings.connection_retries,
            transport=transport,
        )

    def get(self, url: str) -> str:
        return self.fetch("GET", url)

    def post_urlencoded(self, url: str, params: Optional[Mapping[str, Any]] = None) -> str:
        data = {key: _stringify(value) for key, value in (params or {}).items()}
        return self.fetch("POST", url, data=data)

    def post_multipart(self, url: str, params: Optional[Mapping[str, Any]] = None) -> str:
        fields = multipart_fields(params)
        with ExitStack() as stack:
            files: List[Tuple[str, Any]] = []
            for key, value in fields:
                if isinstance(value, Path):
                    handle = stack.enter_context(open(value, "rb"))
                    files.append((key, (value.name, handle, "application/octet-stream")))
                else:
                    files.append((key, (None, value)))
            if files:
                return self.fetch("POST", url, files=files)

        # httpx sends no body for an empty part list, the server expects a form
        boundary = os.urandom(16).hex()
        return self.fetch(
            "POST",
            url,
            content=f"--{boundary}--\r\n".encode("ascii"),
            headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
        )

    def _hook(self, name: str, target: Any) -> None:
        hook = getattr(self, name)
        try:
            hook(target)
        except Exception as e:
            self.logger.warning("Instance request hook failed", hook=name, error=str(e))
            raise RemoteRequestFailed(f"Instance {name} failed: {e}") from e

    def _configure_request(self, request: httpx.Request) -> None:
        self._hook("request_configurer", request)

    def _handle_response(self, response: httpx.Response) -> None:
        self._hook("response_handler", response)

    def create_client(self) -> httpx.Client:
        transport = self._transport or httpx.HTTPTransport(
            verify=not self.untrusted_ssl,
            retries=TRANSPORT_RETRIES if self.retries else 0,
        )
        return httpx.Client(
            auth=httpx.BasicAuth(self.instance.user, self.instance.password),
            timeout=httpx.Timeout(self.timeout, read=None, write=None),
            transport=transport,
            event_hooks={
                "request": [self._configure_request],
                "response": [self._handle_response],
            },
        )

    def fetch(self, method: str, url: str, **kwargs: Any) -> str:
        """Execute a request and return the body of a successful response."""
        url = normalize_url(url)
        try:
            with self.create_client() as client:
                response = client.request(method, url, **kwargs)
                body = response.text
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.logger.warning("Instance request failed", method=method, url=url, error=str(e))
            raise RemoteRequestFailed(f"Failed instance request: {e}") from e

        if not response.is_success:
            self.logger.warning("Unexpected instance response", method=method, url=url, status=response.status_code)
            self.logger.debug("Unexpected instance response body", url=url, body=body)
            raise RemoteRequestFailed(
                f"Unexpected instance response: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        return body
