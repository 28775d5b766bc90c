"""Per-instance client facade and parallel fan-out across instances."""

from __future__ import annotations

import contextvars
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, TypeVar

import httpx
import structlog

from crx_sync.core.config import Settings
from crx_sync.core.models import Instance
from crx_sync.deploy.client import PackageClient
from crx_sync.deploy.transport import InstanceTransport
from crx_sync.instance.state import InstanceState, InstanceStateClient

logger = structlog.get_logger()

T = TypeVar("T")


class InstanceSync:
    """Everything needed to talk to one instance.

    Each instance gets its own transport, package client and state client;
    the package listing cache lives on the instance itself.
    """

    def __init__(
        self,
        instance: Instance,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
        wait: Optional[Callable[[str, float], None]] = None,
    ):
        self.instance = instance
        self.settings = settings or Settings()
        self.transport = InstanceTransport.from_settings(instance, self.settings, transport)
        self.packages = PackageClient(instance, self.transport, self.settings, wait=wait)
        self.state = InstanceStateClient(instance, self.transport)

    def determine_instance_state(self) -> InstanceState:
        return self.state.determine_instance_state()

    def __repr__(self) -> str:
        return f"InstanceSync({self.instance})"


def for_each_instance(
    instances: Iterable[Instance],
    operation: Callable[[InstanceSync], T],
    settings: Optional[Settings] = None,
    *,
    max_workers: Optional[int] = None,
    client_factory: Optional[Callable[[Instance], InstanceSync]] = None,
) -> List[T]:
    """Run ``operation`` against every instance concurrently.

    Results are returned in instance order. Workers share nothing but the
    read-only settings. When any worker fails, the others still run to
    completion and all failures are raised together as an ``ExceptionGroup``.
    """
    instances = list(instances)
    if not instances:
        return []

    settings = settings or Settings()
    factory = client_factory or (lambda instance: InstanceSync(instance, settings))

    def work(instance: Instance) -> T:
        return operation(factory(instance))

    with ThreadPoolExecutor(
        max_workers=max_workers or len(instances),
        thread_name_prefix="crx-sync",
    ) as executor:
        futures = [
            executor.submit(contextvars.copy_context().run, work, instance)
            for instance in instances
        ]

    results: List[T] = []
    errors: List[Exception] = []
    for instance, future in zip(instances, futures):
        error = future.exception()
        if error is None:
            results.append(future.result())
            continue
        logger.error("Instance operation failed", instance=instance.name, error=str(error))
        if not isinstance(error, Exception):
            raise error
        errors.append(error)

    if errors:
        raise ExceptionGroup(f"Operation failed on {len(errors)} of {len(instances)} instance(s)", errors)
    return results
