"""Advisory queries of instance runtime state.

Module (OSGi bundle) and service (OSGi component) states are diagnostic
only. Failing to read them never aborts a deployment: any failure turns
into an explicit unknown state which carries the cause.
"""

from __future__ import annotations

import json
from typing import List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from crx_sync.core.exceptions import CrxSyncError, InstanceUnreachable, MalformedResponse
from crx_sync.core.models import Instance
from crx_sync.deploy.transport import InstanceTransport

logger = structlog.get_logger()

CONSOLE_SUFFIX = "/system/console"

MODULE_ACTIVE = "Active"
MODULE_RESOLVED = "Resolved"

SERVICE_ACTIVE = "active"
SERVICE_SATISFIED = "satisfied"


class Module(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    symbolicName: str = ""
    version: str = ""
    state: str = ""
    stateRaw: int = 0
    fragment: bool = False

    @property
    def active(self) -> bool:
        # Fragments never go past Resolved
        if self.fragment:
            return self.state == MODULE_RESOLVED
        return self.state == MODULE_ACTIVE


class ModuleState(BaseModel):
    """Snapshot of bundles reported by ``bundles.json``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, arbitrary_types_allowed=True)

    status: str = ""
    stats: List[int] = Field(default_factory=list, alias="s")
    modules: List[Module] = Field(default_factory=list, alias="data")
    unknown: bool = False
    error: Optional[Exception] = Field(None, exclude=True)

    @classmethod
    def from_json(cls, text: str) -> "ModuleState":
        try:
            return cls.model_validate(json.loads(text))
        except (ValueError, ValidationError) as e:
            raise MalformedResponse(f"Malformed bundles JSON response: {e}") from e

    @classmethod
    def unknown_state(cls, error: Optional[Exception] = None) -> "ModuleState":
        return cls(unknown=True, error=error)

    @property
    def total(self) -> int:
        return self.stats[0] if self.stats else len(self.modules)

    @property
    def inactive(self) -> List[Module]:
        return [m for m in self.modules if not m.active]

    @property
    def stable(self) -> bool:
        return not self.unknown and bool(self.modules) and not self.inactive

    def __str__(self) -> str:
        if self.unknown:
            return "modules: unknown"
        return f"modules: {self.total - len(self.inactive)}/{self.total} active"


class Service(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: Optional[str] = None
    name: str = ""
    pid: str = ""
    state: str = ""

    @property
    def active(self) -> bool:
        return self.state in (SERVICE_ACTIVE, SERVICE_SATISFIED)

    @property
    def unsatisfied(self) -> bool:
        return self.state.startswith("unsatisfied") or self.state == "failed activation"


class ServiceState(BaseModel):
    """Snapshot of components reported by ``components.json``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, arbitrary_types_allowed=True)

    services: List[Service] = Field(default_factory=list, alias="data")
    unknown: bool = False
    error: Optional[Exception] = Field(None, exclude=True)

    @classmethod
    def from_json(cls, text: str) -> "ServiceState":
        try:
            return cls.model_validate(json.loads(text))
        except (ValueError, ValidationError) as e:
            raise MalformedResponse(f"Malformed components JSON response: {e}") from e

    @classmethod
    def unknown_state(cls, error: Optional[Exception] = None) -> "ServiceState":
        return cls(unknown=True, error=error)

    @property
    def total(self) -> int:
        return len(self.services)

    @property
    def unsatisfied(self) -> List[Service]:
        return [s for s in self.services if s.unsatisfied]

    @property
    def stable(self) -> bool:
        return not self.unknown and not self.unsatisfied

    def __str__(self) -> str:
        if self.unknown:
            return "services: unknown"
        return f"services: {len(self.unsatisfied)} unsatisfied of {self.total}"


class InstanceState(BaseModel):
    instance: str
    modules: ModuleState
    services: ServiceState

    @property
    def unknown(self) -> bool:
        return self.modules.unknown or self.services.unknown

    @property
    def stable(self) -> bool:
        return self.modules.stable and self.services.stable

    def __str__(self) -> str:
        return f"{self.instance}: {self.modules}, {self.services}"


class InstanceStateClient:
    """Reads module and service state of one instance."""

    def __init__(self, instance: Instance, transport: InstanceTransport):
        self.instance = instance
        self.transport = transport
        self.logger = logger.bind(instance=instance.name)

        self.bundles_url = f"{instance.url}{CONSOLE_SUFFIX}/bundles.json"
        self.components_url = f"{instance.url}{CONSOLE_SUFFIX}/components.json"
        self.vmstat_url = f"{instance.url}{CONSOLE_SUFFIX}/vmstat"

    def determine_module_state(self) -> ModuleState:
        self.logger.debug("Asking instance for modules", url=self.bundles_url)
        try:
            return ModuleState.from_json(self.transport.get(self.bundles_url))
        except Exception as e:
            self.logger.debug("Cannot determine module state", error=str(e))
            return ModuleState.unknown_state(e)

    def determine_service_state(self) -> ServiceState:
        self.logger.debug("Asking instance for services", url=self.components_url)
        try:
            return ServiceState.from_json(self.transport.get(self.components_url))
        except Exception as e:
            self.logger.debug("Cannot determine service state", error=str(e))
            return ServiceState.unknown_state(e)

    def determine_instance_state(self) -> InstanceState:
        return InstanceState(
            instance=self.instance.name,
            modules=self.determine_module_state(),
            services=self.determine_service_state(),
        )

    def reload(self) -> None:
        """Trigger a restart of the instance."""
        self.logger.info("Triggering instance restart", url=self.vmstat_url)
        try:
            self.transport.post_urlencoded(self.vmstat_url, {"shutdown_type": "Restart"})
        except CrxSyncError as e:
            raise InstanceUnreachable(f"Cannot trigger shutdown for instance {self.instance}") from e
