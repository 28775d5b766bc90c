"""Configuration management for crx-sync."""

from pathlib import Path
from typing import Annotated, Any, List, Optional, Union

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from crx_sync.core.exceptions import ConfigurationError
from crx_sync.core.models import Instance
from crx_sync.deploy.retry import RetryPolicy


class Settings(BaseSettings):
    """Client configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="CRX_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Instances
    instances: List[Instance] = Field(
        default_factory=lambda: [Instance(name="local-author", url="http://localhost:4502")],
        description="Remote instances to synchronize with (JSON list in env)",
    )

    # Connection
    connection_timeout: float = Field(5.0, description="Connection timeout in seconds")
    connection_untrusted_ssl: bool = Field(True, description="Trust self-signed certificates")
    connection_retries: bool = Field(True, description="Enable transport-level connect retries")

    # Upload
    upload_force: bool = Field(True, description="Overwrite packages already uploaded")
    upload_retry_times: int = Field(3, ge=0, description="Upload retries after the first attempt")
    upload_retry_delay: float = Field(30.0, ge=0, description="Delay between upload attempts in seconds")

    # Install
    install_recursive: bool = Field(True, description="Install subpackages too")
    install_retry_times: int = Field(1, ge=0, description="Install retries after the first attempt")
    install_retry_delay: float = Field(30.0, ge=0, description="Delay between install attempts in seconds")

    # Package
    package_snapshots: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["**/*-SNAPSHOT*.zip"],
        description="Wildcards of package files always uploaded with force",
    )
    package_remote_path: str = Field("", description="Fixed remote package path, skips lookup")

    # Observability
    log_level: str = Field("INFO")
    log_format: str = Field("console")

    @field_validator("package_snapshots", mode="before")
    @classmethod
    def parse_package_snapshots(cls, v: Union[str, List[str], None]) -> List[str]:
        """Parse comma-separated snapshot wildcards."""
        if v is None:
            return []
        if isinstance(v, str):
            return [pattern.strip() for pattern in v.split(",") if pattern.strip()]
        return v

    @property
    def upload_retry(self) -> RetryPolicy:
        return RetryPolicy(times=self.upload_retry_times, delay=self.upload_retry_delay)

    @property
    def install_retry(self) -> RetryPolicy:
        return RetryPolicy(times=self.install_retry_times, delay=self.install_retry_delay)

    def find_instance(self, name: str) -> Optional[Instance]:
        return next((i for i in self.instances if i.name == name), None)


def load_instances_file(path: Union[str, Path]) -> List[Instance]:
    """Load instance definitions from a YAML file.

    Accepts either a top-level list or a mapping with an ``instances`` key.
    Entries may be given as a mapping keyed by instance name.

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Instances file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in instances file {path}: {e}") from e

    if isinstance(data, dict) and "instances" in data:
        data = data["instances"]
    if isinstance(data, dict):
        data = [{"name": name, **(entry or {})} for name, entry in data.items()]
    if not isinstance(data, list):
        raise ConfigurationError(f"Instances file {path} must define a list of instances")

    try:
        return [Instance(**entry) for entry in data]
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid instance definition in {path}: {e}") from e
