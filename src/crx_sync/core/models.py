"""Core data models for crx-sync."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from crx_sync.deploy.models import PackageListing


class Instance(BaseModel):
    """Remote instance the client synchronizes with.

    ``packages`` caches the last package listing fetched from the instance.
    It is refreshed in place by the client acting on behalf of this instance
    only; no other instance reads or writes it.
    """

    name: str = Field(..., description="Instance name, e.g. local-author")
    url: str = Field(..., description="Base HTTP URL")
    user: str = Field("admin", description="Basic auth user")
    password: str = Field("admin", description="Basic auth password", repr=False)
    packages: Optional[PackageListing] = Field(None, exclude=True, repr=False)

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Instance URL must be HTTP(S): {v}")
        return v.rstrip("/")

    def __str__(self) -> str:
        return f"{self.name} ({self.url})"
