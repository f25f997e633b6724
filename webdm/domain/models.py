"""
Pydantic models for webdm.

This module defines the data models used throughout the application:
- Package entities as reported by the package-management service
- Service/port descriptions used to find a package's web UI
- The client-facing package payload and list filter
- API response models
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PackageType(str, Enum):
    APP = "app"
    FRAMEWORK = "framework"
    OEM = "oem"
    CORE = "core"
    KERNEL = "kernel"
    GADGET = "gadget"


class PackageStatus(str, Enum):
    UNINSTALLED = "uninstalled"
    INSTALLED = "installed"
    INSTALLING = "installing"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Package entity models
# ---------------------------------------------------------------------------


class ServicePort(BaseModel):
    """A single port exposed by a service, e.g. ``8080/tcp``."""

    port: str = Field(description="Port specification in the form '<port>/<proto>'.")
    negotiable: bool = False


class ServicePorts(BaseModel):
    internal: Dict[str, ServicePort] = Field(default_factory=dict)
    external: Dict[str, ServicePort] = Field(
        default_factory=dict,
        description="Externally reachable ports keyed by logical name (e.g. 'ui').",
    )


class Service(BaseModel):
    name: str
    description: str = ""
    ports: Optional[ServicePorts] = None


class PackageEntity(BaseModel):
    """
    A package as reported by the package-management service.

    Installed packages carry ``installed_size``; store packages carry
    ``download_size``. ``services`` is None when the source has no notion
    of services at all (store entries), which is different from an
    installed package that simply declares none.
    """

    name: str
    origin: str = ""
    version: str = ""
    vendor: str = ""
    description: str = ""
    icon: str = ""
    type: PackageType = PackageType.APP
    installed: bool = False
    installed_size: int = 0
    download_size: int = 0
    services: Optional[List[Service]] = None


# ---------------------------------------------------------------------------
# Client-facing models
# ---------------------------------------------------------------------------


class PackagePayload(BaseModel):
    """
    Presentation-ready projection of a package plus its transient install status.

    Fields that do not apply to the package's current state are left as None
    and omitted when serialized.
    """

    name: str
    origin: str = ""
    version: str = ""
    vendor: str = ""
    description: str = ""
    icon: str = ""
    status: PackageStatus = PackageStatus.UNINSTALLED
    message: Optional[str] = None
    is_error: bool = Field(default=False, exclude=True)
    progress: Optional[float] = None
    installed_size: Optional[int] = None
    download_size: Optional[int] = None
    type: Optional[PackageType] = None
    ui_port: Optional[int] = None
    ui_uri: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        """Serialize for the wire, dropping every unset field."""
        return self.model_dump(mode="json", exclude_none=True)


class ListFilter(BaseModel):
    types: List[str] = Field(
        default_factory=list,
        description="Only return packages of these types. Empty list means all.",
    )
    installed_only: bool = Field(
        default=False,
        description="If True, only return packages that are installed.",
    )


class InstallResponse(BaseModel):
    package: str
    message: str
