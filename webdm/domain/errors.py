"""
Exceptions raised by the package catalog and install machinery.
"""
from __future__ import annotations


class WebdmError(Exception):
    """Base class for all webdm errors."""


class PackageNotFoundError(WebdmError):
    """The package is neither installed nor known to the store."""

    def __init__(self, name: str):
        super().__init__(f"package not found: {name}")
        self.name = name


class InstallInProgressError(WebdmError):
    """An install for this package is already being tracked."""

    def __init__(self, name: str):
        super().__init__(f"install already in progress: {name}")
        self.name = name


class CatalogQueryError(WebdmError):
    """Querying the installed set or the store failed."""


class IconResolutionError(WebdmError):
    """An icon path for an installed package could not be resolved."""


class InstallError(WebdmError):
    """The package-management service failed to install a package."""
