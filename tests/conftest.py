"""Shared fixtures and fakes for the webdm tests.

The data directory is pointed at a throwaway location before anything from
``webdm`` is imported, so loading the app never touches the project tree.
"""

import asyncio
import os
import tempfile

os.environ.setdefault("WEBDM_DATA_DIR", tempfile.mkdtemp(prefix="webdm-tests-"))

from typing import Dict, List, Optional

import pytest

from webdm.domain.errors import CatalogQueryError, IconResolutionError
from webdm.domain.models import PackageEntity
from webdm.services.icons import IconResolver
from webdm.services.packages import PackageHandler
from webdm.services.progress import InMemoryProgressRegistry, InstallProgress
from webdm.storage.package_manager import PackageManager


class FakeIconResolver(IconResolver):
    """Resolves every icon to /icons/<name>, except for names listed as broken."""

    def __init__(self, broken: Optional[List[str]] = None):
        self.broken = set(broken or [])
        self.calls: List[tuple] = []

    def resolve(self, name: str, icon: str) -> str:
        self.calls.append((name, icon))
        if name in self.broken:
            raise IconResolutionError(f"no icon for {name}")
        return f"/icons/{name}"


class FakePackageManager(PackageManager):
    """In-memory package manager.

    Installs block until ``release`` is called for the package, so tests can
    observe them while in flight.
    """

    def __init__(
        self,
        installed: Optional[List[PackageEntity]] = None,
        remote: Optional[List[PackageEntity]] = None,
        fail_installed: bool = False,
        fail_store: bool = False,
        blocking: bool = True,
    ):
        self.installed = list(installed or [])
        self.remote = list(remote or [])
        self.fail_installed = fail_installed
        self.fail_store = fail_store
        self.blocking = blocking
        self.install_calls: List[str] = []
        self.install_errors: Dict[str, Exception] = {}
        self._gates: Dict[str, asyncio.Event] = {}

    def get_installed(self, name: str) -> Optional[PackageEntity]:
        for entity in self.installed:
            if entity.name == name:
                return entity
        return None

    def list_installed(self) -> List[PackageEntity]:
        if self.fail_installed:
            raise CatalogQueryError("installed query failed")
        return list(self.installed)

    def search_store(self, pattern: str) -> List[PackageEntity]:
        if self.fail_store:
            raise CatalogQueryError("store unreachable")
        return list(self.remote)

    def store_details(self, name: str) -> List[PackageEntity]:
        if self.fail_store:
            raise CatalogQueryError("store unreachable")
        return [e for e in self.remote if e.name == name]

    def _gate(self, name: str) -> asyncio.Event:
        if name not in self._gates:
            self._gates[name] = asyncio.Event()
        return self._gates[name]

    def release(self, name: str) -> None:
        self._gate(name).set()

    async def install(self, name: str, progress: InstallProgress) -> None:
        self.install_calls.append(name)
        progress.start(name, 100)
        progress.set(25)
        if self.blocking:
            await self._gate(name).wait()
        if name in self.install_errors:
            raise self.install_errors[name]
        progress.set(100)


def installed_entity(name: str, **kwargs) -> PackageEntity:
    kwargs.setdefault("version", "1.0")
    kwargs.setdefault("icon", "meta/icon.png")
    kwargs.setdefault("installed_size", 10)
    return PackageEntity(name=name, installed=True, **kwargs)


def remote_entity(name: str, **kwargs) -> PackageEntity:
    kwargs.setdefault("version", "2.0")
    kwargs.setdefault("icon", f"https://store.example/{name}.png")
    kwargs.setdefault("download_size", 20)
    return PackageEntity(name=name, installed=False, **kwargs)


@pytest.fixture
def registry():
    return InMemoryProgressRegistry()


@pytest.fixture
def icon_resolver():
    return FakeIconResolver()


@pytest.fixture
def package_manager():
    return FakePackageManager(
        installed=[installed_entity("foo")],
        remote=[remote_entity("foo"), remote_entity("bar")],
    )


@pytest.fixture
def handler(package_manager, registry, icon_resolver):
    return PackageHandler(package_manager, registry, icon_resolver)
