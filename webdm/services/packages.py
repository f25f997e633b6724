"""
Package catalog queries and install dispatch.

``PackageHandler`` answers the three inbound operations of the service:
looking up one package, listing the merged catalog and starting an install.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Set

from webdm.domain.catalog import filter_by_type, merge_packages
from webdm.domain.errors import CatalogQueryError, PackageNotFoundError
from webdm.domain.models import ListFilter, PackagePayload
from webdm.services.icons import IconResolver
from webdm.services.payloads import PayloadBuilder
from webdm.services.progress import InstallProgress, ProgressRegistry
from webdm.storage.package_manager import PackageManager

logger = logging.getLogger(__name__)

STORE_SEARCH_ALL = "*"


class PackageHandler:
    def __init__(
        self,
        package_manager: PackageManager,
        registry: ProgressRegistry,
        icon_resolver: IconResolver,
    ):
        self.package_manager = package_manager
        self.registry = registry
        self.payloads = PayloadBuilder(registry, icon_resolver)
        # Strong references to running installs so they are not garbage collected
        self._install_tasks: Set[asyncio.Task] = set()

    def package_payload(self, name: str) -> PackagePayload:
        """
        Return the payload for an installed package, falling back to the store.

        Raises PackageNotFoundError if neither knows the package.
        """
        entity = self.package_manager.get_installed(name)
        if entity is not None:
            return self.payloads.build(entity)

        try:
            found = self.package_manager.store_details(name)
        except CatalogQueryError as e:
            logger.warning(f"Store lookup for {name} failed: {e}")
            found = []

        if found:
            return self.payloads.build(found[0])

        raise PackageNotFoundError(name)

    def all_packages(self, list_filter: Optional[ListFilter] = None) -> List[PackagePayload]:
        """
        Return the merged catalog of installed and store packages.

        Raises CatalogQueryError if either source cannot be queried; no
        partial list is returned.
        """
        list_filter = list_filter or ListFilter()

        installed = [self.payloads.build(e) for e in self.package_manager.list_installed()]
        remote = [self.payloads.build(e) for e in self.package_manager.search_store(STORE_SEARCH_ALL)]

        merged = merge_packages(installed, remote, list_filter.installed_only)
        return filter_by_type(merged, list_filter)

    async def _do_install(self, progress: InstallProgress, name: str) -> None:
        error: Optional[BaseException] = None
        try:
            await self.package_manager.install(name, progress)
        except Exception as e:
            logger.error(f"Install of {name} failed: {e}", exc_info=True)
            error = e
        except BaseException as e:
            # Cancelled or interrupted: still deliver a result to status readers
            logger.warning(f"Install of {name} interrupted: {type(e).__name__}")
            error = e
            raise
        finally:
            progress.finish(error)

    def install_package(self, name: str) -> asyncio.Task:
        """
        Start installing ``name`` in the background and return immediately.

        Must be called from a running event loop. Raises
        InstallInProgressError if an install for the package is still
        tracked. There is no cancel operation; if the task is cancelled anyway,
        for example at shutdown, the tracker still completes with an error.
        """
        loop = asyncio.get_running_loop()
        progress = self.registry.add(name)

        task = loop.create_task(self._do_install(progress, name))
        self._install_tasks.add(task)
        task.add_done_callback(self._install_tasks.discard)

        logger.info(f"Install of {name} dispatched")
        return task

    @property
    def pending_installs(self) -> int:
        return len(self._install_tasks)
