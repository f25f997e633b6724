from abc import ABC, abstractmethod
from typing import List, Optional

from webdm.domain.models import PackageEntity
from webdm.services.progress import InstallProgress


class PackageManager(ABC):
    """
    Abstract base class for the package-management service webdm drives.
    """

    @abstractmethod
    def get_installed(self, name: str) -> Optional[PackageEntity]:
        """Return the active installed package with this name, if any."""
        pass

    @abstractmethod
    def list_installed(self) -> List[PackageEntity]:
        """Return every installed package. Raises CatalogQueryError on failure."""
        pass

    @abstractmethod
    def search_store(self, pattern: str) -> List[PackageEntity]:
        """Search the remote store. Raises CatalogQueryError on failure."""
        pass

    @abstractmethod
    def store_details(self, name: str) -> List[PackageEntity]:
        """
        Look up a single package in the remote store.
        Returns an empty list when the store does not know the package.
        """
        pass

    @abstractmethod
    async def install(self, name: str, progress: InstallProgress) -> None:
        """
        Install a package, reporting progress into ``progress``.
        Raises on failure; the caller delivers the result to the tracker.
        """
        pass
