"""
Package manager adapter backed by the on-disk snappy layout, the remote
store API and an external install command.
"""
from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
import httpx
import yaml

from webdm.domain.errors import CatalogQueryError, InstallError, PackageNotFoundError
from webdm.domain.models import PackageEntity, PackageType, Service
from webdm.services.progress import InstallProgress
from webdm.storage.package_manager import PackageManager

logger = logging.getLogger(__name__)

PACKAGE_YAML = Path("meta") / "package.yaml"
README_MD = Path("meta") / "readme.md"
DOWNLOAD_ATTEMPTS = 3

# Store "content" values mapped to package types
_STORE_CONTENT_TYPES: Dict[str, PackageType] = {
    "application": PackageType.APP,
    "app": PackageType.APP,
    "framework": PackageType.FRAMEWORK,
    "oem": PackageType.OEM,
    "core": PackageType.CORE,
    "kernel": PackageType.KERNEL,
    "gadget": PackageType.GADGET,
}


def _package_type(value: Any) -> PackageType:
    return _STORE_CONTENT_TYPES.get(str(value or "").lower(), PackageType.APP)


def _directory_size(path: Path) -> int:
    total = 0
    for root, _dirs, files in os.walk(path):
        for f in files:
            try:
                total += os.lstat(os.path.join(root, f)).st_size
            except OSError:
                continue
    return total


def _readme_description(current: Path) -> str:
    readme = current / README_MD
    if not readme.is_file():
        return ""
    paragraphs = readme.read_text(encoding="utf-8").split("\n\n")
    # First paragraph is the title, second one the description
    if len(paragraphs) > 1:
        return paragraphs[1].strip()
    return ""


class SnappyPackageManager(PackageManager):
    def __init__(
        self,
        apps_dir: Path,
        downloads_dir: Path,
        store_url: str,
        install_command: List[str],
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.apps_dir = apps_dir
        self.downloads_dir = downloads_dir
        self.store_url = store_url.rstrip("/")
        self.install_command = list(install_command)
        self.timeout = timeout
        # Only used by tests to plug in httpx.MockTransport
        self._transport = transport

    # ========================================================================
    # Installed packages
    # ========================================================================

    def _split_dir_name(self, dir_name: str) -> tuple:
        name, _, origin = dir_name.partition(".")
        return name, origin

    def _read_installed(self, pkg_dir: Path) -> Optional[PackageEntity]:
        """Read one installed package; returns None if its metadata is unusable."""
        current = pkg_dir / "current"
        meta_path = current / PACKAGE_YAML
        if not meta_path.is_file():
            return None

        dir_name, dir_origin = self._split_dir_name(pkg_dir.name)
        try:
            meta = yaml.safe_load(meta_path.read_text(encoding="utf-8")) or {}
            if not isinstance(meta, dict):
                raise ValueError("package.yaml is not a mapping")

            services = [Service(**s) for s in (meta.get("services") or [])]
            return PackageEntity(
                name=str(meta.get("name") or dir_name),
                origin=str(meta.get("origin") or dir_origin),
                version=str(meta.get("version") or ""),
                vendor=str(meta.get("vendor") or ""),
                description=str(meta.get("description") or _readme_description(current)),
                icon=str(meta.get("icon") or ""),
                type=_package_type(meta.get("type")),
                installed=True,
                installed_size=_directory_size(current.resolve()),
                services=services,
            )
        except Exception as e:
            logger.error(f"Skipping installed package in {pkg_dir}: {e}")
            return None

    def _package_dirs(self) -> List[Path]:
        if not self.apps_dir.exists():
            return []
        try:
            return sorted(p for p in self.apps_dir.iterdir() if p.is_dir())
        except OSError as e:
            raise CatalogQueryError(f"cannot read installed packages in {self.apps_dir}: {e}") from e

    def get_installed(self, name: str) -> Optional[PackageEntity]:
        try:
            dirs = self._package_dirs()
        except CatalogQueryError as e:
            logger.error(str(e))
            return None

        for pkg_dir in dirs:
            if self._split_dir_name(pkg_dir.name)[0] != name:
                continue
            entity = self._read_installed(pkg_dir)
            if entity is not None:
                return entity
        return None

    def list_installed(self) -> List[PackageEntity]:
        installed = []
        for pkg_dir in self._package_dirs():
            entity = self._read_installed(pkg_dir)
            if entity is not None:
                installed.append(entity)
        return installed

    # ========================================================================
    # Remote store
    # ========================================================================

    def _client(self) -> httpx.Client:
        return httpx.Client(follow_redirects=True, timeout=self.timeout, transport=self._transport)

    def _async_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(follow_redirects=True, timeout=self.timeout, transport=self._transport)

    @staticmethod
    def _entity_from_store(doc: Dict[str, Any]) -> PackageEntity:
        return PackageEntity(
            name=str(doc.get("name") or ""),
            origin=str(doc.get("origin") or doc.get("namespace") or ""),
            version=str(doc.get("version") or ""),
            vendor=str(doc.get("publisher") or doc.get("developer_name") or ""),
            description=str(doc.get("description") or doc.get("title") or ""),
            icon=str(doc.get("icon_url") or ""),
            type=_package_type(doc.get("content")),
            installed=False,
            download_size=int(doc.get("binary_filesize") or 0),
        )

    def search_store(self, pattern: str) -> List[PackageEntity]:
        url = f"{self.store_url}/search"
        logger.debug(f"Searching store: {url} q={pattern}")
        try:
            with self._client() as client:
                response = client.get(url, params={"q": pattern})
                response.raise_for_status()
                data = response.json()

            if not isinstance(data, dict):
                raise TypeError(f"expected a JSON object, got {type(data).__name__}")
            docs = (data.get("_embedded") or {}).get("clickindex:package") or []
            if not isinstance(docs, list) or not all(isinstance(doc, dict) for doc in docs):
                raise TypeError("expected a list of package objects")

            return [self._entity_from_store(doc) for doc in docs if doc.get("name")]
        except (httpx.HTTPError, TypeError, ValueError, AttributeError) as e:
            raise CatalogQueryError(f"store search failed: {e}") from e

    def _details_url(self, name: str) -> str:
        return f"{self.store_url}/package/{name}"

    def store_details(self, name: str) -> List[PackageEntity]:
        try:
            with self._client() as client:
                response = client.get(self._details_url(name))
                if response.status_code == 404:
                    return []
                response.raise_for_status()
                doc = response.json()

            if not doc:
                return []
            if not isinstance(doc, dict):
                raise TypeError(f"expected a JSON object, got {type(doc).__name__}")
            if not doc.get("name"):
                return []

            return [self._entity_from_store(doc)]
        except (httpx.HTTPError, TypeError, ValueError, AttributeError) as e:
            raise CatalogQueryError(f"store details for {name} failed: {e}") from e

    # ========================================================================
    # Install
    # ========================================================================

    async def _download(self, client: httpx.AsyncClient, url: str, target: Path, progress: InstallProgress) -> None:
        tmp_path = target.with_name(f"{target.name}.tmp")

        # Basic retry loop for flaky connections
        for attempt in range(1, DOWNLOAD_ATTEMPTS + 1):
            try:
                if tmp_path.exists():
                    tmp_path.unlink()
                async with client.stream("GET", url) as response:
                    response.raise_for_status()

                    total_size = int(response.headers.get("content-length", 0))
                    progress.start(target.name, total_size)
                    downloaded = 0

                    async with aiofiles.open(tmp_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            await f.write(chunk)
                            downloaded += len(chunk)
                            progress.set(downloaded)
                    progress.finished()
                break
            except httpx.HTTPError as e:
                tmp_path.unlink(missing_ok=True)
                if attempt < DOWNLOAD_ATTEMPTS:
                    logger.warning(f"Download failed (attempt {attempt}/{DOWNLOAD_ATTEMPTS}): {e}. Retrying...")
                    await asyncio.sleep(1.0 * attempt)
                else:
                    raise InstallError(f"download of {url} failed: {e}") from e

        tmp_path.replace(target)

    async def _run_install_command(self, name: str, path: Path) -> None:
        cmd = [*self.install_command, str(path)]
        logger.info(f"Installing {name}: {' '.join(cmd)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise InstallError(f"cannot run install command for {name}: {e}") from e

        _stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise InstallError(f"install of {name} failed with exit code {proc.returncode}: {detail}")

    async def install(self, name: str, progress: InstallProgress) -> None:
        async with self._async_client() as client:
            response = await client.get(self._details_url(name))
            if response.status_code == 404:
                raise PackageNotFoundError(name)
            response.raise_for_status()
            doc = response.json()

            download_url = doc.get("download_url") if isinstance(doc, dict) else None
            if not download_url:
                raise InstallError(f"store has no download for {name}")

            self.downloads_dir.mkdir(parents=True, exist_ok=True)
            target = self.downloads_dir / f"{name}.snap"
            logger.info(f"Downloading {name} from {download_url}")
            await self._download(client, download_url, target, progress)

        try:
            await self._run_install_command(name, target)
        finally:
            target.unlink(missing_ok=True)

        logger.info(f"Installed {name}")
