from pathlib import Path
from typing import Optional

from webdm.core.config import WebdmConfig, get_data_dir, load_config
from webdm.services.icons import IconResolver, LocalIconResolver
from webdm.services.packages import PackageHandler
from webdm.services.progress import InMemoryProgressRegistry, ProgressRegistry
from webdm.storage.package_manager import PackageManager
from webdm.storage.snappy_manager import SnappyPackageManager

_config: Optional[WebdmConfig] = None
_progress_registry: Optional[ProgressRegistry] = None
_package_manager: Optional[PackageManager] = None
_icon_resolver: Optional[IconResolver] = None
_package_handler: Optional[PackageHandler] = None


def get_config() -> WebdmConfig:
    global _config
    if _config is None:
        _config = load_config(get_data_dir())
    return _config


def get_icons_dir() -> Path:
    config = get_config()
    return config.resolve_dir(config.icons_dir, get_data_dir())


def get_progress_registry() -> ProgressRegistry:
    global _progress_registry
    if _progress_registry is None:
        _progress_registry = InMemoryProgressRegistry()
    return _progress_registry


def get_package_manager() -> PackageManager:
    global _package_manager
    if _package_manager is None:
        config = get_config()
        data_dir = get_data_dir()
        _package_manager = SnappyPackageManager(
            apps_dir=config.resolve_dir(config.apps_dir, data_dir),
            downloads_dir=config.resolve_dir(config.downloads_dir, data_dir),
            store_url=config.store_url,
            install_command=config.install_command,
            timeout=config.http_timeout_seconds,
        )
    return _package_manager


def get_icon_resolver() -> IconResolver:
    global _icon_resolver
    if _icon_resolver is None:
        config = get_config()
        _icon_resolver = LocalIconResolver(
            apps_dir=config.resolve_dir(config.apps_dir, get_data_dir()),
            icons_dir=get_icons_dir(),
        )
    return _icon_resolver


def get_package_handler() -> PackageHandler:
    global _package_handler
    if _package_handler is None:
        _package_handler = PackageHandler(
            get_package_manager(),
            get_progress_registry(),
            get_icon_resolver(),
        )
    return _package_handler
