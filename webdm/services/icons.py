"""
Resolve icons of installed packages to paths served by the web UI.
"""
from __future__ import annotations

import logging
import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from webdm.domain.errors import IconResolutionError

logger = logging.getLogger(__name__)

ICONS_URL_PREFIX = "/icons"


class IconResolver(ABC):
    @abstractmethod
    def resolve(self, name: str, icon: str) -> str:
        """Return a served path for the package icon or raise IconResolutionError."""
        pass


class LocalIconResolver(IconResolver):
    """
    Publish icons of installed packages into a directory served under /icons.

    The icon reference in package metadata is relative to the package's
    ``current`` directory. The file is symlinked (copied where links are not
    available) into ``icons_dir`` as ``<name>_<basename>``.
    """

    def __init__(self, apps_dir: Path, icons_dir: Path):
        self.apps_dir = apps_dir
        self.icons_dir = icons_dir

    def _package_dir(self, name: str) -> Optional[Path]:
        if not self.apps_dir.is_dir():
            return None
        for pkg_dir in self.apps_dir.iterdir():
            if pkg_dir.name == name or pkg_dir.name.startswith(f"{name}."):
                current = pkg_dir / "current"
                if current.is_dir():
                    return current
        return None

    def _icon_source(self, name: str, icon: str) -> Path:
        pkg_dir = self._package_dir(name)
        if pkg_dir is None:
            raise IconResolutionError(f"no installed directory for {name}")

        base = pkg_dir.resolve()
        source = (pkg_dir / icon).resolve()
        if base not in source.parents:
            raise IconResolutionError(f"icon for {name} points outside the package: {icon}")
        if not source.is_file():
            raise IconResolutionError(f"icon for {name} not found: {source}")
        return source

    def resolve(self, name: str, icon: str) -> str:
        if not icon:
            raise IconResolutionError(f"{name} does not declare an icon")

        if icon.startswith(("http://", "https://")):
            return icon

        try:
            source = self._icon_source(name, icon)
        except (OSError, ValueError) as e:
            raise IconResolutionError(f"cannot locate icon for {name}: {e}") from e

        target_name = f"{name}_{source.name}"
        target = self.icons_dir / target_name

        try:
            self.icons_dir.mkdir(parents=True, exist_ok=True)
            if target.is_symlink() or target.exists():
                if target.resolve() != source:
                    target.unlink()
            if not target.exists():
                try:
                    os.symlink(source, target)
                except OSError:
                    shutil.copyfile(source, target)
        except OSError as e:
            raise IconResolutionError(f"cannot publish icon for {name}: {e}") from e

        logger.debug(f"Published icon for {name} at {target}")
        return f"{ICONS_URL_PREFIX}/{target_name}"
