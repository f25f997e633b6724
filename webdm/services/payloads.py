"""
Build client-facing package payloads.

A payload combines what the package-management service knows about a
package with the state of any install currently tracked for it. Building a
payload never fails: problems with individual fields (icons, UI ports) fall
back to empty values.
"""
from __future__ import annotations

import logging
from typing import Sequence, Tuple

from webdm.domain.errors import IconResolutionError
from webdm.domain.models import (
    PackageEntity,
    PackagePayload,
    PackageStatus,
    PackageType,
    Service,
)
from webdm.services.icons import IconResolver
from webdm.services.progress import ProgressRegistry

logger = logging.getLogger(__name__)

UI_PORT_NAME = "ui"
_MAX_UINT64 = 2 ** 64 - 1


def has_port_information(entity: PackageEntity) -> bool:
    return entity.type in (PackageType.APP, PackageType.FRAMEWORK)


def _parse_uint(value: str) -> int:
    """
    Parse an unsigned integer, honoring 0x/0o/0b prefixes and a leading 0
    for octal.
    """
    if not value or value != value.strip() or value[0] in "+-":
        raise ValueError(f"invalid unsigned integer: {value!r}")

    if len(value) > 1 and value[0] == "0" and value[1].isdigit():
        number = int(value[1:], 8)
    else:
        number = int(value, 0)

    if number > _MAX_UINT64:
        raise ValueError(f"unsigned integer out of range: {value!r}")
    return number


def ui_access(services: Sequence[Service]) -> Tuple[int, str]:
    """
    Find the port of the first service exposing an external "ui" port.

    Returns (0, "") when there is no usable UI port. The URI is always
    empty: the second half of the port spec is the protocol, not a URI.
    """
    for service in services:
        if service.ports is None:
            continue

        ui = service.ports.external.get(UI_PORT_NAME)
        if ui is None:
            continue

        parts = ui.port.split("/")
        if len(parts) != 2:
            continue

        try:
            port = _parse_uint(parts[0])
        except ValueError:
            return 0, ""

        return port, ""

    return 0, ""


class PayloadBuilder:
    def __init__(self, registry: ProgressRegistry, icon_resolver: IconResolver):
        self.registry = registry
        self.icon_resolver = icon_resolver

    def _installed_icon(self, entity: PackageEntity) -> str:
        try:
            return self.icon_resolver.resolve(entity.name, entity.icon)
        except IconResolutionError as e:
            logger.warning(f"Icon path for installed package {entity.name} cannot be set: {e}")
            return ""

    def build(self, entity: PackageEntity) -> PackagePayload:
        payload = PackagePayload(
            name=entity.name,
            origin=entity.origin,
            version=entity.version,
            vendor=entity.vendor,
            description=entity.description,
            type=entity.type,
        )

        if has_port_information(entity) and entity.services is not None:
            port, uri = ui_access(entity.services)
            payload.ui_port = port or None
            payload.ui_uri = uri or None

        if entity.installed:
            payload.icon = self._installed_icon(entity)
            payload.installed_size = entity.installed_size
        else:
            payload.icon = entity.icon
            payload.download_size = entity.download_size

        payload.status = self._status(entity, payload)
        return payload

    def _status(self, entity: PackageEntity, payload: PackagePayload) -> PackageStatus:
        tracker = self.registry.get(entity.name)

        if tracker is not None and not tracker.done:
            payload.progress = tracker.progress()
            return PackageStatus.INSTALLING

        if tracker is not None:
            # Only the query that actually takes the tracker out of the
            # registry reports the terminal state.
            if self.registry.remove(entity.name, tracker) is tracker:
                error = tracker.error
                if error is not None:
                    payload.message = str(error) or type(error).__name__
                    payload.is_error = True
                return tracker.status

        if entity.installed:
            return PackageStatus.INSTALLED
        return PackageStatus.UNINSTALLED
