from __future__ import annotations

from typing import Dict, List, Sequence

from webdm.domain.models import ListFilter, PackagePayload


def merge_packages(
    installed: Sequence[PackagePayload],
    remote: Sequence[PackagePayload],
    installed_only: bool,
) -> List[PackagePayload]:
    """
    Combine installed and store payloads into one list, unique by name and
    sorted by name.

    Installed entries always win over a store entry with the same name.
    Store-only entries are included unless ``installed_only`` is set.
    """
    merged: Dict[str, PackagePayload] = {pkg.name: pkg for pkg in installed}
    # Later store entries replace earlier ones with the same name
    remote_by_name: Dict[str, PackagePayload] = {pkg.name: pkg for pkg in remote}

    for pkg in remote_by_name.values():
        if pkg.name in merged:
            # TODO: carry over cost and pricing details from the store entry
            continue
        if not installed_only:
            merged[pkg.name] = pkg

    return sorted(merged.values(), key=lambda p: p.name)


def filter_by_type(packages: Sequence[PackagePayload], list_filter: ListFilter) -> List[PackagePayload]:
    """Keep only packages whose type is listed in the filter (empty means all)."""
    if not list_filter.types:
        return list(packages)

    wanted = set(list_filter.types)
    return [p for p in packages if p.type is not None and p.type.value in wanted]
