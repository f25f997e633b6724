import asyncio

import pytest

from conftest import FakePackageManager, installed_entity, remote_entity
from webdm.domain.errors import CatalogQueryError, InstallError, InstallInProgressError, PackageNotFoundError
from webdm.domain.models import ListFilter, PackageStatus, PackageType
from webdm.services.packages import PackageHandler


# ---------------------------------------------------------------------------
# Single package lookup
# ---------------------------------------------------------------------------


def test_package_payload_prefers_installed(handler):
    payload = handler.package_payload("foo")

    assert payload.status == PackageStatus.INSTALLED
    assert payload.installed_size == 10
    assert payload.version == "1.0"


def test_package_payload_falls_back_to_store(handler):
    payload = handler.package_payload("bar")

    assert payload.status == PackageStatus.UNINSTALLED
    assert payload.download_size == 20


def test_package_payload_not_found(handler):
    with pytest.raises(PackageNotFoundError):
        handler.package_payload("missing")


def test_package_payload_store_failure_is_not_found(registry, icon_resolver):
    manager = FakePackageManager(remote=[remote_entity("bar")], fail_store=True)
    handler = PackageHandler(manager, registry, icon_resolver)

    with pytest.raises(PackageNotFoundError):
        handler.package_payload("bar")


# ---------------------------------------------------------------------------
# Catalog listing
# ---------------------------------------------------------------------------


def test_all_packages_merges_catalogs(handler):
    packages = handler.all_packages(ListFilter())

    assert [p.name for p in packages] == ["bar", "foo"]
    bar, foo = packages
    assert bar.status == PackageStatus.UNINSTALLED
    assert bar.download_size == 20
    assert foo.status == PackageStatus.INSTALLED
    assert foo.installed_size == 10
    assert foo.download_size is None


def test_all_packages_installed_only(handler):
    packages = handler.all_packages(ListFilter(installed_only=True))
    assert [p.name for p in packages] == ["foo"]


def test_all_packages_defaults_to_no_filter(handler):
    assert [p.name for p in handler.all_packages()] == ["bar", "foo"]


def test_all_packages_type_filter(registry, icon_resolver):
    manager = FakePackageManager(
        installed=[installed_entity("fw", type=PackageType.FRAMEWORK)],
        remote=[remote_entity("app"), remote_entity("oem", type=PackageType.OEM)],
    )
    handler = PackageHandler(manager, registry, icon_resolver)

    packages = handler.all_packages(ListFilter(types=["framework", "oem"]))
    assert [p.name for p in packages] == ["fw", "oem"]


@pytest.mark.parametrize("fail_installed, fail_store", [(True, False), (False, True)])
def test_all_packages_query_failure_propagates(registry, icon_resolver, fail_installed, fail_store):
    manager = FakePackageManager(
        installed=[installed_entity("foo")],
        remote=[remote_entity("bar")],
        fail_installed=fail_installed,
        fail_store=fail_store,
    )
    handler = PackageHandler(manager, registry, icon_resolver)

    with pytest.raises(CatalogQueryError):
        handler.all_packages(ListFilter())


# ---------------------------------------------------------------------------
# Install dispatch
# ---------------------------------------------------------------------------


def test_install_runs_in_background_and_completes(handler, package_manager, registry):
    async def scenario():
        task = handler.install_package("bar")
        await asyncio.sleep(0)

        in_flight = handler.package_payload("bar")
        assert in_flight.status == PackageStatus.INSTALLING
        assert in_flight.progress == pytest.approx(0.25)
        assert registry.get("bar") is not None
        assert handler.pending_installs == 1

        package_manager.release("bar")
        await task

        done = handler.package_payload("bar")
        assert done.status == PackageStatus.INSTALLED
        assert registry.get("bar") is None

        after = handler.package_payload("bar")
        assert after.status == PackageStatus.UNINSTALLED
        assert handler.pending_installs == 0

    asyncio.run(scenario())
    assert package_manager.install_calls == ["bar"]


def test_install_failure_is_reported_through_tracker(handler, package_manager, registry):
    package_manager.install_errors["bar"] = InstallError("checksum mismatch")

    async def scenario():
        task = handler.install_package("bar")
        package_manager.release("bar")
        await task

        tracker = registry.get("bar")
        assert tracker is not None
        assert tracker.done

        payload = handler.package_payload("bar")
        assert payload.status == PackageStatus.ERROR
        assert payload.message == "checksum mismatch"
        assert payload.is_error

        assert handler.package_payload("bar").status == PackageStatus.UNINSTALLED

    asyncio.run(scenario())


def test_install_already_in_progress(handler, package_manager, registry):
    async def scenario():
        task = handler.install_package("bar")
        await asyncio.sleep(0)

        with pytest.raises(InstallInProgressError):
            handler.install_package("bar")
        assert handler.pending_installs == 1

        package_manager.release("bar")
        await task

    asyncio.run(scenario())
    assert package_manager.install_calls == ["bar"]


def test_install_allowed_again_after_completion_is_consumed(handler, package_manager, registry):
    async def scenario():
        package_manager.release("bar")
        await handler.install_package("bar")

        # Completed but not yet observed: still blocks a new install
        with pytest.raises(InstallInProgressError):
            handler.install_package("bar")

        handler.package_payload("bar")
        await handler.install_package("bar")

    asyncio.run(scenario())
    assert package_manager.install_calls == ["bar", "bar"]


def test_install_requires_running_loop(handler, registry):
    with pytest.raises(RuntimeError):
        handler.install_package("bar")
    assert registry.get("bar") is None


def test_cancelled_install_still_completes_tracker(handler, package_manager, registry):
    async def scenario():
        task = handler.install_package("bar")
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        tracker = registry.get("bar")
        assert tracker is not None
        assert tracker.done

        payload = handler.package_payload("bar")
        assert payload.status == PackageStatus.ERROR
        assert payload.message == "CancelledError"
        assert registry.get("bar") is None

    asyncio.run(scenario())
