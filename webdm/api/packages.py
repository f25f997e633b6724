from __future__ import annotations

from typing import List
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from webdm.core.dependencies import get_package_handler
from webdm.domain.errors import CatalogQueryError, InstallInProgressError, PackageNotFoundError
from webdm.domain.models import InstallResponse, ListFilter
from webdm.services.packages import PackageHandler

logger = logging.getLogger(__name__)
router = APIRouter()

# ---------------------------------------------------------------------------
# 1. GET /packages/
# ---------------------------------------------------------------------------

@router.get("/packages/")
def list_packages(
    installed_only: bool = Query(default=False),
    types: List[str] = Query(default=[]),
    handler: PackageHandler = Depends(get_package_handler),
) -> JSONResponse:
    """
    Merged catalog of installed and store packages, sorted by name.
    """
    list_filter = ListFilter(types=types, installed_only=installed_only)
    try:
        packages = handler.all_packages(list_filter)
    except CatalogQueryError as e:
        logger.error(f"Listing packages failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return JSONResponse(content=[p.to_json() for p in packages])


# ---------------------------------------------------------------------------
# 2. GET /packages/{name}
# ---------------------------------------------------------------------------

@router.get("/packages/{name}")
def get_package(
    name: str,
    handler: PackageHandler = Depends(get_package_handler),
) -> JSONResponse:
    """
    A single package, including the progress of any install in flight.
    """
    try:
        payload = handler.package_payload(name)
    except PackageNotFoundError:
        raise HTTPException(status_code=404, detail="Package not found")

    return JSONResponse(content=payload.to_json())


# ---------------------------------------------------------------------------
# 3. PUT /packages/{name}
# ---------------------------------------------------------------------------

@router.put("/packages/{name}", status_code=status.HTTP_202_ACCEPTED)
async def install_package(
    name: str,
    handler: PackageHandler = Depends(get_package_handler),
) -> InstallResponse:
    """
    Start installing a package. Progress is reported through GET /packages/{name}.
    """
    try:
        handler.install_package(name)
    except InstallInProgressError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return InstallResponse(package=name, message="Accepted")
