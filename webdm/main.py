import logging

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from webdm.api.packages import router as packages_router
from webdm.core.dependencies import get_config, get_icons_dir, get_package_handler

# Configure logging
logging.basicConfig(
    level=get_config().log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="webdm",
    version="0.1.0",
    description="Package catalog and install service for snappy devices.",
)

# Icons of installed packages, published by the icon resolver
_icons_dir = get_icons_dir()
_icons_dir.mkdir(parents=True, exist_ok=True)
app.mount("/icons", StaticFiles(directory=str(_icons_dir)), name="icons")

app.include_router(packages_router, prefix="/api/v2", tags=["packages"])


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """
    Installs cannot be cancelled; report the ones that are abandoned.
    """
    pending = get_package_handler().pending_installs
    if pending:
        logger.warning(f"Shutting down with {pending} install(s) still running")


@app.get("/health")
async def health() -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    """
    Allow running `python -m webdm.main` to start the Uvicorn development server.
    """
    import uvicorn

    uvicorn.run(
        "webdm.main:app",
        host="0.0.0.0",
        port=4200,
        reload=True,
    )
