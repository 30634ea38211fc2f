"""
HTTP API for the composition launcher.

Exposes the launcher's observed state (status summary, container list,
catalog, notifications) and turns start/stop/refresh requests into command
queue tasks. The server itself holds no state beyond the Launcher instance.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Response
from pydantic import BaseModel

from kitty_common.errors import (
    FeatureDisabled,
    KittyError,
    QueueClosed,
    SelectionConflict,
    SelectionMissing,
)
from kitty_controller.config import LauncherConfig
from kitty_controller.launcher import Launcher

logger = logging.getLogger(__name__)

# Global instances (initialized at startup)
launcher: Launcher | None = None
launcher_config: LauncherConfig | None = None


def configure(config: LauncherConfig) -> None:
    """Set the configuration used by the next application startup."""
    global launcher_config
    launcher_config = config


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI app.

    Handles startup and shutdown events:
    - Startup: Build the launcher (from configure() or KITTY_* env) and start it
    - Shutdown: Stop polling, drain the command queue, remove working files
    """
    global launcher

    config = launcher_config or LauncherConfig.from_env()
    launcher = Launcher(config)
    await launcher.start()

    yield

    await launcher.shutdown()
    launcher = None


app = FastAPI(title="container-kitty", lifespan=lifespan)


def get_launcher() -> Launcher:
    """
    Get the global launcher instance.

    Raises:
        RuntimeError: If the launcher is not initialized
    """
    if launcher is None:
        raise RuntimeError("Launcher not initialized")
    return launcher


class SelectContainerRequest(BaseModel):
    name: str | None = None


class CompositionVersionRequest(BaseModel):
    composition: str | None = None
    version: str | None = None


class StopRequest(BaseModel):
    project_id: str | None = None


def to_http_error(error: KittyError) -> HTTPException:
    """Map a launcher error to the HTTP status the client should see."""
    if isinstance(error, SelectionMissing):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, SelectionConflict):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, (FeatureDisabled, QueueClosed)):
        return HTTPException(status_code=503, detail=str(error))
    return HTTPException(status_code=502, detail=str(error))


async def settle(
    future: asyncio.Future,
    description: str,
    wait: bool,
    response: Response | None = None,
) -> dict[str, Any]:
    """
    Return immediately for queued work, or wait for it when asked to.

    Queued work answers 202; work that was waited for and completed answers 200.
    """
    if not wait:
        return {"queued": description}
    try:
        result = await asyncio.shield(future)
    except KittyError as e:
        raise to_http_error(e) from e
    except asyncio.CancelledError:
        if future.cancelled():
            raise HTTPException(
                status_code=503, detail=f"{description} was cancelled"
            ) from None
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    if response is not None:
        response.status_code = 200
    return {"completed": description, "result": result}


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/status")
async def get_status(kitty: Launcher = Depends(get_launcher)) -> dict[str, Any]:
    """Status summary, session snapshot and launcher facts."""
    reconciler = kitty.reconciler
    return {
        "summary": reconciler.summary.to_dict(),
        "session": kitty.session_snapshot.to_dict(),
        "running_projects": reconciler.running_projects(),
        "last_polled_at": reconciler.last_polled_at.isoformat()
        if reconciler.last_polled_at
        else None,
        "engine_path": kitty.engine_path,
        "dev_mode": kitty.config.dev_mode,
        "start_stop_enabled": kitty.session_enabled,
        "queue": {"pending": kitty.queue.pending, "current": kitty.queue.current},
    }


@app.get("/containers")
async def list_containers(kitty: Launcher = Depends(get_launcher)) -> dict[str, Any]:
    """Current container list and the selected container name."""
    reconciler = kitty.reconciler
    return {
        "containers": [record.to_dict() for record in reconciler.records],
        "selected": reconciler.selected_name,
        "projects": reconciler.project_states(),
    }


@app.post("/containers/select")
async def select_container(
    body: SelectContainerRequest, kitty: Launcher = Depends(get_launcher)
) -> dict[str, Any]:
    """
    Select a container by name (or clear the selection with null).

    Raises:
        HTTPException: 404 if no such container is listed
    """
    if body.name is not None and kitty.reconciler.select(body.name) is None:
        raise HTTPException(status_code=404, detail=f"Container not found: {body.name}")
    if body.name is None:
        kitty.reconciler.select(None)
    return {"selected": kitty.reconciler.selected_name}


@app.get("/compositions")
async def list_compositions(kitty: Launcher = Depends(get_launcher)) -> dict[str, Any]:
    """Selectable composition/version pairs and the current selection."""
    catalog = kitty.catalog
    return {
        "pairs": [pair.to_dict() for pair in catalog.pairs()],
        "selection": catalog.selection.to_dict() if catalog.selection else None,
        "fetched_at": catalog.snapshot.fetched_at.isoformat()
        if catalog.snapshot
        else None,
    }


@app.post("/compositions/select")
async def select_composition(
    body: CompositionVersionRequest, kitty: Launcher = Depends(get_launcher)
) -> dict[str, Any]:
    """
    Select a composition/version pair.

    Raises:
        HTTPException: 404 if the pair is not in the catalog
    """
    if body.composition is None and body.version is None:
        kitty.catalog.clear_selection()
        return {"selection": None}
    try:
        pair = kitty.catalog.select(body.composition or "", body.version or "")
    except SelectionMissing as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"selection": pair.to_dict()}


@app.post("/refresh", status_code=202)
async def refresh(
    response: Response,
    wait: bool = False,
    kitty: Launcher = Depends(get_launcher),
) -> dict[str, Any]:
    """Queue a manifest and container refresh."""
    try:
        future = kitty.request_refresh()
    except KittyError as e:
        raise to_http_error(e) from e
    return await settle(future, "refresh compositions", wait, response)


@app.post("/start", status_code=202)
async def start(
    response: Response,
    body: CompositionVersionRequest | None = None,
    wait: bool = False,
    kitty: Launcher = Depends(get_launcher),
) -> dict[str, Any]:
    """
    Queue a start of the given pair, or of the selected one.

    Raises:
        HTTPException: 400 without a valid selection, 503 if start/stop is disabled,
                       409 (with wait) if a session is already active
    """
    body = body or CompositionVersionRequest()
    try:
        future = kitty.request_start(body.composition, body.version)
    except KittyError as e:
        raise to_http_error(e) from e
    return await settle(future, "start", wait, response)


@app.post("/stop", status_code=202)
async def stop(
    response: Response,
    body: StopRequest | None = None,
    wait: bool = False,
    kitty: Launcher = Depends(get_launcher),
) -> dict[str, Any]:
    """Queue a stop of the given project, or of the active one."""
    body = body or StopRequest()
    try:
        future = kitty.request_stop(body.project_id)
    except KittyError as e:
        raise to_http_error(e) from e
    return await settle(future, "stop", wait, response)


@app.post("/stop-all", status_code=202)
async def stop_all(
    response: Response,
    wait: bool = False,
    kitty: Launcher = Depends(get_launcher),
) -> dict[str, Any]:
    """Queue a stop of every running project, however it was started."""
    try:
        future = kitty.request_stop_all()
    except KittyError as e:
        raise to_http_error(e) from e
    result = await settle(future, "stop all projects", wait, response)
    if wait:
        result["result"] = {
            project: code if isinstance(code, int) else str(code)
            for project, code in result["result"].items()
        }
    return result


@app.get("/notifications")
async def list_notifications(
    since: int = 0, kitty: Launcher = Depends(get_launcher)
) -> dict[str, Any]:
    """User-visible error notifications newer than `since`."""
    return {
        "notifications": [n.to_dict() for n in kitty.notifications.list(since)]
    }
