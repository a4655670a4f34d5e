"""
Admin HTTP surface for the rebinder.

GET  /health                          - liveness
GET  /ops/rebinder/beans              - tracked component names
POST /ops/rebinder/rebind             - rebind every tracked component
POST /ops/rebinder/rebind/{name}      - rebind one component
GET  /ops/environment                 - merged file + override properties
GET  /ops/environment/{key}           - one property
POST /ops/environment                 - set/remove overrides (publishes a change)
POST /ops/environment/reload          - re-read configuration files
GET  /ops/metrics                     - Prometheus text
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from liveconfig import __version__
from liveconfig.bootstrap import LiveConfigContext
from liveconfig.common.logging import install_fastapi_request_id_middleware, log_event
from liveconfig.context.errors import BindingError, ComponentNotFoundError, RebindError

logger = logging.getLogger(__name__)


class EnvironmentUpdate(BaseModel):
    properties: Dict[str, Any] = Field(default_factory=dict)
    remove: List[str] = Field(default_factory=list)


def _context(request: Request) -> LiveConfigContext:
    return request.app.state.liveconfig


def require_admin_token(
    request: Request,
    x_admin_token: Optional[str] = Header(default=None),
) -> None:
    expected = _context(request).settings.ADMIN_TOKEN
    if not expected:
        return
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=401, detail="invalid admin token")


router = APIRouter(prefix="/ops", dependencies=[Depends(require_admin_token)])


@router.get("/rebinder/beans")
def get_bean_names(request: Request) -> Dict[str, Any]:
    return {"bean_names": sorted(_context(request).rebinder.get_bean_names())}


@router.post("/rebinder/rebind")
def rebind_all(request: Request):
    ctx = _context(request)
    try:
        report = ctx.rebinder.rebind_all()
    except RebindError as e:
        return JSONResponse(status_code=422, content={"status": "partial_failure", **e.report.to_dict()})
    return {"status": "ok", **report.to_dict()}


@router.post("/rebinder/rebind/{name}")
def rebind_one(name: str, request: Request):
    ctx = _context(request)
    try:
        rebound = ctx.rebinder.rebind(name)
    except BindingError as e:
        return JSONResponse(
            status_code=422,
            content={"name": name, "rebound": False, "error": str(e)},
        )
    except Exception as e:  # noqa: BLE001
        # Raised by the component's own initialization.
        log_event(
            logger,
            "rebind.failed",
            severity="ERROR",
            exc_info=True,
            component=name,
            error=type(e).__name__,
        )
        return JSONResponse(
            status_code=422,
            content={"name": name, "rebound": False, "error": f"{type(e).__name__}: {e}"},
        )
    return {"name": name, "rebound": rebound}


@router.get("/environment")
def get_environment(request: Request) -> Dict[str, Any]:
    return {"properties": _context(request).environment.snapshot()}


@router.get("/environment/{key}")
def get_property(key: str, request: Request) -> Dict[str, Any]:
    env = _context(request).environment
    if not env.contains_property(key):
        raise HTTPException(status_code=404, detail=f"property not found: {key}")
    return {"key": key, "value": env.get_property(key)}


@router.post("/environment")
def update_environment(update: EnvironmentUpdate, request: Request) -> Dict[str, Any]:
    env = _context(request).environment
    changed = set()
    if update.properties:
        changed |= env.set_properties(update.properties, source="ops-api")
    if update.remove:
        changed |= env.remove_properties(update.remove, source="ops-api")
    return {"changed": sorted(changed)}


@router.post("/environment/reload")
def reload_environment(request: Request) -> Dict[str, Any]:
    changed = _context(request).environment.reload_files(source="ops-api")
    return {"changed": sorted(changed)}


@router.get("/metrics", response_class=PlainTextResponse)
def metrics(request: Request) -> PlainTextResponse:
    body = _context(request).metrics.render_prometheus_text()
    return PlainTextResponse(body, media_type="text/plain; version=0.0.4; charset=utf-8")


def create_app(context: LiveConfigContext) -> FastAPI:
    app = FastAPI(
        title="liveconfig ops",
        version=__version__,
        description="Rebind live components and manage the property environment",
    )
    app.state.liveconfig = context

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "service": context.settings.SERVICE_NAME}

    @app.exception_handler(ComponentNotFoundError)
    async def _not_found(_request: Request, exc: ComponentNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    app.include_router(router)
    install_fastapi_request_id_middleware(app, service=context.settings.SERVICE_NAME)
    log_event(logger, "ops_app.created", service=context.settings.SERVICE_NAME)
    return app
