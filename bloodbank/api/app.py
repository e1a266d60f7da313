import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from bloodbank.api.actions import ActionHandlers
from bloodbank.appointments.directory import DirectoryLookup
from bloodbank.appointments.factory import build_appointment_service, build_store
from bloodbank.config import AppConfig

# HTTP status for each error code; bodies always carry the code as well.
_STATUS_CODES: dict[str, int] = {
    "VALIDATION_ERROR": 422,
    "NOT_FOUND": 404,
    "SLOT_TAKEN": 409,
    "INVALID_TRANSITION": 409,
    "NOT_ELIGIBLE": 409,
    "FORBIDDEN": 403,
    "STORE_ERROR": 503,
}


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def _respond(result: dict[str, Any]) -> JSONResponse:
    status_code = 200 if result["success"] else _STATUS_CODES.get(result.get("error", ""), 400)
    return JSONResponse(result, status_code=status_code)


async def _json_body(request: Request) -> object:
    try:
        return await request.json()
    except ValueError:
        return None


def _handlers(request: Request) -> ActionHandlers:
    return request.app.state.handlers


def create_app(
    config: AppConfig | None = None,
    *,
    handlers: ActionHandlers | None = None,
) -> FastAPI:
    """Build the HTTP application.

    Pass ``handlers`` to serve pre-built services (tests do); otherwise the
    store and services are built from ``config`` at startup and closed at
    shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if handlers is not None:
            yield
            return

        app_config = config or AppConfig()
        store = build_store(app_config)
        if app_config.database.create_schema:
            await store.create_schema()
        service = build_appointment_service(app_config, store)
        app.state.handlers = ActionHandlers(service, DirectoryLookup(store))
        logger.info("Blood bank appointment API ready")
        try:
            yield
        finally:
            await service.close()
            logger.info("Blood bank appointment API stopped")

    app = FastAPI(title="Blood Bank Appointments", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Content-Type"],
    )
    if handlers is not None:
        app.state.handlers = handlers

    @app.post("/api/appointments")
    async def create_appointment(request: Request) -> JSONResponse:
        payload = await _json_body(request)
        return _respond(await _handlers(request).create_appointment(payload))

    @app.patch("/api/appointments/{appointment_id}")
    async def update_appointment(appointment_id: str, request: Request) -> JSONResponse:
        payload = await _json_body(request)
        if isinstance(payload, dict):
            payload = {**payload, "appointment_id": appointment_id}
        return _respond(await _handlers(request).update_appointment(payload))

    @app.get("/api/appointments")
    async def get_appointments(request: Request) -> JSONResponse:
        return _respond(await _handlers(request).get_appointments(dict(request.query_params)))

    @app.get("/api/donors/find")
    async def find_donor(request: Request) -> JSONResponse:
        return _respond(await _handlers(request).find_donor(dict(request.query_params)))

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        result = await _handlers(request).health()
        return JSONResponse(result, status_code=200 if result["success"] else 503)

    return app
