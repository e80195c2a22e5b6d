from __future__ import annotations

from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from account_service.core.db import Database
from account_service.core.logs import configure_logging
from account_service.core.settings import S, Settings
from account_service.metrics import Metrics
from account_service.routers.addresses import router as addresses_router
from account_service.routers.admin import router as admin_router
from account_service.routers.auth import router as auth_router
from account_service.routers.health import router as health_router
from account_service.routers.users import router as users_router
from account_service.services.addresses import AddressService
from account_service.services.auth import AuthService
from account_service.services.cognito import CognitoGateway
from account_service.services.users import UserService

VERSION = "0.1.0"


async def _store_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.opt(exception=exc).error("Unhandled account store error on {} {}", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Account store unavailable"})


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    cognito: Optional[Any] = None,
    metrics: Optional[Metrics] = None,
) -> FastAPI:
    settings = settings or S
    configure_logging(settings)

    app = FastAPI(title=settings.app_name, version=VERSION)

    database = database or Database(settings)
    database.create_all()
    metrics = metrics or Metrics()
    gateway = CognitoGateway(settings, client=cognito)
    users = UserService(database, metrics)

    app.state.settings = settings
    app.state.database = database
    app.state.metrics = metrics
    app.state.user_service = users
    app.state.address_service = AddressService(database, metrics)
    app.state.auth_service = AuthService(settings, gateway, users, metrics)

    origins = [o.strip() for o in settings.cors_allow_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if settings.metrics_enabled:
        app.middleware("http")(metrics.middleware)
        metrics.set_app_info(app.title, app.version)
        app.get("/metrics", include_in_schema=False)(metrics.endpoint)

    app.add_exception_handler(SQLAlchemyError, _store_error)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(addresses_router)
    app.include_router(admin_router)
    app.include_router(health_router)

    logger.info("{} {} started (store={})", settings.app_name, VERSION, database.engine.url.render_as_string(hide_password=True))
    return app


def main() -> None:
    uvicorn.run("account_service.main:create_app", factory=True, host="0.0.0.0", port=8080, log_config=None)


if __name__ == "__main__":
    main()
