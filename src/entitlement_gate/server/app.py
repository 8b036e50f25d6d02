"""FastAPI application factory for the maintenance service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from entitlement_gate import __version__
from entitlement_gate.server.auth import TokenService, init_auth
from entitlement_gate.server.config import ServerConfig
from entitlement_gate.server.routers import health, maintenance
from entitlement_gate.server.store import MaintenanceStore, UserDirectory

logger = logging.getLogger(__name__)


def create_app(
    config: ServerConfig | None = None,
    users: UserDirectory | None = None,
    store: MaintenanceStore | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Services are initialised from *config* (or env defaults) and
    injected into each router via its ``init_router()`` function.
    """
    if config is None:
        config = ServerConfig.from_env()
    if not config.signing_key:
        raise ValueError("ServerConfig.signing_key is required to verify bearer tokens")

    users = users if users is not None else UserDirectory()
    store = store if store is not None else MaintenanceStore()

    app = FastAPI(
        title="entitlement-gate maintenance service",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
    )

    if config.dev_mode:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["http://localhost:3000"],
            allow_methods=["*"],
            allow_headers=["*"],
        )

    init_auth(TokenService(config.signing_key, ttl_seconds=config.token_ttl_seconds))
    maintenance.init_router(store, users)
    health.init_router(store, users)

    app.include_router(maintenance.router, prefix="/api")
    app.include_router(health.router, prefix="/api")

    logger.info("Maintenance service ready (%d users known)", len(users))
    return app
