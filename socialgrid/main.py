"""
Social Grid - Main Application

Geospatial population control service: user positions and social ratings,
region statistics with strike assessment and cascade, a missile supply-chain
graph, and realtime push to subscribed clients.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.middleware.base import BaseHTTPMiddleware

from .api import regions_router, supply_router, users_router, ws_router
from .db import close_graph, close_mongo, connect_graph, connect_mongo, ensure_indexes, get_database
from .db.mongo import check_connection
from .errors import NotFound, StorageFailure, ValidationFailure
from .logging import get_logger
from .services import Services, build_services_for_database
from .settings import settings

logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add basic security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Server"] = "Social Grid"
        return response


def _open_stores() -> Services:
    connect_mongo()
    if not check_connection():
        logger.warning("mongo_connection_failed", uri=settings.mongodb_uri)
    else:
        logger.info("mongo_connected", database=settings.mongodb_database)
        try:
            ensure_indexes(get_database())
        except PyMongoError as e:
            logger.error("mongo_index_creation_failed", error=str(e))

    graph_source = connect_graph()
    return build_services_for_database(get_database(), graph_source)


def _register_error_handlers(app: FastAPI):
    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationFailure)
    async def validation_handler(request: Request, exc: ValidationFailure):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(StorageFailure)
    async def storage_handler(request: Request, exc: StorageFailure):
        logger.error("storage_failure", path=request.url.path, operation=exc.operation, error=str(exc))
        return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-wired services; when given, the lifespan does not open
            any store connections
    """
    owns_stores = services is None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("startup", service="socialgrid")
        if owns_stores:
            app.state.services = _open_stores()

        yield

        logger.info("shutdown", service="socialgrid")
        if owns_stores:
            close_graph()
            close_mongo()

    app = FastAPI(
        title="Social Grid",
        description="""
        Population positions and social ratings, region threat assessment
        with strike cascade, missile supply-chain routing, and realtime push
        over WebSocket.
        """,
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    allowed_origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    _register_error_handlers(app)

    app.include_router(users_router)
    app.include_router(regions_router)
    app.include_router(supply_router)
    app.include_router(ws_router)

    @app.get("/health")
    async def health_check():
        """Basic health check."""
        return {"status": "ok", "service": "socialgrid"}

    @app.get("/health/db")
    def db_health_check():
        """Store health check. The graph store is optional."""
        graph = app.state.services.supply.graph
        if graph.source is None:
            graph_status = "disabled"
        elif graph.source.check_connection():
            graph_status = "connected"
        else:
            graph_status = "unreachable"

        if owns_stores and not check_connection():
            raise HTTPException(status_code=503, detail="Document store connection failed")
        return {"status": "ok", "documentStore": "connected", "graph": graph_status}

    return app


app = create_app()


def run():
    """Run the server (entry point for CLI)."""
    import uvicorn
    uvicorn.run(
        "socialgrid.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
    )


if __name__ == "__main__":
    run()
