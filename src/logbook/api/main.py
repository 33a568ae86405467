"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from logbook.api.routes import records, sync as sync_routes
from logbook.db.engine import get_engine, init_db


def create_app() -> FastAPI:
    """Build and return the FastAPI app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables and run migrations on startup (idempotent)
        init_db(get_engine())
        yield

    app = FastAPI(
        title="Logbook API",
        description="Pilot logbook store with server sync",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(records.router, prefix="/records", tags=["records"])
    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
