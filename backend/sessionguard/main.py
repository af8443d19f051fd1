"""FastAPI application entrypoint for the sessionguard backend.

Sets up the application, middleware and routes and provides a lifespan
context manager that initializes the database on startup and disposes the
engine on shutdown.
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from api.routes.auth import router as auth_router
from api.routes.devices import router as devices_router
from config.config import settings
from core.logging import logger
from core.middleware import RefreshTokenMiddleware
from db.session import engine, initialize_database
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context to run startup and shutdown routines.

    On startup this will attempt to create the metadata tables, retrying a
    few times if the DB isn't ready yet.
    """

    logger.info("Starting up")

    max_retries = 5
    for attempt in range(max_retries):
        try:
            await initialize_database()
            break
        except OperationalError as e:
            # NOTE: transient DB connectivity issues are retried when services
            # come up concurrently.
            if attempt < max_retries - 1:
                logger.warning(
                    "Database connection attempt {} failed: {}. Retrying..",
                    attempt + 1,
                    e,
                )
                await asyncio.sleep(2)
            else:
                logger.exception(
                    "Failed to create database tables after {} attempts", max_retries
                )
                raise

    yield

    logger.info("Shutting down")
    await engine.dispose()


app = FastAPI(lifespan=lifespan, root_path="/api")

app.add_middleware(RefreshTokenMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-New-Access-Token", "X-New-Refresh-Token", "X-Token-Expiration"],
)


@app.get("/")
async def root():
    """Return a simple health check / landing response."""

    return JSONResponse({"message": "sessionguard backend"})


app.include_router(auth_router)
app.include_router(devices_router)


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
