"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from table_studio.config import get_settings
from table_studio.db.dependencies import get_schema_service
from table_studio.errors import PersistenceError
from table_studio.routers import records, tables

logger = logging.getLogger(__name__)

settings = get_settings()


def _warm_backend_state() -> None:
    """Check the schema service is reachable at process start."""

    try:
        table_names = get_schema_service().list_tables()
        logger.info("startup.schema_service_ready tables=%s", len(table_names))
    except PersistenceError:
        logger.exception("Schema service warm-up failed; continuing without startup check.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    logging.basicConfig(level=settings.log_level.upper())
    _warm_backend_state()
    yield


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(records.router, tags=["records"])
app.include_router(tables.router, tags=["tables"])


@app.get("/health")
def health() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}
