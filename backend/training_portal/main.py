import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import telemetry_pipeline  # noqa: F401
from .admin_routes import router as admin_router
from .config import Settings, get_settings
from .db.session import create_schema
from .learner_routes import router as learner_router
from .logging_config import configure_logging


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    if settings.persistence_mode == "database":
        create_schema()
        logger.info("Database schema ready")
    yield


app = FastAPI(title="Volunteer Training Portal", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

settings_snapshot = get_settings()
logger.info("Backend starting with persistence mode: %s", settings_snapshot.persistence_mode)
logger.info("Sequential gating: %s", settings_snapshot.sequential_gating)

app.include_router(admin_router)
app.include_router(learner_router)


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "persistence": settings.persistence_mode}
