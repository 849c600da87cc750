# ============================
# 📁 app/main.py

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from starlette.middleware.gzip import GZipMiddleware
from fastapi.middleware.cors import CORSMiddleware

from fastapi_utils.tasks import repeat_every

# API-Router
from app.api.routes import router as api_router

from app.config import Settings
from app.core.workflow import InvalidTransitionError, WorkflowValidationError, allowed_actions
from app.database import make_engine
from app.exceptions import CMSException
from app.repositories.base import Storage
from app.repositories.memory import MemStorage
from app.repositories.sql import SqlStorage
from app.services.publishing import publish_due_articles

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Ein Stream-Handler für alle app.*-Logger."""
    app_logger = logging.getLogger("app")
    app_logger.setLevel(level)
    if not app_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        app_logger.addHandler(handler)


def build_storage(settings: Settings) -> Storage:
    if settings.STORAGE_BACKEND == "memory":
        return MemStorage()
    if settings.STORAGE_BACKEND == "sql":
        return SqlStorage(make_engine(settings.DATABASE_URL))
    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(CMSException)
    async def cms_exception(request: Request, exc: CMSException):
        return ORJSONResponse(status_code=exc.code, content=exc.to_dict())

    @app.exception_handler(WorkflowValidationError)
    async def workflow_validation(request: Request, exc: WorkflowValidationError):
        logger.warning("Workflow abgelehnt (%s): %s", request.url.path, exc)
        return ORJSONResponse(status_code=400, content={"message": str(exc), "field": exc.field})

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError):
        logger.warning("Workflow abgelehnt (%s): %s", request.url.path, exc)
        return ORJSONResponse(
            status_code=409,
            content={
                "message": str(exc),
                "state": exc.current.value,
                "action": exc.action.value,
                "allowedActions": [a.value for a in allowed_actions(exc.current)],
            },
        )

    # Schema-Verstöße sind 400 (nicht FastAPIs Standard 422)
    @app.exception_handler(RequestValidationError)
    async def request_validation(request: Request, exc: RequestValidationError):
        return ORJSONResponse(
            status_code=400,
            content={"message": "Invalid request data", "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unexpected(request: Request, exc: Exception):
        logger.exception("Unerwarteter Fehler bei %s %s", request.method, request.url.path)
        return ORJSONResponse(status_code=500, content={"message": "Internal server error"})


def create_app(settings: Settings | None = None, storage: Storage | None = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="Newsroom CMS", default_response_class=ORJSONResponse)

    # --- GZip (Antworten ab 1 KB komprimieren) ---
    app.add_middleware(GZipMiddleware, minimum_size=1024)

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Storage-Handle: einmal bauen, Standard-Kategorien anlegen ---
    storage = storage or build_storage(settings)
    storage.init()
    app.state.storage = storage
    app.state.settings = settings
    logger.info("Storage bereit (%s)", type(storage).__name__)

    # --- Router ---
    app.include_router(api_router)
    register_error_handlers(app)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    # --- Geplante Veröffentlichungen (alle N Sekunden) ---
    if settings.SCHEDULER_INTERVAL_SECONDS > 0:
        @app.on_event("startup")
        @repeat_every(seconds=settings.SCHEDULER_INTERVAL_SECONDS)
        def scheduled_publish() -> None:
            try:
                published = publish_due_articles(app.state.storage)
            except Exception:
                logger.exception("Geplante Veröffentlichung fehlgeschlagen")
                raise
            if published:
                logger.info("⏱ %d geplante Artikel veröffentlicht", len(published))

    return app


app = create_app()
