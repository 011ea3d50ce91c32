import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from content_approval.api.routes import approvals as approvals_routes
from content_approval.api.routes import content as content_routes
from content_approval.api.routes import health as health_routes
from content_approval.api.routes import metrics as metrics_routes
from content_approval.core.config import get_settings
from content_approval.core.errors import register_exception_handlers
from content_approval.core.tracing import init_tracing
from content_approval.db.base import Base
from content_approval.db.migrations import run_migrations_on_startup
from content_approval.db.session import engine
import content_approval.models  # noqa: F401  (registers all tables on Base.metadata)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name)

    @app.on_event("startup")
    def _startup_migrations() -> None:
        # In production migrations are opt-in via env flags.
        run_migrations_on_startup()

    # Observability: logging, request metrics and optional error tracing
    init_tracing(app)

    origins = [o.strip() for o in settings.backend_cors_origins.split(",") if o.strip()]
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)

    app.include_router(health_routes.router)
    app.include_router(metrics_routes.router)
    app.include_router(approvals_routes.router)
    app.include_router(content_routes.router)

    # Auto-create tables only outside production; there, schema changes go through Alembic.
    if settings.environment != "production":
        try:
            Base.metadata.create_all(bind=engine)
        except Exception:
            logging.getLogger("caw.migrations").warning("Could not create tables", exc_info=True)

    return app


app = create_app()
