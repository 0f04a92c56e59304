from contextlib import asynccontextmanager

from fastapi import FastAPI

from chatrouter.api import deps
from chatrouter.api.routes import analyze as analyze_routes
from chatrouter.api.routes import health as health_routes
from chatrouter.api.routes import webhook as webhook_routes
from chatrouter.core.config import settings
from chatrouter.core.logging import configure_logging
from chatrouter.core.middleware import RequestLoggingMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await deps.shutdown()


def create_app() -> FastAPI:
    """FastAPI application factory."""
    configure_logging()
    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_routes.router, prefix="/health", tags=["health"])
    app.include_router(webhook_routes.router, prefix="/v1/whatsapp", tags=["whatsapp"])
    app.include_router(analyze_routes.router, prefix="/v1/router", tags=["router"])

    return app


app = create_app()
