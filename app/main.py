from fastapi import FastAPI

from app.posledger.api import api_router
from app.posledger.core.config import settings
from app.posledger.core.errors import setup_exception_handlers
from app.posledger.core.logging import configure_logging
from app.posledger.middleware.observability import ObservabilityMiddleware
from app.posledger.middleware.trace import TraceIdMiddleware


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
