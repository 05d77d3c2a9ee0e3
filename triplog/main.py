import os

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .config import settings
from .db import Base, engine
from .logging import setup_logging, RequestIdMiddleware
from .models import models  # noqa: F401  registers tables on Base.metadata
from .routes.driver import router as driver_router
from .routes.trips import router as trips_router
from .services.errors import TripLogError

logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    @app.exception_handler(TripLogError)
    async def _triplog_error(request: Request, exc: TripLogError):
        logger.info(
            "request_rejected",
            path=request.url.path,
            status_code=exc.status_code,
            error=type(exc).__name__,
            detail=exc.detail,
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    # Routers
    app.include_router(driver_router)
    app.include_router(trips_router)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./var/"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
            logger.info("database_ready", tables=sorted(Base.metadata.tables.keys()))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("triplog.main:app", host=settings.host, port=settings.port)
