from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import logging
import time

from proximity.container import EngineContainer, build_container
from proximity.middleware.error_handler import error_handler_middleware, setup_error_handlers
from proximity.middleware.request_id import RequestIDMiddleware
from proximity.providers.settings import get_settings

logger = logging.getLogger("proximity.main")


def create_app(container: Optional[EngineContainer] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        container: Prebuilt collaborators. When omitted the lifespan builds
            them from settings and closes them on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = container is None
        app.state.container = build_container(get_settings()) if owned else container
        try:
            yield
        finally:
            if owned:
                await app.state.container.close()

    app = FastAPI(
        title="Proximity API",
        description="Proximity ranking and travel-time resolution",
        version="0.1.0",
        lifespan=lifespan,
    )
    if container is not None:
        # Available even when the lifespan is not run (plain TestClient)
        app.state.container = container

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every request with its status and duration."""
        start_time = time.time()
        path = request.url.path
        method = request.method

        skip_logging = path == "/health"

        if not skip_logging:
            logger.info(f"🔔 {method} {path}")

        try:
            response = await call_next(request)

            process_time = time.time() - start_time
            status_code = response.status_code

            if status_code < 400:
                status_str = f"✅ {status_code}"
            elif status_code < 500:
                status_str = f"⚠️ {status_code}"
            else:
                status_str = f"❌ {status_code}"

            if not skip_logging:
                logger.info(f"🏁 {method} {path} - {status_str} - {process_time:.3f}s")
            return response
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(f"💥 {method} {path} - Exception: {str(e)} - {process_time:.4f}s")
            raise

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.middleware("http")(error_handler_middleware)

    # Outermost, so every log line above carries the request id
    app.add_middleware(RequestIDMiddleware)

    setup_error_handlers(app)

    from proximity.routers import nearby_router, presence_router, routing_router, travel_time_router

    app.include_router(nearby_router.router, prefix="/api")
    app.include_router(routing_router.router, prefix="/api")
    app.include_router(travel_time_router.router, prefix="/api")
    app.include_router(presence_router.router, prefix="/api")

    @app.get("/")
    async def root():
        return {"message": "Proximity API"}

    @app.get("/health")
    async def health_check(request: Request):
        state_container = getattr(request.app.state, "container", None)
        configured = bool(state_container and state_container.manager.is_configured)
        return {"status": "ok", "routing_configured": configured}

    return app


app = create_app()
