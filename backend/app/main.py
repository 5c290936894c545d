"""FastAPI application factory and lifespan for the weather dashboard."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.responses import FileResponse

from .config import settings
from .models.database import init_database, SessionLocal
from .services.dashboard import DashboardRegistry
from .services.scratch import ScratchStore
from .api.router import api_router
from .api import dashboard as dashboard_api
from .api.weather import get_weather_client

# Configure logging for our app (uvicorn only configures its own loggers)
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:     %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: database, local scratch storage, dashboard sessions."""

    logger.info("Database: %s", settings.db_path)
    init_database()
    logger.info("Database initialized")

    scratch = ScratchStore(settings.scratch_path)
    logger.info("Local user: %s (scratch %s)", scratch.user_id, settings.scratch_path)

    dashboard_api.set_registry(DashboardRegistry(
        session_factory=SessionLocal,
        weather_client=get_weather_client(),
        scratch=scratch,
        default_api_key=settings.weather_api_key or None,
        max_controllers=settings.max_sessions,
    ))
    if not settings.weather_api_key:
        logger.info("No deployment API key set; users must supply their own")

    yield

    logger.info("Application shutdown complete")


def _frontend_dist() -> Path:
    if settings.frontend_dir:
        return Path(settings.frontend_dir)
    return Path(__file__).parent.parent.parent / "frontend" / "dist"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Weather Dashboard",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # API routes
    app.include_router(api_router)

    # Serve frontend static files if built
    frontend_dist = _frontend_dist()
    if frontend_dist.exists():
        # Mount hashed assets at /assets for correct MIME types
        assets_dir = frontend_dist / "assets"
        if assets_dir.exists():
            app.mount("/assets", StaticFiles(directory=str(assets_dir)), name="assets")

        # SPA catch-all: serve the file if it exists, otherwise index.html
        index_html = frontend_dist / "index.html"

        @app.get("/{full_path:path}")
        async def serve_spa(full_path: str):
            file_path = frontend_dist / full_path
            if file_path.is_file():
                return FileResponse(str(file_path))
            return FileResponse(str(index_html))

    return app


# Application instance
app = create_app()

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host=settings.host, port=settings.port)
