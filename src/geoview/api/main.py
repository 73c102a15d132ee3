"""geoview — FastAPI application.

Run with:  python -m uvicorn geoview.api.main:app
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from geoview import __version__
from geoview.api.routers import layers_router
from geoview.config import settings
from geoview.layers.session import MapSession


def create_app(session: MapSession | None = None) -> FastAPI:
    """Build the app with a fresh (or provided) MapSession on app.state."""
    app = FastAPI(title="geoview", version=__version__, debug=settings.debug)
    app.state.map_session = session if session is not None else MapSession()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(layers_router)

    logger.info(f"geoview {__version__} ready on {settings.host}:{settings.port}")
    return app


app = create_app()
