"""HTTP routers."""

from geoview.api.routers.layers import router as layers_router

__all__ = ["layers_router"]
