"""FastAPI surface over the map layer engine."""
