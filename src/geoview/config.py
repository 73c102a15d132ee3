"""Configuration management using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables (GEOVIEW_*)."""

    model_config = SettingsConfigDict(
        env_prefix="GEOVIEW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    # Ingestion
    chunk_size: int = 10000         # rows per processing chunk
    preview_rows: int = 10          # data rows shown before column selection
    sample_rows: int = 1000         # rows sampled for numeric/categorical classification

    # New layer defaults
    default_color: str = "#ff0000"
    default_opacity: float = 0.7
    default_point_size: float = 5.0
    default_color_scale: str = "YlOrRd"
    default_min_size: float = 2.0
    default_max_size: float = 20.0

    # Initial view (continental USA)
    initial_latitude: float = 39.8283
    initial_longitude: float = -98.5795
    initial_zoom: float = 3.0
    h3_initial_zoom: float = 11.0

    # Map configuration document
    config_version: str = "1.0.0"

    # Basemap styles, by display name
    basemaps: dict[str, str] = {
        "Light": "https://basemaps.cartocdn.com/gl/positron-gl-style/style.json",
        "Dark": "https://basemaps.cartocdn.com/gl/dark-matter-gl-style/style.json",
        "City": "mapbox://styles/mapbox/streets-v12",
        "Satellite": "mapbox://styles/mapbox/satellite-streets-v12",
    }
    default_basemap: str = "Light"


settings = Settings()
