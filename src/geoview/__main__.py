"""Serve the API: ``python -m geoview``."""

import uvicorn

from geoview.config import settings


def main() -> None:
    uvicorn.run("geoview.api.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
