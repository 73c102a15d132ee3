"""geoview — map layer engine.

Ingests coordinate CSV, H3-hexagon CSV and GeoJSON into styleable,
filterable layers owned by a MapSession.
"""

__version__ = "0.1.0"
