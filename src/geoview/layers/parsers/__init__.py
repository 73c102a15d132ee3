"""Input parsers: delimited text tables and GeoJSON Feature collections."""
