"""Layer exporters."""
