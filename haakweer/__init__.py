"""Per-city archive of historic daily temperatures synced from Open-Meteo."""

__version__ = "0.1.0"
