"""Default sync policy and Open-Meteo endpoints."""

DEFAULT_START_DATE = "2026-01-01"

# Trailing days re-fetched on every sync to pick up upstream corrections.
REFRESH_WINDOW_DAYS = 14

# The archive API publishes finalized days with this delay.
HISTORIC_EMBARGO_DAYS = 5

FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
ARCHIVE_URL = "https://archive-api.open-meteo.com/v1/archive"
GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"

DEFAULT_USER_AGENT = "haakweer/0.1.0"
DEFAULT_ARCHIVE_PATH = "data/weather.json"
