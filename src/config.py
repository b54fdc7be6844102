"""Configuration loaded from .env"""

import os

from dotenv import load_dotenv

load_dotenv()

# Hosted platform
PLATFORM_API_URL = os.getenv("PLATFORM_API_URL", "https://app.base44.com/api").rstrip("/")
PLATFORM_APP_ID = os.getenv("PLATFORM_APP_ID", "")
PLATFORM_SERVICE_TOKEN = os.getenv("PLATFORM_SERVICE_TOKEN", "")
PLATFORM_TIMEOUT = float(os.getenv("PLATFORM_TIMEOUT", "30"))

# HTTP surface
FRONTEND_ORIGINS = [
    o.strip() for o in os.getenv("FRONTEND_ORIGINS", "").split(",") if o.strip()
] or [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
]
SEARCH_RATE_LIMIT = os.getenv("SEARCH_RATE_LIMIT", "20/minute")

# Notifications
APP_DISPLAY_NAME = os.getenv("APP_DISPLAY_NAME", "NOVA")

# Maintenance job
MAINTENANCE_STATUS_DIR = os.getenv("MAINTENANCE_STATUS_DIR", ".")
