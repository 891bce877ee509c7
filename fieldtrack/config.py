import os
from pathlib import Path
from dotenv import load_dotenv
from typing import Optional

# Load .env robustly (try project root and CWD)
_ROOT = Path(__file__).resolve().parent.parent
_candidates = [
    _ROOT / ".env",
    Path.cwd() / ".env",
]
for p in _candidates:
    if p.exists():
        load_dotenv(p, override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Remote tracking API
    TRACKING_API_BASE_URL: str = os.getenv("FIELDTRACK_API_BASE_URL", "http://localhost:5000/api")
    TRACKING_API_TOKEN: Optional[str] = os.getenv("FIELDTRACK_API_TOKEN")
    TRACKING_API_TIMEOUT: float = float(os.getenv("FIELDTRACK_API_TIMEOUT", "30"))  # seconds
    TRACKING_PAGE_LIMIT: int = int(os.getenv("FIELDTRACK_PAGE_LIMIT", "100"))
    TRACKING_MAX_PAGES: int = int(os.getenv("FIELDTRACK_MAX_PAGES", "50"))

    # Routing service (public OSRM demo server by default)
    OSRM_BASE_URL: str = os.getenv("OSRM_BASE_URL", "https://router.project-osrm.org")
    OSRM_TIMEOUT: float = float(os.getenv("OSRM_TIMEOUT", "30"))  # seconds
    SNAP_DELAY_SECONDS: float = float(os.getenv("SNAP_DELAY_SECONDS", "1.5"))  # 40 requests/minute
    SNAP_MAX_WAYPOINTS: int = int(os.getenv("SNAP_MAX_WAYPOINTS", "100"))

    # Live sync
    LIVE_SYNC_INTERVAL: float = float(os.getenv("LIVE_SYNC_INTERVAL", "5"))  # seconds
    LIVE_SYNC_ENABLED: bool = _env_bool("LIVE_SYNC_ENABLED", "true")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
