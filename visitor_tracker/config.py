import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo

# -----------------------------------------------------------------------------
# Config
# -----------------------------------------------------------------------------
GEOIP_DB_PATH = os.environ.get("GEOIP_DB_PATH", "/geoip/GeoLite2-Country.mmdb")

# Tracker snippets are embedded on arbitrary sites, so "*" is the usual value.
CORS_ALLOW_ORIGINS = os.environ.get(
    "CORS_ALLOW_ORIGINS",
    "*"
).split(",")
CORS_ALLOW_ORIGINS = [o.strip() for o in CORS_ALLOW_ORIGINS if o.strip()]

# Day buckets of the visitor trend and the peak hour are computed in this zone.
TIMEZONE = os.environ.get("TRACKER_TIMEZONE", "UTC")

# 0 keeps sessions for the lifetime of the process.
SESSION_RETENTION_DAYS = int(os.environ.get("TRACKER_SESSION_RETENTION_DAYS", "0"))

LOG_LEVEL = os.environ.get("TRACKER_LOG_LEVEL", "INFO")

PORT = int(os.environ.get("PORT", "3002"))


@dataclass(frozen=True)
class Settings:
    geoip_db_path: str = GEOIP_DB_PATH
    cors_allow_origins: list[str] = field(default_factory=lambda: list(CORS_ALLOW_ORIGINS))
    timezone: str = TIMEZONE
    session_retention_days: int = SESSION_RETENTION_DAYS
    log_level: str = LOG_LEVEL

    def __post_init__(self) -> None:
        if self.session_retention_days < 0:
            raise ValueError("session_retention_days must be >= 0")
        # fail at startup on a bad zone name, not on the first stats request
        ZoneInfo(self.timezone)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)
