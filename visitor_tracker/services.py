from collections.abc import Mapping
from datetime import datetime, timezone, tzinfo

from visitor_tracker import aggregate, config
from visitor_tracker.classify import classify_device, classify_source
from visitor_tracker.errors import InvalidPayload, MissingPageCode, NoData
from visitor_tracker.geo import GeoResolver
from visitor_tracker.logs import get_logger
from visitor_tracker.store import VisitStore

log = get_logger(__name__, config.LOG_LEVEL)

VERIFIED_MESSAGE = "Tracking code is installed and receiving data"
NOT_VERIFIED_MESSAGE = "No data received yet. Please ensure the tracking code is installed."


def as_text(value, field: str) -> str:
    """
    JSON scalars become strings (a numeric sessionId 42 is the same session
    as "42"); missing values become "". Lists, objects and booleans are
    rejected.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise InvalidPayload(field)


class IngestionService:
    def __init__(self, store: VisitStore, geo: GeoResolver):
        self.store = store
        self.geo = geo

    def track(
        self,
        page_code: str | None,
        payload: Mapping,
        user_agent: str | None = None,
        remote_addr: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> dict:
        """
        Record one ping. Delivery is at-least-once from the snippet (load,
        tab regain, unload) and repeats are counted as page views.
        """
        page_code = as_text(page_code, "pageCode")
        if not page_code:
            raise MissingPageCode()
        referrer = as_text(payload.get("referrer"), "referrer")
        page_url = as_text(payload.get("pageUrl"), "pageUrl")
        client_session = as_text(payload.get("sessionId"), "sessionId")

        session_id = self.store.record_visit(
            page_code,
            device=classify_device(user_agent),
            source=classify_source(referrer),
            country=self.geo.resolve_country(remote_addr, headers or {}),
            referrer=referrer,
            session_id=client_session or None,
            page_url=page_url,
            user_agent=user_agent or "",
        )

        log.info(
            "ping received",
            extra={"page_code": page_code, "session_id": session_id, "route": "track"},
        )
        return {"sessionId": session_id}


class QueryService:
    def __init__(self, store: VisitStore, tz: tzinfo = timezone.utc, clock=None):
        self.store = store
        self.tz = tz
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def verify(self, page_code: str) -> dict:
        count = self.store.visit_count(page_code)
        log.info(
            f"verify: {count} data points",
            extra={"page_code": page_code, "route": "verify"},
        )
        if count:
            return {"verified": True, "message": VERIFIED_MESSAGE, "dataPoints": count}
        return {"verified": False, "message": NOT_VERIFIED_MESSAGE}

    def stats(self, page_code: str) -> dict:
        snap = self.store.snapshot(page_code)
        if snap.empty:
            raise NoData(page_code)

        payload = aggregate.compute(snap, now=self.clock(), tz=self.tz)
        log.info(
            f"stats: {payload['totalVisitors']} visitors, {payload['pageViews']} views",
            extra={"page_code": page_code, "route": "stats"},
        )
        return payload
