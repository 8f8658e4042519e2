"""
Stats payload computed from a store snapshot.

Pure functions only: nothing here touches the store or the clock except
through arguments. Keys of the returned payload are camelCase because the
dashboard consumes the dict as-is.
"""

from collections import Counter
from datetime import datetime, timedelta, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal

from visitor_tracker.store import Snapshot

TREND_DAYS = 30
TOP_COUNTRIES = 10
TOP_REFERRERS = 5


def round_half_up(value: float, places: int = 0) -> float | int:
    """
    Round like a dashboard reader would (2.5 -> 3), not banker's rounding.
    """
    exp = Decimal(1).scaleb(-places)
    rounded = Decimal(repr(value)).quantize(exp, rounding=ROUND_HALF_UP)
    return int(rounded) if places == 0 else float(rounded)


def day_label(d) -> str:
    return f"{d:%b} {d.day}"


def ranked(counts: Counter, limit: int) -> list[tuple[str, int]]:
    # sorted() is stable and Counter keeps insertion order: ties stay first-seen
    return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:limit]


def percentages(counts: Counter) -> list[dict]:
    total = sum(counts.values())
    return [
        {"name": name, "value": round_half_up(count / total * 100) if total else 0}
        for name, count in counts.items()
    ]


def visitor_trend(visits, now: datetime, tz: tzinfo) -> list[dict]:
    """
    Exactly TREND_DAYS entries, oldest first, ending on `now`'s calendar day.
    """
    today = now.astimezone(tz).date()
    days = [today - timedelta(days=i) for i in range(TREND_DAYS - 1, -1, -1)]
    per_day = Counter(v.timestamp.astimezone(tz).date() for v in visits)
    return [{"day": day_label(d), "visitors": per_day.get(d, 0)} for d in days]


def peak_hour(visits, tz: tzinfo) -> str | None:
    hours = Counter(v.timestamp.astimezone(tz).hour for v in visits)
    if not hours:
        return None
    # ties go to the earliest hour of the day
    hour = min(hours, key=lambda h: (-hours[h], h))
    return f"{hour:02d}:00"


def compute(snapshot: Snapshot, now: datetime | None = None, tz: tzinfo = timezone.utc) -> dict:
    now = now or datetime.now(timezone.utc)
    visits = snapshot.visits
    sessions = list(snapshot.sessions.values())

    total_visitors = len(sessions)
    page_views = len(visits)

    if total_visitors:
        bounced = sum(1 for s in sessions if s.bounced)
        bounce_rate = round_half_up(bounced / total_visitors * 100, 1)
        avg_duration = round_half_up(
            sum(s.duration_minutes for s in sessions) / total_visitors, 2
        )
        pages_per_session = round_half_up(page_views / total_visitors, 2)
    else:
        bounce_rate = 0
        avg_duration = 0
        pages_per_session = 0

    countries = Counter(s.country or "Unknown" for s in sessions)
    referrers = Counter(v.referrer for v in visits if v.referrer)

    return {
        "totalVisitors": total_visitors,
        "pageViews": page_views,
        "bounceRate": bounce_rate,
        "avgSessionDuration": avg_duration,
        "pagesPerSession": pages_per_session,
        "peakTrafficHour": peak_hour(visits, tz),
        "visitorTrend": visitor_trend(visits, now, tz),
        "trafficSources": percentages(Counter(s.source for s in sessions)),
        "deviceTypes": percentages(Counter(s.device for s in sessions)),
        "countries": [
            {"name": name, "count": count}
            for name, count in ranked(countries, TOP_COUNTRIES)
        ],
        "topReferrers": [
            {"url": url, "count": count}
            for url, count in ranked(referrers, TOP_REFERRERS)
        ],
    }
