"""
In-memory visit store.

One PageCollection per page code, each behind its own lock, so pings for
different pages never contend. Nothing here survives a restart.
"""

import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Visit:
    page_code: str
    timestamp: datetime
    session_id: str
    device: str
    source: str
    country: str
    referrer: str = ""
    page_url: str = ""
    user_agent: str = ""


@dataclass
class Session:
    start_time: datetime
    last_activity: datetime
    page_views: int
    device: str
    source: str
    country: str

    @property
    def bounced(self) -> bool:
        return self.page_views == 1

    @property
    def duration_minutes(self) -> float:
        return (self.last_activity - self.start_time).total_seconds() / 60


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time copy of one page's data. Safe to read without locks."""

    visits: tuple[Visit, ...] = ()
    sessions: dict[str, Session] = field(default_factory=dict)
    first_visit: datetime | None = None
    last_visit: datetime | None = None

    @property
    def empty(self) -> bool:
        return not self.visits


@dataclass
class PageCollection:
    first_visit: datetime
    last_visit: datetime
    visits: list[Visit] = field(default_factory=list)
    sessions: dict[str, Session] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    # set under `lock` once the collection is unlinked from the store
    retired: bool = False


class VisitStore:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self._pages: dict[str, PageCollection] = {}
        self._registry_lock = threading.Lock()

    def _collection(self, page_code: str, now: datetime) -> PageCollection:
        # dict.get is atomic; only creation needs the registry lock
        coll = self._pages.get(page_code)
        if coll is not None:
            return coll
        with self._registry_lock:
            coll = self._pages.get(page_code)
            if coll is None:
                coll = PageCollection(first_visit=now, last_visit=now)
                self._pages[page_code] = coll
            return coll

    def _retire(self, page_code: str, coll: PageCollection) -> None:
        # caller holds coll.lock; lock order is always page lock -> registry lock
        coll.retired = True
        with self._registry_lock:
            if self._pages.get(page_code) is coll:
                del self._pages[page_code]

    def record_visit(
        self,
        page_code: str,
        *,
        device: str,
        source: str,
        country: str,
        referrer: str | None = None,
        session_id: str | None = None,
        page_url: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """
        Append one visit and fold it into its session.

        Returns the session id actually used, generating one when the client
        sent none.
        """
        session_id = session_id or str(uuid.uuid4())
        if not isinstance(page_code, str) or not isinstance(session_id, str):
            raise TypeError("page_code and session_id must be strings")
        now = self.clock()
        visit = Visit(
            page_code=page_code,
            timestamp=now,
            session_id=session_id,
            device=device,
            source=source,
            country=country,
            referrer=referrer or "",
            page_url=page_url or "",
            user_agent=user_agent or "",
        )

        while True:
            coll = self._collection(page_code, now)
            with coll.lock:
                if coll.retired:
                    # pruned between lookup and lock; make sure it is unlinked, then retry
                    self._retire(page_code, coll)
                    continue
                try:
                    session = self._next_session(coll, session_id, visit)
                except Exception:
                    if not coll.visits:
                        self._retire(page_code, coll)
                    raise
                # everything above may fail without side effects; below cannot
                coll.visits.append(visit)
                coll.sessions[session_id] = session
                coll.last_visit = max(coll.last_visit, now)
                return session_id

    @staticmethod
    def _next_session(coll: PageCollection, session_id: str, visit: Visit) -> Session:
        existing = coll.sessions.get(session_id)
        if existing is None:
            return Session(
                start_time=visit.timestamp,
                last_activity=visit.timestamp,
                page_views=1,
                device=visit.device,
                source=visit.source,
                country=visit.country,
            )
        return replace(
            existing,
            last_activity=max(existing.last_activity, visit.timestamp),
            page_views=existing.page_views + 1,
        )

    def has_data(self, page_code: str) -> bool:
        return self.visit_count(page_code) > 0

    def visit_count(self, page_code: str) -> int:
        coll = self._pages.get(page_code)
        if coll is None:
            return 0
        with coll.lock:
            return len(coll.visits)

    def snapshot(self, page_code: str) -> Snapshot:
        coll = self._pages.get(page_code)
        if coll is None:
            return Snapshot()
        with coll.lock:
            # sessions are replaced, never mutated in place, so a shallow copy is enough
            return Snapshot(
                visits=tuple(coll.visits),
                sessions=dict(coll.sessions),
                first_visit=coll.first_visit,
                last_visit=coll.last_visit,
            )

    def page_codes(self) -> list[str]:
        with self._registry_lock:
            return list(self._pages)

    def tracked_pages(self) -> int:
        return len(self.page_codes())

    def prune_sessions(self, older_than: datetime) -> int:
        """
        Drop sessions whose last activity is before `older_than`, along with
        their visits, and pages left with no visits at all. Returns the number
        of sessions removed.
        """
        removed = 0
        for page_code in self.page_codes():
            coll = self._pages.get(page_code)
            if coll is None:
                continue
            with coll.lock:
                if coll.retired:
                    continue
                stale = {
                    sid for sid, s in coll.sessions.items()
                    if s.last_activity < older_than
                }
                if not stale:
                    continue
                coll.visits = [v for v in coll.visits if v.session_id not in stale]
                for sid in stale:
                    del coll.sessions[sid]
                removed += len(stale)
                if not coll.visits:
                    self._retire(page_code, coll)
        return removed
