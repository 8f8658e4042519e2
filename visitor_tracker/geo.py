import os
import threading
from collections.abc import Mapping

import geoip2.database
import geoip2.errors

LOCAL = "Local"
UNKNOWN = "Unknown"

LOOPBACK_ADDRESSES = ("127.0.0.1", "::1")
MAPPED_LOOPBACK_PREFIX = "::ffff:127."


def pick_client_address(remote_addr: str | None, headers: Mapping[str, str]) -> str | None:
    """
    First usable address: X-Forwarded-For (first hop), X-Real-IP, then the
    socket peer.
    """
    forwarded = headers.get("X-Forwarded-For") or ""
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop

    real_ip = (headers.get("X-Real-IP") or "").strip()
    if real_ip:
        return real_ip

    return remote_addr or None


def is_loopback(ip: str) -> bool:
    return ip in LOOPBACK_ADDRESSES or ip.startswith(MAPPED_LOOPBACK_PREFIX)


class GeoResolver:
    """
    Country lookup against a local MaxMind database.

    The reader is opened on first use and shared read-only afterwards. A
    missing database file is not an error: every public address then
    resolves to Unknown.
    """

    def __init__(self, db_path: str, reader=None):
        self.db_path = db_path
        self._reader = reader
        self._opened = reader is not None
        self._lock = threading.Lock()

    def get_reader(self):
        if self._opened:
            return self._reader
        with self._lock:
            if not self._opened:
                if os.path.exists(self.db_path):
                    self._reader = geoip2.database.Reader(self.db_path)
                self._opened = True
        return self._reader

    def country_for_ip(self, raw_ip: str | None) -> str:
        """
        ISO country code for a single address, or a sentinel.
        """
        if not raw_ip:
            return UNKNOWN
        if is_loopback(raw_ip):
            return LOCAL

        reader = self.get_reader()
        if reader is None:
            return UNKNOWN
        try:
            resp = reader.country(raw_ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return UNKNOWN
        code = resp.country.iso_code or resp.registered_country.iso_code
        return code if code else UNKNOWN

    def resolve_country(self, remote_addr: str | None, headers: Mapping[str, str]) -> str:
        return self.country_for_ip(pick_client_address(remote_addr, headers))

    def close(self) -> None:
        with self._lock:
            if self._reader is not None:
                self._reader.close()
            self._reader = None
            self._opened = False
