# client/quota_client.py
"""
HTTP client for the usage API plus the client-side mirror.

The mirror is a display cache of the last server answer. It is refreshed
from every response and has no say in whether an operation may run: only
`consume()` on the server decides that.
"""
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import requests


class QuotaClientError(Exception):
    pass


class QuotaExceededError(QuotaClientError):
    def __init__(self, data: dict):
        super().__init__(data.get("error") or "quota_exhausted")
        self.used = data.get("used")
        self.limit = data.get("limit")
        self.reset_time = data.get("resetTime")
        self.upgrade_required = bool(data.get("upgradeRequired"))

    def time_until_reset(self, now: Optional[datetime] = None) -> str:
        if not self.reset_time:
            return "unknown"
        reset = datetime.fromisoformat(self.reset_time)
        if reset.tzinfo is None:
            reset = reset.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        secs = int((reset - now).total_seconds())
        if secs <= 0:
            return "Available now"
        hours, rem = divmod(secs, 3600)
        minutes = rem // 60
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"


class QuotaUnavailableError(QuotaClientError):
    """Server could not decide (storage/network). Retry; do not prompt an upgrade."""


@dataclass(frozen=True)
class MirrorSnapshot:
    used: int
    limit: int
    remaining: int
    fetched_at: float
    plan: Optional[str] = None
    reset_time: Optional[str] = None


class UsageMirror:
    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot = None

    def update(self, payload: dict):
        if "used" not in payload or "limit" not in payload:
            return
        limit = int(payload["limit"])
        used = int(payload["used"])
        remaining = payload.get("remaining")
        snap = MirrorSnapshot(
            used=used,
            limit=limit,
            remaining=int(remaining) if remaining is not None else max(0, limit - used),
            fetched_at=self._clock(),
            plan=payload.get("plan"),
            reset_time=payload.get("resetTime"),
        )
        with self._lock:
            self._snapshot = snap

    @property
    def snapshot(self) -> Optional[MirrorSnapshot]:
        with self._lock:
            return self._snapshot

    def is_stale(self, max_age: float = 30.0) -> bool:
        snap = self.snapshot
        return snap is None or (self._clock() - snap.fetched_at) > max_age

    def clear(self):
        with self._lock:
            self._snapshot = None


class QuotaClient:
    def __init__(self, base_url: str, token: str = None, session: requests.Session = None,
                 timeout: float = 5.0, mirror: UsageMirror = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self.mirror = mirror or UsageMirror()

    def _request(self, method, path, **kw):
        try:
            return self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kw)
        except requests.RequestException as e:
            raise QuotaUnavailableError(f"network error: {e}") from e

    @staticmethod
    def _json(resp):
        try:
            return resp.json()
        except ValueError:
            return {}

    def usage_status(self) -> dict:
        resp = self._request("GET", "/api/usage")
        data = self._json(resp)
        if resp.status_code != 200:
            raise QuotaUnavailableError(data.get("error") or f"HTTP {resp.status_code}")
        self.mirror.update(data)
        return data

    def consume(self, tool: str) -> dict:
        resp = self._request("POST", "/api/usage/consume", json={"tool": tool})
        data = self._json(resp)
        if resp.status_code == 429:
            self.mirror.update(data)
            raise QuotaExceededError(data)
        if resp.status_code == 503 or resp.status_code >= 500:
            raise QuotaUnavailableError(data.get("error") or f"HTTP {resp.status_code}")
        if resp.status_code != 200:
            raise QuotaClientError(data.get("message") or data.get("error") or f"HTTP {resp.status_code}")
        self.mirror.update(data)
        return data
