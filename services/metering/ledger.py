# services/metering/ledger.py
"""
Usage Ledger: append-only record of admitted operations (who, which tool,
when). Analytics/audit only; the entitlement decision never reads it.
Per-tool breakdowns come from here, not from the pooled quota counter.
"""
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from domain.models import db, UsageLog
from domain.policies import ToolType
from utils.time_utils import to_utc_naive

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageLogEntry:
    caller_id: str
    caller_kind: str
    tool_type: ToolType
    timestamp: datetime
    id: Optional[int] = None

    def to_dict(self):
        return {
            "id": self.id,
            "caller_id": self.caller_id,
            "caller_kind": self.caller_kind,
            "tool_type": self.tool_type.value,
            "created_at": self.timestamp.isoformat(),
        }


class UsageLedger(ABC):
    @abstractmethod
    def append(self, entry: UsageLogEntry) -> None:
        ...

    @abstractmethod
    def recent(self, caller_id: str, limit: int = 50):
        """Newest first."""

    @abstractmethod
    def tool_counts(self, caller_id: str, start: datetime, end: datetime) -> dict:
        """{tool_value: count} for entries in [start, end)."""


class MemoryUsageLedger(UsageLedger):
    def __init__(self):
        self._entries = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def append(self, entry):
        with self._lock:
            self._entries.append(replace(entry, id=next(self._ids)))

    def recent(self, caller_id, limit=50):
        with self._lock:
            mine = [e for e in self._entries if e.caller_id == caller_id]
        return [e.to_dict() for e in reversed(mine)][:limit]

    def tool_counts(self, caller_id, start, end):
        with self._lock:
            hits = [e.tool_type.value for e in self._entries
                    if e.caller_id == caller_id and start <= e.timestamp < end]
        return dict(Counter(hits))

    @property
    def entries(self):
        with self._lock:
            return list(self._entries)


class SqlUsageLedger(UsageLedger):
    """Writes in its own commit, after the entitlement commit has landed."""

    def append(self, entry):
        try:
            db.session.add(UsageLog(
                caller_id=entry.caller_id,
                caller_kind=entry.caller_kind,
                tool_type=entry.tool_type.value,
                created_at=to_utc_naive(entry.timestamp),
            ))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

    def recent(self, caller_id, limit=50):
        rows = (UsageLog.query
                .filter(UsageLog.caller_id == caller_id)
                .order_by(UsageLog.created_at.desc(), UsageLog.id.desc())
                .limit(limit)
                .all())
        return [row.to_dict() for row in rows]

    def tool_counts(self, caller_id, start, end):
        rows = (db.session.query(UsageLog.tool_type, func.count(UsageLog.id))
                .filter(UsageLog.caller_id == caller_id,
                        UsageLog.created_at >= to_utc_naive(start),
                        UsageLog.created_at < to_utc_naive(end))
                .group_by(UsageLog.tool_type)
                .all())
        return {tool: int(n) for tool, n in rows}


def build_ledger(backend: str) -> UsageLedger:
    backend = (backend or "sql").strip().lower()
    if backend == "memory":
        return MemoryUsageLedger()
    return SqlUsageLedger()
