from __future__ import annotations

import copy
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    """Render a timestamp the way JavaScript's toISOString does."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def utcnow() -> str:
    return isoformat(now_utc())


def parse_timestamp(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def millis() -> int:
    return time.time_ns() // 1_000_000


class RecordStore:
    """
    Process-local list of JSON-like records keyed by their ``id`` field.

    Contents are lost on restart. All access goes through a lock because
    FastAPI runs sync handlers on a thread pool.
    """

    def __init__(self, seed: Optional[Callable[[], Iterable[Dict[str, Any]]]] = None) -> None:
        self._seed = seed
        self._lock = threading.RLock()
        self._records: List[Dict[str, Any]] = []
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._records = copy.deepcopy(list(self._seed())) if self._seed else []

    def list(self) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._records)

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._find(record_id)
            return copy.deepcopy(record) if record is not None else None

    def add(self, record: Dict[str, Any], *, front: bool = False) -> Dict[str, Any]:
        with self._lock:
            if front:
                self._records.insert(0, record)
            else:
                self._records.append(record)
            return copy.deepcopy(record)

    def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._find(record_id)
            if record is None:
                return None
            record.update({key: value for key, value in fields.items() if key != "id"})
            return copy.deepcopy(record)

    def mutate(self, record_id: str, func: Callable[[Dict[str, Any]], None]) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._find(record_id)
            if record is None:
                return None
            func(record)
            return copy.deepcopy(record)

    def remove(self, record_id: str) -> bool:
        with self._lock:
            record = self._find(record_id)
            if record is None:
                return False
            self._records.remove(record)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _find(self, record_id: str) -> Optional[Dict[str, Any]]:
        for record in self._records:
            if record.get("id") == record_id:
                return record
        return None
