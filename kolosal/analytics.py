from __future__ import annotations

import logging
import math
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, List, Optional

from .storage import isoformat, now_utc, parse_timestamp, utcnow

logger = logging.getLogger("kolosal.analytics")


def _finite(name: str, value: Any) -> float:
    number = float(value or 0)
    if not math.isfinite(number):
        raise ValueError(f"{name} must be a finite number")
    return number


@dataclass
class RequestRecord:
    model: str
    tokens: float = 0
    response_time: float = 0.0
    success: bool = False
    cost: float = 0.0
    timestamp: str = field(default_factory=utcnow)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RequestRecord":
        """
        Accept both the camelCase shape posted by the dashboard and snake_case.
        """
        response_time = payload.get("responseTime", payload.get("response_time", 0))
        timestamp = payload.get("timestamp") or utcnow()
        parse_timestamp(str(timestamp))
        return cls(
            model=str(payload.get("model") or "unknown"),
            tokens=_finite("tokens", payload.get("tokens")),
            response_time=_finite("responseTime", response_time),
            success=bool(payload.get("success", False)),
            cost=_finite("cost", payload.get("cost")),
            timestamp=str(timestamp),
        )

    def to_payload(self) -> Dict[str, Any]:
        data = asdict(self)
        data["responseTime"] = data.pop("response_time")
        return data


class AnalyticsLog:
    """
    Bounded in-memory log of request records with dashboard aggregations.
    """

    def __init__(self, max_records: int = 1000) -> None:
        self.max_records = max_records
        self._records: Deque[RequestRecord] = deque(maxlen=max_records)
        self._lock = threading.Lock()

    def add(self, record: RequestRecord) -> None:
        with self._lock:
            self._records.append(record)

    def record(
        self,
        *,
        model: str,
        tokens: float,
        response_time: float,
        success: bool,
        cost: float = 0.0,
    ) -> RequestRecord:
        entry = RequestRecord(
            model=model,
            tokens=tokens,
            response_time=response_time,
            success=success,
            cost=cost,
        )
        self.add(entry)
        logger.debug(
            "Recorded request model=%s tokens=%s success=%s time=%.3fs",
            model,
            tokens,
            success,
            response_time,
        )
        return entry

    def records(self) -> List[RequestRecord]:
        with self._lock:
            return list(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def resize(self, max_records: int) -> None:
        with self._lock:
            if max_records == self.max_records:
                return
            self.max_records = max_records
            self._records = deque(self._records, maxlen=max_records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def summary(self, now: Optional[datetime] = None, window_days: int = 30) -> Dict[str, Any]:
        now = now or now_utc()
        cutoff = now - timedelta(days=window_days)
        recent = []
        for entry in self.records():
            moment = parse_timestamp(entry.timestamp).astimezone(timezone.utc)
            if moment >= cutoff:
                recent.append((moment, entry))

        per_model: Dict[str, Dict[str, Any]] = {}
        for _, entry in recent:
            bucket = per_model.setdefault(
                entry.model,
                {"requests": 0, "tokens": 0, "cost": 0.0, "times": [], "successes": 0},
            )
            bucket["requests"] += 1
            bucket["tokens"] += entry.tokens
            bucket["cost"] += entry.cost
            bucket["times"].append(entry.response_time)
            if entry.success:
                bucket["successes"] += 1

        usage_data = [
            {
                "model": model,
                "requests": bucket["requests"],
                "cost": bucket["cost"],
                "success": f"{bucket['successes'] / bucket['requests'] * 100:.1f}",
                "avgResponseTime": f"{sum(bucket['times']) / len(bucket['times']):.2f}",
            }
            for model, bucket in per_model.items()
        ]

        daily_usage = []
        today = now.date()
        for offset in range(6, -1, -1):
            day = today - timedelta(days=offset)
            day_entries = [entry for moment, entry in recent if moment.date() == day]
            daily_usage.append(
                {
                    "date": day.isoformat(),
                    "requests": len(day_entries),
                    "cost": sum(entry.cost for entry in day_entries),
                }
            )

        total = len(recent)
        successes = sum(1 for _, entry in recent if entry.success)
        avg_success = round(successes / total * 100, 1) if total else 0.0
        avg_time = round(sum(entry.response_time for _, entry in recent) / total, 2) if total else 0.0

        return {
            "totalRequests": total,
            "totalCost": sum(entry.cost for _, entry in recent),
            "avgSuccessRate": avg_success,
            "avgResponseTime": avg_time,
            "usageData": usage_data,
            "dailyUsage": daily_usage,
            "lastUpdated": isoformat(now),
        }
