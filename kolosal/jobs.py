from __future__ import annotations

import asyncio
import logging
import math
import random
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .storage import RecordStore, isoformat, millis, now_utc, parse_timestamp

logger = logging.getLogger("kolosal.jobs")

JOB_STATUSES = ("pending", "running", "completed", "failed")

DEFAULT_HYPERPARAMETERS = {
    "n_epochs": 3,
    "batch_size": 4,
    "learning_rate": 0.0001,
}


class JobError(RuntimeError):
    """Raised for invalid fine-tuning requests."""


def seed_jobs() -> List[Dict[str, Any]]:
    now = now_utc()
    return [
        {
            "id": "ft-job-1",
            "model": "phi:latest",
            "status": "completed",
            "created_at": isoformat(now - timedelta(hours=24)),
            "finished_at": isoformat(now - timedelta(hours=23)),
            "training_file": "training_data.jsonl",
            "validation_file": "validation_data.jsonl",
            "hyperparameters": {"n_epochs": 3, "batch_size": 4, "learning_rate": 0.0001},
            "result_files": ["phi-ft-model.bin"],
            "trained_tokens": 125000,
        },
        {
            "id": "ft-job-2",
            "model": "phi:latest",
            "status": "running",
            "created_at": isoformat(now - timedelta(hours=2)),
            "training_file": "custom_training.jsonl",
            "hyperparameters": {"n_epochs": 5, "batch_size": 8, "learning_rate": 0.00005},
            "trained_tokens": 45000,
        },
    ]


def _hyperparameters(raw: Any) -> Dict[str, Any]:
    params = dict(DEFAULT_HYPERPARAMETERS)
    if raw is None:
        return params
    if not isinstance(raw, dict):
        raise JobError("Hyperparameters must be an object")
    for key, cast in (("n_epochs", int), ("batch_size", int), ("learning_rate", float)):
        value = raw.get(key)
        if value is None:
            continue
        try:
            number = cast(value)
        except (TypeError, ValueError, OverflowError) as exc:
            raise JobError(f"Hyperparameter '{key}' must be a number") from exc
        if not math.isfinite(number):
            raise JobError(f"Hyperparameter '{key}' must be finite")
        if number <= 0:
            raise JobError(f"Hyperparameter '{key}' must be positive")
        params[key] = number
    return params


class FineTuningService(RecordStore):
    """
    Simulated fine-tuning queue. Jobs created here move pending -> running ->
    completed on a timer driven by :meth:`tick`; seeded jobs never move.
    """

    def __init__(
        self,
        start_after: float = 2,
        complete_after: float = 30,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.start_after = start_after
        self.complete_after = complete_after
        self.rng = rng or random.Random()
        self._scheduled: Dict[str, datetime] = {}
        super().__init__(seed=seed_jobs)

    def reset(self) -> None:
        with self._lock:
            super().reset()
            self._scheduled = {}

    def create(
        self,
        *,
        model: Any,
        training_file: Any,
        validation_file: Any = None,
        hyperparameters: Any = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if not model or not training_file:
            raise JobError("Model and training file are required")
        now = now or now_utc()
        job: Dict[str, Any] = {
            "id": f"ft-job-{millis()}",
            "model": str(model),
            "status": "pending",
            "created_at": isoformat(now),
            "training_file": str(training_file),
            "hyperparameters": _hyperparameters(hyperparameters),
        }
        if validation_file:
            job["validation_file"] = str(validation_file)
        with self._lock:
            while self._find(job["id"]) is not None:
                job["id"] = f"ft-job-{millis() + self.rng.randrange(1, 1000)}"
            self._scheduled[job["id"]] = now
            created = self.add(job, front=True)
        logger.info("Queued fine-tuning job %s for model %s", job["id"], job["model"])
        return created

    def tick(self, now: Optional[datetime] = None) -> int:
        """Advance scheduled jobs; returns how many changed state."""
        now = now or now_utc()
        changed = 0
        with self._lock:
            for job_id, created in list(self._scheduled.items()):
                job = self._find(job_id)
                if job is None:
                    self._scheduled.pop(job_id, None)
                    continue
                elapsed = (now - created).total_seconds()
                if job["status"] == "pending" and elapsed >= self.start_after:
                    job["status"] = "running"
                    changed += 1
                    logger.info("Fine-tuning job %s is running", job_id)
                if job["status"] == "running" and elapsed >= self.complete_after:
                    job["status"] = "completed"
                    job["finished_at"] = isoformat(now)
                    job["result_files"] = [f"{job['model']}-ft-{millis()}.bin"]
                    job["trained_tokens"] = self.rng.randrange(50000, 150000)
                    self._scheduled.pop(job_id, None)
                    changed += 1
                    logger.info("Fine-tuning job %s completed", job_id)
        return changed

    def delete(self, job_id: str) -> None:
        with self._lock:
            job = self._find(job_id)
            if job is None:
                raise KeyError(job_id)
            if job["status"] == "running":
                raise JobError("Cannot delete running job")
            self.remove(job_id)
            self._scheduled.pop(job_id, None)
        logger.info("Deleted fine-tuning job %s", job_id)

    def counts(self) -> Dict[str, int]:
        totals = {status: 0 for status in JOB_STATUSES}
        for job in self.list():
            totals[job["status"]] = totals.get(job["status"], 0) + 1
        return totals

    def runtime(self, job: Dict[str, Any], now: Optional[datetime] = None) -> float:
        end = parse_timestamp(job["finished_at"]) if job.get("finished_at") else (now or now_utc())
        return max(0.0, (end - parse_timestamp(job["created_at"])).total_seconds())


class JobMonitor:
    """
    Periodically advances fine-tuning jobs from the event loop.
    """

    def __init__(self, service: FineTuningService, interval: float = 1.0) -> None:
        self.service = service
        self.interval = interval

    async def loop(self, clock: Callable[[], datetime] = now_utc) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.service.tick(clock())
            except Exception:  # pragma: no cover - keep the monitor alive
                logger.exception("Fine-tuning monitor tick failed")
