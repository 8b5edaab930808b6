from datetime import datetime, timedelta, timezone

import pytest

from kolosal.analytics import AnalyticsLog, RequestRecord
from kolosal.storage import isoformat

NOW = datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)


def _record(model: str, *, days_ago: float = 0, success: bool = True, cost: float = 0.0, time: float = 1.0) -> RequestRecord:
    return RequestRecord(
        model=model,
        tokens=10,
        response_time=time,
        success=success,
        cost=cost,
        timestamp=isoformat(NOW - timedelta(days=days_ago)),
    )


def test_empty_summary_has_zeroed_week() -> None:
    summary = AnalyticsLog().summary(now=NOW)
    assert summary["totalRequests"] == 0
    assert summary["avgSuccessRate"] == 0
    assert summary["usageData"] == []
    assert [day["date"] for day in summary["dailyUsage"]] == [
        (NOW.date() - timedelta(days=offset)).isoformat() for offset in range(6, -1, -1)
    ]
    assert all(day["requests"] == 0 for day in summary["dailyUsage"])


def test_summary_groups_by_model_and_window() -> None:
    log = AnalyticsLog()
    log.add(_record("phi", time=1.0, cost=0.5))
    log.add(_record("phi", time=2.0, success=False))
    log.add(_record("llama2", days_ago=2, time=4.0))
    log.add(_record("phi", days_ago=45))

    summary = log.summary(now=NOW, window_days=30)

    assert summary["totalRequests"] == 3
    assert summary["totalCost"] == pytest.approx(0.5)
    assert summary["avgSuccessRate"] == 66.7
    assert summary["avgResponseTime"] == pytest.approx(2.33)
    usage = {row["model"]: row for row in summary["usageData"]}
    assert usage["phi"]["requests"] == 2
    assert usage["phi"]["success"] == "50.0"
    assert usage["phi"]["avgResponseTime"] == "1.50"
    assert usage["llama2"]["success"] == "100.0"
    assert summary["dailyUsage"][-1]["requests"] == 2
    assert summary["dailyUsage"][-3]["requests"] == 1
    assert summary["lastUpdated"] == "2024-01-20T12:00:00.000Z"


def test_log_is_bounded_and_resizable() -> None:
    log = AnalyticsLog(max_records=3)
    for index in range(5):
        log.record(model=f"m{index}", tokens=1, response_time=0.1, success=True)
    assert [entry.model for entry in log.records()] == ["m2", "m3", "m4"]
    log.resize(2)
    assert [entry.model for entry in log.records()] == ["m3", "m4"]


def test_payload_accepts_camel_case_and_rejects_bad_timestamp() -> None:
    record = RequestRecord.from_payload(
        {"model": "phi", "tokens": 40, "responseTime": 1.5, "success": True, "timestamp": "2024-01-20T10:00:00Z"}
    )
    assert record.response_time == 1.5
    assert record.to_payload()["responseTime"] == 1.5
    with pytest.raises(ValueError):
        RequestRecord.from_payload({"model": "phi", "timestamp": "yesterday"})


def test_daily_buckets_use_utc_dates() -> None:
    log = AnalyticsLog()
    # 01:00 at +05:00 on the 20th is still the 19th in UTC.
    log.add(RequestRecord(model="phi", timestamp="2024-01-20T01:00:00+05:00"))
    daily = {day["date"]: day["requests"] for day in log.summary(now=NOW)["dailyUsage"]}
    assert daily["2024-01-19"] == 1
    assert daily["2024-01-20"] == 0


def test_payload_rejects_non_finite_numbers() -> None:
    with pytest.raises(ValueError):
        RequestRecord.from_payload({"model": "phi", "cost": float("inf")})
    with pytest.raises(ValueError):
        RequestRecord.from_payload({"model": "phi", "responseTime": "nan"})
