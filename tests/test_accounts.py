import pytest

from kolosal.accounts import ApiKeyStore, ClusterStore, mask_key


def test_keys_are_masked_in_listings() -> None:
    store = ApiKeyStore()
    assert mask_key("sk-1234567890abcdef") == "sk-1234...cdef"
    assert [item["key"] for item in store.masked()][0] == "sk-1234...cdef"
    assert store.get("ak_1")["key"] == "sk-1234567890abcdef"


def test_created_key_is_returned_in_full_and_listed_first() -> None:
    store = ApiKeyStore()
    record = store.create("CI", permissions=["read"])
    assert record["key"].startswith("sk-")
    assert "..." not in record["key"]
    assert record["lastUsed"] == "Never"
    assert store.list()[0]["id"] == record["id"]
    assert store.remove(record["id"])
    assert not store.remove(record["id"])


def test_cluster_metrics_cover_running_clusters() -> None:
    metrics = ClusterStore().metrics()
    assert metrics["total_clusters"] == 4
    assert metrics["running_clusters"] == 3
    assert metrics["total_cost_today"] == pytest.approx((15.50 + 8.75 + 12.25) * 24)
    assert metrics["total_requests"] == 1600
    assert metrics["active_endpoints"] == 7


def test_cluster_search_and_status_changes() -> None:
    store = ClusterStore()
    assert [item["id"] for item in store.search(status="stopped")] == ["cluster-3"]
    assert [item["id"] for item in store.search(query="EU-WEST")] == ["cluster-4"]
    stopped = store.set_status("cluster-1", "stopped")
    assert stopped["status"] == "stopped"
    assert store.metrics()["running_clusters"] == 2
    assert store.set_status("cluster-404", "running") is None


def test_cluster_create_validates() -> None:
    store = ClusterStore()
    with pytest.raises(ValueError):
        store.create({"type": "compute"})
    with pytest.raises(ValueError):
        store.create({"name": "x", "type": "quantum"})
    cluster = store.create({"name": "Batch", "type": "training", "nodes": 2})
    assert cluster["status"] == "pending"
    assert cluster["gpu_count"] == 2
    assert cluster["cost_per_hour"] == 10.5
    assert store.list()[0]["id"] == cluster["id"]
