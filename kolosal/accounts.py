from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, List, Optional

from .storage import RecordStore, millis, utcnow

logger = logging.getLogger("kolosal.accounts")

DEFAULT_PERMISSIONS = ["read", "write", "models"]
CLUSTER_TYPES = {"compute", "storage", "inference", "training"}
CLUSTER_STATUSES = {"running", "stopped", "pending", "error"}


def _base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    out = []
    while number:
        number, remainder = divmod(number, 36)
        out.append(digits[remainder])
    return "".join(reversed(out))


def mask_key(key: str) -> str:
    if len(key) <= 11:
        return key[:3] + "..."
    return f"{key[:7]}...{key[-4:]}"


def seed_api_keys() -> List[Dict[str, Any]]:
    return [
        {
            "id": "ak_1",
            "name": "Production API Key",
            "key": "sk-1234567890abcdef",
            "created": "2024-01-15T10:30:00Z",
            "lastUsed": "2024-01-20T14:22:00Z",
            "usage": 15420,
            "permissions": ["read", "write", "models"],
            "status": "active",
        },
        {
            "id": "ak_2",
            "name": "Development Testing",
            "key": "sk-abcdef1234567890",
            "created": "2024-01-10T08:15:00Z",
            "lastUsed": "2024-01-19T09:45:00Z",
            "usage": 3250,
            "permissions": ["read", "models"],
            "status": "active",
        },
        {
            "id": "ak_3",
            "name": "Staging Environment",
            "key": "sk-fedcba0987654321",
            "created": "2024-01-05T16:00:00Z",
            "lastUsed": "2024-01-10T12:30:00Z",
            "usage": 890,
            "permissions": ["read"],
            "status": "inactive",
        },
    ]


class ApiKeyStore(RecordStore):
    def __init__(self) -> None:
        super().__init__(seed=seed_api_keys)

    def masked(self) -> List[Dict[str, Any]]:
        keys = self.list()
        for item in keys:
            item["key"] = mask_key(item["key"])
        return keys

    def create(self, name: str, description: str = "", permissions: Optional[List[str]] = None) -> Dict[str, Any]:
        stamp = millis()
        record = {
            "id": f"ak_{stamp}",
            "name": name,
            "description": description,
            "key": f"sk-{_base36(stamp)}{secrets.token_hex(8)}",
            "created": utcnow(),
            "lastUsed": "Never",
            "usage": 0,
            "permissions": list(permissions or DEFAULT_PERMISSIONS),
            "status": "active",
        }
        logger.info("Created API key %s (%s)", record["id"], name)
        # Insert at the front so the newest key is listed first.
        return self.add(record, front=True)


def seed_clusters() -> List[Dict[str, Any]]:
    return [
        {
            "id": "cluster-1",
            "name": "Production Inference",
            "status": "running",
            "type": "inference",
            "region": "us-west-2",
            "nodes": 3,
            "cpu_cores": 24,
            "memory_gb": 96,
            "storage_gb": 500,
            "gpu_count": 3,
            "gpu_type": "NVIDIA A100",
            "created_at": "2024-01-15T10:30:00Z",
            "last_activity": "2024-01-20T14:45:00Z",
            "cost_per_hour": 15.50,
            "uptime_hours": 120,
            "utilization": {"cpu": 75, "memory": 68, "storage": 45, "gpu": 82},
            "models_deployed": ["llama-2-70b", "gpt-3.5-turbo", "claude-instant"],
            "endpoints": 5,
            "requests_per_minute": 1250,
        },
        {
            "id": "cluster-2",
            "name": "Development Cluster",
            "status": "running",
            "type": "compute",
            "region": "us-east-1",
            "nodes": 2,
            "cpu_cores": 16,
            "memory_gb": 64,
            "storage_gb": 200,
            "gpu_count": 2,
            "gpu_type": "NVIDIA V100",
            "created_at": "2024-01-18T09:15:00Z",
            "last_activity": "2024-01-20T13:20:00Z",
            "cost_per_hour": 8.75,
            "uptime_hours": 48,
            "utilization": {"cpu": 45, "memory": 52, "storage": 30, "gpu": 38},
            "models_deployed": ["phi-2", "mistral-7b"],
            "endpoints": 2,
            "requests_per_minute": 350,
        },
        {
            "id": "cluster-3",
            "name": "Training Cluster",
            "status": "stopped",
            "type": "training",
            "region": "us-west-1",
            "nodes": 8,
            "cpu_cores": 64,
            "memory_gb": 512,
            "storage_gb": 2000,
            "gpu_count": 8,
            "gpu_type": "NVIDIA H100",
            "created_at": "2024-01-10T16:00:00Z",
            "last_activity": "2024-01-19T22:30:00Z",
            "cost_per_hour": 45.00,
            "uptime_hours": 0,
            "utilization": {"cpu": 0, "memory": 0, "storage": 15, "gpu": 0},
            "models_deployed": [],
            "endpoints": 0,
            "requests_per_minute": 0,
        },
        {
            "id": "cluster-4",
            "name": "Storage Cluster",
            "status": "running",
            "type": "storage",
            "region": "eu-west-1",
            "nodes": 4,
            "cpu_cores": 32,
            "memory_gb": 128,
            "storage_gb": 5000,
            "gpu_count": 0,
            "gpu_type": "None",
            "created_at": "2024-01-12T11:45:00Z",
            "last_activity": "2024-01-20T15:10:00Z",
            "cost_per_hour": 12.25,
            "uptime_hours": 192,
            "utilization": {"cpu": 25, "memory": 35, "storage": 78, "gpu": 0},
            "models_deployed": [],
            "endpoints": 0,
            "requests_per_minute": 0,
        },
    ]


class ClusterStore(RecordStore):
    def __init__(self) -> None:
        super().__init__(seed=seed_clusters)

    def search(self, status: Optional[str] = None, query: Optional[str] = None) -> List[Dict[str, Any]]:
        clusters = self.list()
        if status and status != "all":
            clusters = [item for item in clusters if item["status"] == status]
        if query:
            needle = query.lower()
            clusters = [
                item
                for item in clusters
                if needle in item["name"].lower() or needle in item["region"].lower() or needle in item["type"]
            ]
        return clusters

    def metrics(self) -> Dict[str, Any]:
        clusters = self.list()
        running = [item for item in clusters if item["status"] == "running"]
        utilization = [
            sum(item["utilization"].values()) / len(item["utilization"])
            for item in running
            if item.get("utilization")
        ]
        return {
            "total_clusters": len(clusters),
            "running_clusters": len(running),
            "total_cost_today": round(sum(item["cost_per_hour"] * 24 for item in running), 2),
            "total_requests": sum(item["requests_per_minute"] for item in running),
            "avg_utilization": round(sum(utilization) / len(utilization)) if utilization else 0,
            "active_endpoints": sum(item["endpoints"] for item in running),
        }

    def create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        name = str(payload.get("name") or "").strip()
        if not name:
            raise ValueError("Cluster name is required")
        cluster_type = payload.get("type") or "inference"
        if cluster_type not in CLUSTER_TYPES:
            raise ValueError(f"Unknown cluster type '{cluster_type}'")
        try:
            nodes = max(1, int(payload.get("nodes") or 1))
            storage = max(1, int(payload.get("storage_gb") or 100))
        except (TypeError, ValueError) as exc:
            raise ValueError("nodes and storage_gb must be integers") from exc
        gpu = cluster_type in {"inference", "training"}
        timestamp = utcnow()
        record = {
            "id": f"cluster-{millis()}",
            "name": name,
            "status": "pending",
            "type": cluster_type,
            "region": payload.get("region") or "us-west-2",
            "nodes": nodes,
            "cpu_cores": nodes * 8,
            "memory_gb": nodes * 32,
            "storage_gb": storage,
            "gpu_count": nodes if gpu else 0,
            "gpu_type": "NVIDIA T4" if gpu else "None",
            "instance_type": payload.get("instance_type") or "g4dn.xlarge",
            "auto_scaling": bool(payload.get("auto_scaling", True)),
            "max_nodes": payload.get("max_nodes") or 10,
            "created_at": timestamp,
            "last_activity": timestamp,
            "cost_per_hour": round(nodes * (5.25 if gpu else 3.0), 2),
            "uptime_hours": 0,
            "utilization": {"cpu": 0, "memory": 0, "storage": 0, "gpu": 0},
            "models_deployed": [],
            "endpoints": 0,
            "requests_per_minute": 0,
        }
        logger.info("Provisioning cluster %s (%s, %d nodes)", record["id"], cluster_type, nodes)
        return self.add(record, front=True)

    def set_status(self, cluster_id: str, status: str) -> Optional[Dict[str, Any]]:
        if status not in CLUSTER_STATUSES:
            raise ValueError(f"Unknown cluster status '{status}'")
        return self.update(cluster_id, {"status": status, "last_activity": utcnow()})
