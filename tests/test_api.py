import json
from typing import Any, Dict, List

from conftest import FakeOllama
from kolosal.ollama import OllamaError
from kolosal.settings import SettingsManager


def _events(body: str) -> List[Dict[str, Any]]:
    return [json.loads(line[len("data: "):]) for line in body.split("\n\n") if line.startswith("data: ")]


# chat


def test_models_listed_when_online(client) -> None:
    resp = client.get("/api/chat")
    assert resp.status_code == 200
    assert resp.json()["status"] == "online"
    assert resp.json()["models"][0]["name"] == "llama2:latest"


def test_models_offline_returns_503(client, fake_ollama: FakeOllama) -> None:
    fake_ollama.offline = True
    resp = client.get("/api/chat")
    assert resp.status_code == 503
    assert resp.json() == {"error": "Ollama is not running or not accessible", "models": [], "status": "offline"}


def test_chat_requires_messages(client) -> None:
    assert client.post("/api/chat", json={}).json() == {"error": "Messages are required"}
    assert client.post("/api/chat", json={"messages": []}).status_code == 400
    resp = client.post("/api/chat", content=b"{not json", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400


def test_chat_falls_back_to_installed_model(client, fake_ollama: FakeOllama, app_module) -> None:
    resp = client.post(
        "/api/chat",
        json={"messages": [{"role": "user", "content": "Hi"}], "model": "gpt-4", "temperature": 9},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["model"] == "llama2:latest"
    assert body["response"] == "Hello from the model."
    assert body["tokens_used"] > 0
    assert fake_ollama.calls[0]["options"]["temperature"] == 2
    assert fake_ollama.calls[0]["prompt"].endswith("Human: Hi\n\nAssistant: ")
    record = app_module.analytics_log.records()[-1]
    assert record.model == "llama2:latest"
    assert record.success is True


def test_chat_offline_returns_503(client, fake_ollama: FakeOllama) -> None:
    fake_ollama.offline = True
    resp = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Hi"}]})
    assert resp.status_code == 503
    assert resp.json() == {"error": "Ollama is not running. Please start Ollama first."}


def test_chat_generation_failure_is_recorded(client, fake_ollama: FakeOllama, app_module) -> None:
    fake_ollama.generate_error = OllamaError("model exploded")
    resp = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Hi"}]})
    assert resp.status_code == 500
    assert "model exploded" in resp.json()["error"]
    assert app_module.analytics_log.records()[-1].success is False


def test_chat_stream_emits_sse_events(client, app_module) -> None:
    resp = client.post("/api/chat/stream", json={"messages": [{"role": "user", "content": "Hi"}]})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["cache-control"] == "no-cache"
    events = _events(resp.text)
    assert [event["response"] for event in events if "response" in event] == ["Hel", "lo", "!"]
    final = events[-1]
    assert final["done"] is True
    assert final["model"] == "llama2:latest"
    assert final["tokens_used"] > 0
    record = app_module.analytics_log.records()[-1]
    assert record.model == "llama2:latest"
    assert record.success is True
    assert record.tokens == final["tokens_used"]


def test_chat_stream_reports_daemon_error_in_band(client, fake_ollama: FakeOllama, app_module) -> None:
    fake_ollama.generate_error = OllamaError("connection dropped")
    resp = client.post("/api/chat/stream", json={"messages": [{"role": "user", "content": "Hi"}]})
    events = _events(resp.text)
    assert events[0] == {"response": "Hel", "done": False}
    assert events[-1] == {"error": "Ollama API error: connection dropped"}
    record = app_module.analytics_log.records()[-1]
    assert record.model == "llama2:latest"
    assert record.success is False


def test_chat_stream_validates_before_streaming(client) -> None:
    resp = client.post("/api/chat/stream", json={"messages": "nope"})
    assert resp.status_code == 400


# language


def test_language_task_templates(client, fake_ollama: FakeOllama) -> None:
    assert client.post("/api/language", json={"prompt": "  "}).json() == {"error": "Prompt is required"}
    resp = client.post("/api/language", json={"prompt": "Long text", "task": "summarization"})
    assert resp.status_code == 200
    assert resp.json()["task"] == "summarization"
    assert fake_ollama.calls[-1]["prompt"].startswith("Please provide a concise summary")


# image and audio


def test_image_capabilities(client) -> None:
    body = client.get("/api/image").json()
    assert body["image_generation_available"] is False
    assert "realistic" in body["supported_styles"]


def test_image_generation(client, app_module) -> None:
    assert client.post("/api/image", json={}).status_code == 400
    assert client.post("/api/image", json={"prompt": "x" * 1001}).status_code == 400
    resp = client.post("/api/image", json={"prompt": "a fox", "style": "cartoon", "quality": "high"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["image_url"].startswith("data:image/svg+xml;base64,")
    assert body["model"] == "placeholder-generator"
    record = app_module.analytics_log.records()[-1]
    assert record.model == "image-gen-cartoon"
    assert abs(record.cost - 0.003) < 1e-9


def test_audio_voices_and_generation(client) -> None:
    assert len(client.get("/api/audio").json()["voices"]) == 6
    assert client.post("/api/audio", json={"text": ""}).status_code == 400
    assert client.post("/api/audio", json={"text": "hi", "speed": 0}).status_code == 400
    assert client.post("/api/audio", json={"text": "hi", "speed": 0.05}).status_code == 400
    assert client.post("/api/audio", json={"text": "hi", "pitch": 10}).status_code == 400
    assert client.post("/api/audio", json={"text": "hi", "speed": "fast"}).status_code == 400
    resp = client.post("/api/audio", json={"text": "Hello there", "voice": "nova"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["audio_url"].startswith("data:audio/wav;base64,")
    assert body["duration"] == 1
    assert body["file_size"] == 1024


# analytics


def test_analytics_log_and_summary(client) -> None:
    resp = client.post(
        "/api/analytics",
        json={"model": "phi", "tokens": 20, "responseTime": 1.25, "success": True, "cost": 0.01},
    )
    assert resp.json() == {"success": True}
    summary = client.get("/api/analytics").json()
    assert summary["totalRequests"] == 1
    assert summary["usageData"][0]["avgResponseTime"] == "1.25"
    assert len(summary["dailyUsage"]) == 7
    bad = client.post("/api/analytics", json={"model": "phi", "timestamp": "not-a-date"})
    assert bad.status_code == 400


# mcp


def test_mcp_info_and_tools(client) -> None:
    info = client.get("/api/mcp").json()
    assert info["version"] == "2.0.0"
    assert "web_search" in info["available_tools"]
    tools = client.get("/api/mcp", params={"action": "tools"}).json()["tools"]
    assert {"name", "description", "parameters"} <= set(tools[0])


def test_mcp_execute_tool(client, app_module) -> None:
    resp = client.post(
        "/api/mcp", json={"action": "execute_tool", "tool": "web_search", "parameters": {"query": "ollama"}}
    )
    assert resp.status_code == 200
    assert resp.json()["tool"] == "web_search"
    assert app_module.analytics_log.records()[-1].model == "mcp-web_search"

    missing = client.post("/api/mcp", json={"action": "execute_tool", "tool": "nope", "parameters": {}})
    assert missing.status_code == 404
    assert missing.json() == {"error": "Tool 'nope' not found"}
    invalid = client.post("/api/mcp", json={"action": "execute_tool", "tool": "web_search", "parameters": {}})
    assert invalid.status_code == 400


def test_mcp_contexts(client) -> None:
    created = client.post(
        "/api/mcp", json={"action": "create_context", "parameters": {"name": "Research", "tools": ["web_search"]}}
    ).json()
    assert created["name"] == "Research"
    listed = client.get("/api/mcp", params={"action": "contexts"}).json()["contexts"]
    assert [item["id"] for item in listed] == [created["id"]]
    updated = client.post(
        "/api/mcp",
        json={"action": "update_context", "context_id": created["id"], "parameters": {"description": "notes"}},
    )
    assert updated.json()["description"] == "notes"
    gone = client.post("/api/mcp", json={"action": "update_context", "context_id": "ctx_0", "parameters": {}})
    assert gone.status_code == 404
    assert client.post("/api/mcp", json={"action": "dance"}).status_code == 400


# workflows


def test_workflow_execute_records_stats(client) -> None:
    resp = client.post(
        "/api/workflows", json={"action": "execute", "workflow_id": "wf-ai-agent-1", "input_data": {"message": "hi"}}
    )
    assert resp.status_code == 200
    execution = resp.json()["execution"]
    assert execution["status"] == "completed"
    assert execution["execution_path"][0]["node_id"] == "trigger-1"

    workflow = client.get("/api/workflows").json()["workflows"][0]
    assert workflow["executions"]["total"] == 143
    executions = client.get(
        "/api/workflows", params={"action": "executions", "workflow_id": "wf-ai-agent-1"}
    ).json()["executions"]
    assert [item["id"] for item in executions] == [execution["id"]]


def test_workflow_crud(client) -> None:
    missing = client.post("/api/workflows", json={"action": "execute", "workflow_id": "wf-nope"})
    assert missing.status_code == 404
    created = client.post(
        "/api/workflows",
        json={"action": "create", "workflow": {"name": "Blank", "nodes": [{"id": "t", "type": "trigger", "category": "core"}]}},
    ).json()["workflow"]
    assert created["status"] == "draft"
    invalid = client.post(
        "/api/workflows",
        json={"action": "update", "workflow_id": created["id"], "workflow": {"nodes": [{"id": "a", "category": "space"}]}},
    )
    assert invalid.status_code == 400
    updated = client.post(
        "/api/workflows", json={"action": "update", "workflow_id": created["id"], "workflow": {"status": "active"}}
    ).json()["workflow"]
    assert updated["status"] == "active"
    assert client.post("/api/workflows", json={"action": "archive"}).status_code == 400

    assert client.delete("/api/workflows").status_code == 400
    assert client.delete("/api/workflows", params={"id": "wf-nope"}).status_code == 404
    assert client.delete("/api/workflows", params={"id": created["id"]}).json() == {
        "message": "Workflow deleted successfully"
    }


# fine-tuning


def test_fine_tuning_jobs(client) -> None:
    listing = client.get("/api/fine-tuning").json()
    assert listing["total"] == 2
    assert client.post("/api/fine-tuning", json={"model": "phi"}).status_code == 400
    job = client.post("/api/fine-tuning", json={"model": "phi", "training_file": "train.jsonl"}).json()
    assert job["status"] == "pending"
    assert client.get("/api/fine-tuning").json()["jobs"][0]["id"] == job["id"]

    assert client.delete("/api/fine-tuning").status_code == 400
    running = client.delete("/api/fine-tuning", params={"id": "ft-job-2"})
    assert running.status_code == 400
    assert running.json() == {"error": "Cannot delete running job"}
    assert client.delete("/api/fine-tuning", params={"id": "ft-job-404"}).status_code == 404
    assert client.delete("/api/fine-tuning", params={"id": "ft-job-1"}).status_code == 200


# account settings


def test_api_keys(client) -> None:
    keys = client.get("/api/api-keys").json()["keys"]
    assert all("..." in item["key"] for item in keys)
    assert client.post("/api/api-keys", json={"name": ""}).status_code == 400
    created = client.post("/api/api-keys", json={"name": "CI"}).json()
    assert created["permissions"] == ["read", "write", "models"]
    assert client.get("/api/api-keys").json()["keys"][0]["id"] == created["id"]
    assert client.delete("/api/api-keys", params={"id": created["id"]}).status_code == 200
    assert client.delete("/api/api-keys", params={"id": created["id"]}).status_code == 404


def test_clusters(client) -> None:
    body = client.get("/api/clusters", params={"status": "stopped"}).json()
    assert [item["id"] for item in body["clusters"]] == ["cluster-3"]
    assert body["metrics"]["running_clusters"] == 3
    assert client.post("/api/clusters", json={"type": "compute"}).status_code == 400
    created = client.post("/api/clusters", json={"name": "Edge", "type": "compute"}).json()
    assert created["status"] == "pending"
    started = client.post(f"/api/clusters/{created['id']}/start").json()
    assert started["status"] == "running"
    assert client.post("/api/clusters/cluster-3/reboot").status_code == 400
    assert client.post("/api/clusters/cluster-404/stop").status_code == 404
    assert client.delete(f"/api/clusters/{created['id']}").status_code == 200
    assert client.delete(f"/api/clusters/{created['id']}").status_code == 404


# settings and health


def test_settings_round_trip(client, app_module, monkeypatch, tmp_path) -> None:
    manager = SettingsManager(tmp_path / "settings.json")
    monkeypatch.setattr(app_module, "settings_manager", manager)
    monkeypatch.setattr(app_module.inference, "default_model", "phi")
    assert client.get("/api/settings").json()["ollama"]["default_model"] == "phi"
    resp = client.post("/api/settings", json={"ollama": {"default_model": "mistral"}, "simulate_latency": False})
    assert resp.json()["ollama"]["base_url"] == "http://localhost:11434"
    assert app_module.inference.default_model == "mistral"
    saved = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    assert saved["ollama"]["default_model"] == "mistral"


def test_health_and_status(client, fake_ollama: FakeOllama) -> None:
    assert client.get("/health/ollama").json() == {"status": "ok", "label": "Ollama Connected"}
    fake_ollama.offline = True
    assert client.get("/health/ollama").json() == {"status": "warn", "label": "Ollama Offline"}
    status = client.get("/status").json()
    assert status["ollama_state"] == "warn"
    assert status["fine_tuning"]["running"] == 1
    assert status["workflows"] == 1


# request hygiene


def _post_raw(client, path: str, body: bytes):
    return client.post(path, content=body, headers={"Content-Type": "application/json"})


def test_non_finite_numbers_are_rejected(client) -> None:
    resp = _post_raw(client, "/api/analytics", b'{"model": "phi", "cost": Infinity}')
    assert resp.status_code == 400
    assert client.get("/api/analytics").status_code == 200

    resp = _post_raw(
        client,
        "/api/fine-tuning",
        b'{"model": "phi", "training_file": "t.jsonl", "hyperparameters": {"learning_rate": NaN}}',
    )
    assert resp.status_code == 400
    assert "Non-finite" in resp.json()["error"]
    assert client.get("/api/fine-tuning").json()["total"] == 2


def test_string_infinity_is_rejected_by_analytics(client) -> None:
    resp = client.post("/api/analytics", json={"model": "phi", "tokens": "inf"})
    assert resp.status_code == 400
    assert client.get("/api/analytics").json()["totalRequests"] == 0


def test_invalid_settings_are_rejected_and_not_saved(client, app_module, monkeypatch, tmp_path) -> None:
    path = tmp_path / "settings.json"
    monkeypatch.setattr(app_module, "settings_manager", SettingsManager(path))
    client.get("/api/settings")

    for payload in (
        {"analytics": {"max_records": "many"}},
        {"ollama": {"timeout": -1}},
        {"fine_tuning": "fast"},
        {"simulate_latency": "yes"},
    ):
        resp = client.post("/api/settings", json=payload)
        assert resp.status_code == 400
        assert "error" in resp.json()

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert saved["analytics"]["max_records"] == 1000
    assert app_module.settings_manager.settings["analytics"]["max_records"] == 1000


def test_context_tools_must_be_a_list(client) -> None:
    resp = client.post("/api/mcp", json={"action": "create_context", "parameters": {"tools": 5}})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Context tools must be a list of tool names"}
    created = client.post("/api/mcp", json={"action": "create_context", "parameters": {"name": "ok"}}).json()
    resp = client.post(
        "/api/mcp",
        json={"action": "update_context", "context_id": created["id"], "parameters": {"tools": "web_search"}},
    )
    assert resp.status_code == 400
