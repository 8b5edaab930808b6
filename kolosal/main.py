from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import random
import time
from logging.handlers import RotatingFileHandler
from typing import Any, Callable, Dict, Iterator, Optional

from fastapi import FastAPI, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

from .accounts import ApiKeyStore, ClusterStore
from .analytics import AnalyticsLog, RequestRecord
from .inference import InferenceService, RequestError
from .jobs import FineTuningService, JobError, JobMonitor
from .mcp import (
    NEW_FEATURES,
    SERVER_VERSION,
    ContextStore,
    MemoryStore,
    ToolError,
    ToolRegistry,
    register_default_tools,
)
from .media import (
    AUDIO_DELAY,
    IMAGE_SIZES,
    QUALITY_DELAYS,
    RATE_RANGE,
    STYLE_COLORS,
    VOICES,
    audio_data_url,
    estimate_duration,
    image_cost,
    placeholder_image_url,
    synthesize_tone,
    word_count,
)
from .ollama import OllamaClient, OllamaError, OllamaUnavailable, estimate_tokens, has_image_models
from .settings import SettingsError, SettingsManager, data_dir
from .storage import utcnow
from .workflows import WorkflowError, WorkflowExecutor, WorkflowServices, WorkflowStore

DATA_DIR = data_dir()
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOG_FILE = DATA_DIR / "server.log"
SETTINGS_PATH = DATA_DIR / "settings.json"

OLLAMA_DOWN = "Ollama is not running. Please start Ollama first."
MAX_IMAGE_PROMPT = 1000
MAX_AUDIO_TEXT = 4000
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _configure_logging() -> logging.Logger:
    logger = logging.getLogger("kolosal")
    if logger.handlers:
        return logger
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler = RotatingFileHandler(
        LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.propagate = False
    logger.debug("Logging initialised, writing to %s", LOG_FILE)
    return logger


logger = _configure_logging()

app = FastAPI(title="Kolosal AI Platform API")

settings_manager = SettingsManager(SETTINGS_PATH)
rng = random.Random()
analytics_log = AnalyticsLog()
ollama_client = OllamaClient(base_url=settings_manager.settings["ollama"]["base_url"])
inference = InferenceService(ollama_client, analytics_log)
memory_store = MemoryStore()
tool_registry = ToolRegistry()
context_store = ContextStore()
workflow_store = WorkflowStore()
fine_tuning = FineTuningService(rng=rng)
job_monitor = JobMonitor(fine_tuning)
api_keys = ApiKeyStore()
clusters = ClusterStore()
monitor_task: Optional[asyncio.Task] = None

ollama_status: Dict[str, str] = {"state": "warn", "label": "Ollama Unknown"}


def _load_custom_tools(registry: ToolRegistry) -> None:
    try:
        # Optional project extension hook.
        from tools import register_tools  # type: ignore
    except ImportError:
        return
    try:
        register_tools(registry)
    except Exception:  # pragma: no cover - user-defined
        logger.exception("Custom tool registration failed.")


register_default_tools(tool_registry, memory_store, rng)
_load_custom_tools(tool_registry)


def _apply_settings() -> None:
    settings = settings_manager.settings
    ollama = settings_manager.section("ollama")
    client = inference.client
    if isinstance(client, OllamaClient) and client.base_url != str(ollama["base_url"]).rstrip("/"):
        inference.client = OllamaClient(base_url=ollama["base_url"])
        logger.info("Ollama client now targets %s", inference.client.base_url)
        client = inference.client
    if isinstance(client, OllamaClient):
        client.timeout = float(ollama.get("timeout", 120))
        client.health_timeout = float(ollama.get("health_timeout", 3))
    inference.default_model = str(ollama.get("default_model") or "phi")
    analytics_log.resize(int(settings_manager.section("analytics").get("max_records", 1000)))
    jobs = settings_manager.section("fine_tuning")
    fine_tuning.start_after = float(jobs.get("start_after_seconds", 2))
    fine_tuning.complete_after = float(jobs.get("complete_after_seconds", 30))
    job_monitor.interval = float(jobs.get("poll_interval", 1))
    logger.debug("Applied settings (simulate_latency=%s)", settings.get("simulate_latency"))


_apply_settings()


def _error(message: str, status_code: int, **extra: Any) -> JSONResponse:
    payload: Dict[str, Any] = {"error": message}
    payload.update(extra)
    return JSONResponse(payload, status_code=status_code)


def _reject_constant(name: str) -> Any:
    raise RequestError(f"Non-finite number '{name}' is not allowed")


async def _json_body(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        payload = json.loads(raw, parse_constant=_reject_constant)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise RequestError("Request body must be valid JSON") from exc
    if not isinstance(payload, dict):
        raise RequestError("Request body must be a JSON object")
    return payload


async def _simulate(seconds: float) -> None:
    if settings_manager.settings.get("simulate_latency", True) and seconds > 0:
        await asyncio.sleep(seconds)


def _image_models_available() -> bool:
    try:
        return has_image_models(inference.models())
    except OllamaError:
        return False


async def _run_generation(
    func: Callable[[Dict[str, Any]], Dict[str, Any]],
    request: Request,
    label: str,
) -> JSONResponse:
    try:
        payload = await _json_body(request)
        result = await run_in_threadpool(func, payload)
    except RequestError as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    except OllamaUnavailable as exc:
        logger.warning("%s request rejected: %s", label, exc)
        return _error(OLLAMA_DOWN, status.HTTP_503_SERVICE_UNAVAILABLE)
    except OllamaError as exc:
        logger.error("Ollama API error during %s: %s", label, exc)
        return _error(f"Failed to generate response from Ollama: {exc}", status.HTTP_500_INTERNAL_SERVER_ERROR)
    except Exception:
        logger.exception("%s API error", label)
        return _error("Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(result)


@app.on_event("startup")
async def on_startup() -> None:
    global monitor_task
    settings_manager.reload()
    _apply_settings()
    monitor_task = asyncio.create_task(job_monitor.loop(), name="fine-tuning-monitor")
    logger.info("Application startup complete.")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    if monitor_task:
        monitor_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await monitor_task
    logger.info("Application shutdown complete.")


# Chat and language playgrounds


@app.get("/api/chat")
async def list_models() -> JSONResponse:
    try:
        models = await run_in_threadpool(inference.models)
    except OllamaUnavailable as exc:
        logger.error("Failed to fetch Ollama models: %s", exc)
        return _error(
            "Ollama is not running or not accessible",
            status.HTTP_503_SERVICE_UNAVAILABLE,
            models=[],
            status="offline",
        )
    except OllamaError as exc:
        logger.error("Failed to fetch Ollama models: %s", exc)
        return _error("Failed to fetch models from Ollama", status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse({"models": models, "status": "online"})


@app.post("/api/chat")
async def chat(request: Request) -> JSONResponse:
    return await _run_generation(inference.chat, request, "Chat")


@app.post("/api/chat/stream")
async def chat_stream(request: Request):
    try:
        payload = await _json_body(request)
        events = await run_in_threadpool(inference.stream_chat, payload)
    except RequestError as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    except OllamaUnavailable as exc:
        logger.warning("Stream request rejected: %s", exc)
        return _error(OLLAMA_DOWN, status.HTTP_503_SERVICE_UNAVAILABLE)
    except Exception:
        logger.exception("Streaming API error")
        return _error("Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)

    def encode(source: Iterator[Dict[str, Any]]) -> Iterator[str]:
        for event in source:
            yield f"data: {json.dumps(event)}\n\n"

    return StreamingResponse(encode(events), media_type="text/event-stream", headers=SSE_HEADERS)


@app.post("/api/language")
async def language(request: Request) -> JSONResponse:
    return await _run_generation(inference.language, request, "Language")


# Image playground


@app.get("/api/image")
async def image_status() -> JSONResponse:
    available = await run_in_threadpool(_image_models_available)
    return JSONResponse(
        {
            "status": "online",
            "image_generation_available": available,
            "supported_styles": list(STYLE_COLORS),
            "supported_sizes": list(IMAGE_SIZES),
            "supported_qualities": list(QUALITY_DELAYS),
            "message": "Ollama image generation available" if available else "Using placeholder image generation",
        }
    )


@app.post("/api/image")
async def generate_image(request: Request) -> JSONResponse:
    started = time.monotonic()
    try:
        payload = await _json_body(request)
    except RequestError as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    prompt = payload.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        return _error("Prompt is required for image generation", status.HTTP_400_BAD_REQUEST)
    if len(prompt) > MAX_IMAGE_PROMPT:
        return _error("Prompt is too long. Maximum 1000 characters allowed.", status.HTTP_400_BAD_REQUEST)
    style = str(payload.get("style") or "realistic")
    size = str(payload.get("size") or "square")
    quality = str(payload.get("quality") or "standard")
    try:
        available = await run_in_threadpool(_image_models_available)
        await _simulate(QUALITY_DELAYS.get(quality, 3.0))
        image_url = placeholder_image_url(prompt, style, size)
    except Exception:
        logger.exception("Image generation error")
        analytics_log.record(
            model="image-gen-error",
            tokens=0,
            response_time=round(time.monotonic() - started, 3),
            success=False,
        )
        return _error("Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)
    generation_time = round(time.monotonic() - started, 3)
    analytics_log.record(
        model=f"image-gen-{style}",
        tokens=estimate_tokens(prompt),
        response_time=generation_time,
        success=True,
        cost=image_cost(quality),
    )
    logger.info("Generated placeholder image style=%s size=%s quality=%s", style, size, quality)
    return JSONResponse(
        {
            "prompt": prompt,
            "style": style,
            "size": size,
            "quality": quality,
            "image_url": image_url,
            "generation_time": generation_time,
            "created_at": utcnow(),
            "model": "ollama-image-gen" if available else "placeholder-generator",
        }
    )


# Audio playground


@app.get("/api/audio")
async def list_voices() -> JSONResponse:
    return JSONResponse({"voices": VOICES})


@app.post("/api/audio")
async def generate_audio(request: Request) -> JSONResponse:
    started = time.monotonic()
    try:
        payload = await _json_body(request)
    except RequestError as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    text = payload.get("text")
    if not isinstance(text, str) or not text.strip():
        return _error("Text is required for audio generation", status.HTTP_400_BAD_REQUEST)
    if len(text) > MAX_AUDIO_TEXT:
        return _error("Text is too long. Maximum 4000 characters allowed.", status.HTTP_400_BAD_REQUEST)
    voice = str(payload.get("voice") or "alloy")
    audio_format = str(payload.get("format") or "mp3")
    try:
        speed = float(payload.get("speed", 1.0))
        pitch = float(payload.get("pitch", 1.0))
    except (TypeError, ValueError):
        return _error("Speed and pitch must be numbers", status.HTTP_400_BAD_REQUEST)
    low, high = RATE_RANGE
    if not (low <= speed <= high and low <= pitch <= high):
        return _error(f"Speed and pitch must be between {low:g} and {high:g}", status.HTTP_400_BAD_REQUEST)
    try:
        await _simulate(AUDIO_DELAY)
        duration = estimate_duration(text, speed)
        wav = await run_in_threadpool(synthesize_tone, text, voice, speed, pitch, duration)
    except Exception:
        logger.exception("Audio generation error")
        analytics_log.record(
            model="tts-unknown",
            tokens=0,
            response_time=round(time.monotonic() - started, 3),
            success=False,
        )
        return _error("Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)
    words = word_count(text)
    analytics_log.record(
        model=f"tts-{voice}",
        tokens=estimate_tokens(text),
        response_time=round(time.monotonic() - started, 3),
        success=True,
        cost=0.001 * words,
    )
    logger.info("Synthesised %ds of audio for voice=%s", duration, voice)
    return JSONResponse(
        {
            "audio_url": audio_data_url(wav),
            "duration": duration,
            "format": audio_format,
            "voice": voice,
            "text": text,
            "created_at": utcnow(),
            "file_size": duration * 1024,
        }
    )


# Analytics


@app.get("/api/analytics")
async def analytics_summary() -> JSONResponse:
    window = int(settings_manager.section("analytics").get("window_days", 30))
    return JSONResponse(analytics_log.summary(window_days=window))


@app.post("/api/analytics")
async def log_analytics(request: Request) -> JSONResponse:
    try:
        payload = await _json_body(request)
        record = RequestRecord.from_payload(payload)
    except (RequestError, TypeError, ValueError) as exc:
        logger.error("Analytics logging error: %s", exc)
        return _error("Failed to log analytics data", status.HTTP_400_BAD_REQUEST)
    analytics_log.add(record)
    return JSONResponse({"success": True})


# MCP tools


@app.get("/api/mcp")
async def mcp_info(action: Optional[str] = None) -> JSONResponse:
    if action == "tools":
        return JSONResponse({"tools": tool_registry.definitions()})
    if action == "contexts":
        return JSONResponse({"contexts": context_store.list()})
    return JSONResponse(
        {
            "message": "MCP Server is running",
            "version": SERVER_VERSION,
            "available_tools": tool_registry.names(),
            "contexts_count": len(context_store),
            "new_features": NEW_FEATURES,
        }
    )


@app.post("/api/mcp")
async def mcp_action(request: Request) -> JSONResponse:
    try:
        payload = await _json_body(request)
    except RequestError as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    action = payload.get("action")
    parameters = payload.get("parameters")
    if parameters is not None and not isinstance(parameters, dict):
        return _error("Parameters must be a JSON object", status.HTTP_400_BAD_REQUEST)
    parameters = parameters or {}

    if action == "execute_tool":
        tool = str(payload.get("tool") or "")
        if not tool_registry.has_tool(tool):
            return _error(f"Tool '{tool}' not found", status.HTTP_404_NOT_FOUND)
        started = time.monotonic()
        try:
            result = await run_in_threadpool(tool_registry.execute, tool, parameters)
        except ToolError as exc:
            return _error(str(exc), status.HTTP_400_BAD_REQUEST)
        except Exception:
            logger.exception("MCP tool %s failed", tool)
            return _error("Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)
        analytics_log.record(
            model=f"mcp-{tool}",
            tokens=estimate_tokens(json.dumps(parameters)),
            response_time=round(time.monotonic() - started, 3),
            success=True,
            cost=0.001,
        )
        logger.info("Executed MCP tool %s", tool)
        return JSONResponse({"tool": tool, "result": result, "timestamp": utcnow()})

    try:
        if action == "create_context":
            context = context_store.create(
                parameters.get("name"), parameters.get("description"), parameters.get("tools")
            )
            logger.info("Created MCP context %s", context["id"])
            return JSONResponse(context)

        if action == "update_context":
            context = context_store.update_context(str(payload.get("context_id") or ""), parameters)
            if context is None:
                return _error("Context not found", status.HTTP_404_NOT_FOUND)
            return JSONResponse(context)
    except ValueError as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    except Exception:
        logger.exception("MCP context action %s failed", action)
        return _error("Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)

    return _error("Invalid action", status.HTTP_400_BAD_REQUEST)


# Workflows


def _workflow_services() -> WorkflowServices:
    return WorkflowServices(chat=inference.chat, tools=tool_registry, analytics=analytics_log, rng=rng)


@app.get("/api/workflows")
async def list_workflows(action: Optional[str] = None, workflow_id: Optional[str] = None) -> JSONResponse:
    if action == "executions":
        return JSONResponse({"executions": workflow_store.executions(workflow_id)})
    return JSONResponse({"workflows": workflow_store.list()})


@app.post("/api/workflows")
async def workflow_action(request: Request) -> JSONResponse:
    try:
        payload = await _json_body(request)
    except RequestError as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    action = payload.get("action")
    workflow_id = payload.get("workflow_id")
    definition = payload.get("workflow") or {}
    if not isinstance(definition, dict):
        return _error("Workflow must be a JSON object", status.HTTP_400_BAD_REQUEST)

    try:
        if action == "execute":
            workflow = workflow_store.get(str(workflow_id or ""))
            if workflow is None:
                return _error("Workflow not found", status.HTTP_404_NOT_FOUND)
            input_data = payload.get("input_data") or {}
            if not isinstance(input_data, dict):
                return _error("input_data must be a JSON object", status.HTTP_400_BAD_REQUEST)
            executor = WorkflowExecutor(workflow, input_data, _workflow_services())
            execution = await run_in_threadpool(executor.execute)
            workflow_store.record_execution(execution)
            return JSONResponse({"execution": execution})

        if action == "create":
            workflow = workflow_store.create(definition)
            logger.info("Created workflow %s", workflow["id"])
            return JSONResponse({"workflow": workflow})

        if action == "update":
            workflow = workflow_store.update_workflow(str(workflow_id or ""), definition)
            if workflow is None:
                return _error("Workflow not found", status.HTTP_404_NOT_FOUND)
            return JSONResponse({"workflow": workflow})
    except WorkflowError as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    except Exception:
        logger.exception("Workflows API error")
        return _error("Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)

    return _error("Invalid action", status.HTTP_400_BAD_REQUEST)


@app.delete("/api/workflows")
async def delete_workflow(id: Optional[str] = None) -> JSONResponse:
    if not id:
        return _error("Workflow ID is required", status.HTTP_400_BAD_REQUEST)
    if not workflow_store.remove(id):
        return _error("Workflow not found", status.HTTP_404_NOT_FOUND)
    logger.info("Deleted workflow %s", id)
    return JSONResponse({"message": "Workflow deleted successfully"})


# Fine-tuning


@app.get("/api/fine-tuning")
async def list_jobs() -> JSONResponse:
    fine_tuning.tick()
    jobs = fine_tuning.list()
    for job in jobs:
        job["runtime_seconds"] = round(fine_tuning.runtime(job), 1)
    return JSONResponse({"jobs": jobs, "total": len(jobs)})


@app.post("/api/fine-tuning")
async def create_job(request: Request) -> JSONResponse:
    try:
        payload = await _json_body(request)
        job = fine_tuning.create(
            model=payload.get("model"),
            training_file=payload.get("training_file"),
            validation_file=payload.get("validation_file"),
            hyperparameters=payload.get("hyperparameters"),
        )
    except (RequestError, JobError) as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(job)


@app.delete("/api/fine-tuning")
async def delete_job(id: Optional[str] = None) -> JSONResponse:
    if not id:
        return _error("Job ID is required", status.HTTP_400_BAD_REQUEST)
    fine_tuning.tick()
    try:
        fine_tuning.delete(id)
    except KeyError:
        return _error("Job not found", status.HTTP_404_NOT_FOUND)
    except JobError as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse({"message": "Job deleted successfully"})


# Account settings


@app.get("/api/api-keys")
async def list_api_keys() -> JSONResponse:
    return JSONResponse({"keys": api_keys.masked()})


@app.post("/api/api-keys")
async def create_api_key(request: Request) -> JSONResponse:
    try:
        payload = await _json_body(request)
    except RequestError as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        return _error("Key name is required", status.HTTP_400_BAD_REQUEST)
    permissions = payload.get("permissions")
    if permissions is not None and not isinstance(permissions, list):
        return _error("Permissions must be a list", status.HTTP_400_BAD_REQUEST)
    record = api_keys.create(name.strip(), str(payload.get("description") or ""), permissions)
    return JSONResponse(record)


@app.delete("/api/api-keys")
async def delete_api_key(id: Optional[str] = None) -> JSONResponse:
    if not id:
        return _error("Key ID is required", status.HTTP_400_BAD_REQUEST)
    if not api_keys.remove(id):
        return _error("API key not found", status.HTTP_404_NOT_FOUND)
    logger.info("Revoked API key %s", id)
    return JSONResponse({"message": "API key deleted successfully"})


@app.get("/api/clusters")
async def list_clusters(
    status_filter: Optional[str] = Query(None, alias="status"),
    q: Optional[str] = None,
) -> JSONResponse:
    return JSONResponse({"clusters": clusters.search(status_filter, q), "metrics": clusters.metrics()})


@app.post("/api/clusters")
async def create_cluster(request: Request) -> JSONResponse:
    try:
        payload = await _json_body(request)
        cluster = clusters.create(payload)
    except (RequestError, ValueError) as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(cluster)


@app.post("/api/clusters/{cluster_id}/{operation}")
async def cluster_operation(cluster_id: str, operation: str) -> JSONResponse:
    target = {"start": "running", "stop": "stopped"}.get(operation)
    if target is None:
        return _error("Invalid action", status.HTTP_400_BAD_REQUEST)
    cluster = clusters.set_status(cluster_id, target)
    if cluster is None:
        return _error("Cluster not found", status.HTTP_404_NOT_FOUND)
    logger.info("Cluster %s is now %s", cluster_id, target)
    return JSONResponse(cluster)


@app.delete("/api/clusters/{cluster_id}")
async def delete_cluster(cluster_id: str) -> JSONResponse:
    if not clusters.remove(cluster_id):
        return _error("Cluster not found", status.HTTP_404_NOT_FOUND)
    logger.info("Deleted cluster %s", cluster_id)
    return JSONResponse({"message": "Cluster deleted successfully"})


# Settings and health


@app.get("/api/settings")
async def read_settings() -> JSONResponse:
    return JSONResponse(settings_manager.settings)


@app.post("/api/settings")
async def update_settings(request: Request) -> JSONResponse:
    try:
        payload = await _json_body(request)
    except RequestError as exc:
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    try:
        settings_manager.save(payload)
    except SettingsError as exc:
        logger.warning("Rejected settings update: %s", exc)
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    _apply_settings()
    logger.info("Settings updated keys=%s", ", ".join(sorted(payload)))
    return JSONResponse(settings_manager.settings)


@app.get("/health/ollama")
async def ollama_health() -> JSONResponse:
    try:
        await run_in_threadpool(inference.models)
        ok = True
    except OllamaError:
        ok = False
    ollama_status["state"] = "ok" if ok else "warn"
    ollama_status["label"] = "Ollama Connected" if ok else "Ollama Offline"
    return JSONResponse({"status": ollama_status["state"], "label": ollama_status["label"]})


@app.get("/status")
async def status_endpoint() -> JSONResponse:
    fine_tuning.tick()
    return JSONResponse(
        {
            "ollama_state": ollama_status["state"],
            "ollama_label": ollama_status["label"],
            "monitor_running": monitor_task is not None and not monitor_task.done(),
            "fine_tuning": fine_tuning.counts(),
            "analytics_records": len(analytics_log),
            "workflows": len(workflow_store),
        }
    )


# Convenience include for uvicorn.
__all__ = ["app"]
