from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterator, List, Tuple

from .analytics import AnalyticsLog
from .ollama import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_P,
    OllamaClient,
    OllamaError,
    estimate_tokens,
    generation_options,
    resolve_model,
)
from .prompts import DEFAULT_SYSTEM_PROMPT, build_chat_prompt, build_task_prompt

logger = logging.getLogger("kolosal.inference")

RESPONSE_FIELDS = (
    "response",
    "model",
    "created_at",
    "done",
    "total_duration",
    "load_duration",
    "prompt_eval_count",
    "eval_count",
)


class RequestError(ValueError):
    """Raised for malformed playground requests (maps to HTTP 400)."""


class InferenceService:
    """
    Runs playground requests against the Ollama daemon and records every
    outcome in the analytics log.
    """

    def __init__(
        self,
        client: OllamaClient,
        analytics: AnalyticsLog,
        default_model: str = "phi",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.analytics = analytics
        self.default_model = default_model
        self.clock = clock

    def models(self) -> List[Dict[str, Any]]:
        return self.client.list_models()

    def resolve(self, requested: Any) -> str:
        available = self.client.list_models()
        return resolve_model(requested if isinstance(requested, str) else None, available, self.default_model)

    def _options(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return generation_options(
            payload.get("temperature", DEFAULT_TEMPERATURE),
            payload.get("max_tokens", DEFAULT_MAX_TOKENS),
            payload.get("top_p", DEFAULT_TOP_P),
        )

    def _elapsed(self, started: float) -> float:
        return round(self.clock() - started, 3)

    def _record(self, model: str, tokens: int, started: float, success: bool) -> float:
        elapsed = self._elapsed(started)
        self.analytics.record(
            model=model or "unknown",
            tokens=tokens,
            response_time=elapsed,
            success=success,
            cost=0.0,
        )
        return elapsed

    def _generate(self, model: str, prompt: str, payload: Dict[str, Any], started: float) -> Tuple[Dict[str, Any], int, float]:
        tokens = estimate_tokens(prompt)
        try:
            data = self.client.generate(model=model, prompt=prompt, options=self._options(payload))
        except Exception:
            self._record(model, tokens, started, False)
            raise
        tokens += estimate_tokens(data.get("response"))
        elapsed = self._record(model, tokens, started, True)
        return data, tokens, elapsed

    def chat(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        started = self.clock()
        messages = _chat_messages(payload)
        model = self.resolve(payload.get("model"))
        prompt = build_chat_prompt(messages, payload.get("system_prompt", DEFAULT_SYSTEM_PROMPT))
        data, tokens, elapsed = self._generate(model, prompt, payload, started)
        result = {field: data.get(field) for field in RESPONSE_FIELDS}
        result["tokens_used"] = tokens
        result["response_time"] = elapsed
        logger.info("Chat completed model=%s tokens=%d time=%.3fs", model, tokens, elapsed)
        return result

    def language(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        started = self.clock()
        text = payload.get("prompt")
        if not isinstance(text, str) or not text.strip():
            raise RequestError("Prompt is required")
        task = payload.get("task") or "completion"
        model = self.resolve(payload.get("model"))
        prompt = build_task_prompt(str(task), text)
        data, tokens, elapsed = self._generate(model, prompt, payload, started)
        logger.info("Language task %s completed model=%s tokens=%d", task, model, tokens)
        return {
            "response": data.get("response"),
            "model": data.get("model"),
            "task": task,
            "tokens_used": tokens,
            "response_time": elapsed,
            "created_at": data.get("created_at"),
            "done": data.get("done"),
        }

    def stream_chat(self, payload: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        """
        Validate and resolve eagerly, then hand back a generator of stream events.

        Validation and daemon-availability errors raise here so the caller can
        still answer with a plain JSON error instead of an event stream.
        """
        started = self.clock()
        messages = _chat_messages(payload)
        model = self.resolve(payload.get("model"))
        prompt = build_chat_prompt(messages, payload.get("system_prompt", DEFAULT_SYSTEM_PROMPT))
        return self._stream_events(model, prompt, self._options(payload), started)

    def _stream_events(
        self, model: str, prompt: str, options: Dict[str, Any], started: float
    ) -> Iterator[Dict[str, Any]]:
        tokens = estimate_tokens(prompt)
        pieces: List[str] = []
        try:
            for chunk in self.client.stream_generate(model=model, prompt=prompt, options=options):
                text = chunk.get("response")
                if text:
                    pieces.append(text)
                    yield {"response": text, "done": False}
        except OllamaError as exc:
            logger.error("Ollama stream failed for model=%s: %s", model, exc)
            self._record(model, tokens, started, False)
            yield {"error": f"Ollama API error: {exc}"}
            return
        except Exception:
            logger.exception("Streaming failed for model=%s", model)
            self._record(model, tokens, started, False)
            yield {"error": "Streaming failed"}
            return
        tokens += estimate_tokens("".join(pieces))
        elapsed = self._record(model, tokens, started, True)
        yield {"done": True, "response_time": elapsed, "tokens_used": tokens, "model": model}


def _chat_messages(payload: Dict[str, Any]) -> List[Any]:
    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        raise RequestError("Messages are required")
    return messages
