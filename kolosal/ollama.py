from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, Iterator, List, Optional

import requests

logger = logging.getLogger("kolosal.ollama")

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 512
DEFAULT_TOP_P = 0.9


class OllamaError(RuntimeError):
    """Raised when the Ollama daemon returns an error or malformed response."""


class OllamaUnavailable(OllamaError):
    """Raised when the Ollama daemon cannot be reached at all."""


class OllamaClient:
    """
    Minimal HTTP client for the Ollama REST API (``/api/tags`` and ``/api/generate``).
    """

    def __init__(self, base_url: str, timeout: float = 120, health_timeout: float = 3) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.health_timeout = health_timeout

    def list_models(self) -> List[Dict[str, Any]]:
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=self.health_timeout)
        except requests.RequestException as exc:
            raise OllamaUnavailable(f"Ollama is not reachable at {self.base_url}: {exc}") from exc
        if response.status_code >= 400:
            raise OllamaError(f"Ollama returned {response.status_code}: {response.text}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise OllamaError("Failed to decode Ollama model list as JSON.") from exc
        models = payload.get("models") if isinstance(payload, dict) else None
        return list(models or [])

    def generate(self, *, model: str, prompt: str, options: Dict[str, Any]) -> Dict[str, Any]:
        response = self._post_generate(model=model, prompt=prompt, options=options, stream=False)
        if response.status_code >= 400:
            raise OllamaError(response.text)
        try:
            return response.json()
        except ValueError as exc:
            raise OllamaError("Failed to decode Ollama response as JSON.") from exc

    def stream_generate(
        self, *, model: str, prompt: str, options: Dict[str, Any]
    ) -> Iterator[Dict[str, Any]]:
        response = self._post_generate(model=model, prompt=prompt, options=options, stream=True)
        with response:
            if response.status_code >= 400:
                raise OllamaError(response.text)
            for line in response.iter_lines(decode_unicode=True):
                if not line or not line.strip():
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    logger.error("Skipping unparseable stream chunk: %r", line[:200])

    def _post_generate(
        self, *, model: str, prompt: str, options: Dict[str, Any], stream: bool
    ) -> requests.Response:
        payload = {
            "model": model,
            "prompt": prompt,
            "stream": stream,
            "options": options,
        }
        try:
            return requests.post(
                f"{self.base_url}/api/generate",
                headers={"Content-Type": "application/json"},
                data=json.dumps(payload),
                timeout=self.timeout,
                stream=stream,
            )
        except requests.RequestException as exc:
            raise OllamaUnavailable(f"Ollama is not reachable at {self.base_url}: {exc}") from exc


def resolve_model(requested: Optional[str], available: List[Dict[str, Any]], default: str) -> str:
    """
    Pick the model to run: the requested one when the daemon has it, otherwise
    the first installed model, otherwise the configured default.
    """
    names = [entry.get("name") for entry in available if isinstance(entry, dict) and entry.get("name")]
    if requested and requested in names:
        return requested
    if names:
        logger.warning("Model '%s' not found, using '%s' instead", requested, names[0])
        return names[0]
    return default


def _clamp(value: Any, low: float, high: float, fallback: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = fallback
    if math.isnan(number):
        number = fallback
    return max(low, min(high, number))


def generation_options(
    temperature: Any = DEFAULT_TEMPERATURE,
    max_tokens: Any = DEFAULT_MAX_TOKENS,
    top_p: Any = DEFAULT_TOP_P,
) -> Dict[str, Any]:
    return {
        "temperature": _clamp(temperature, 0, 2, DEFAULT_TEMPERATURE),
        "num_predict": int(_clamp(max_tokens, 1, 4096, DEFAULT_MAX_TOKENS)),
        "top_p": _clamp(top_p, 0, 1, DEFAULT_TOP_P),
    }


def estimate_tokens(text: Optional[str]) -> int:
    """Rough token count: one token per four characters."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def has_image_models(available: List[Dict[str, Any]]) -> bool:
    markers = ("dall", "stable", "diffusion", "midjourney")
    for entry in available:
        name = str(entry.get("name", "")) if isinstance(entry, dict) else ""
        if any(marker in name for marker in markers):
            return True
    return False
