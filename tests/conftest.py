import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Settings and logs must land in a scratch directory before kolosal.main is imported.
os.environ.setdefault("KOLOSAL_DATA_DIR", tempfile.mkdtemp(prefix="kolosal-tests-"))

from kolosal.ollama import OllamaError, OllamaUnavailable  # noqa: E402


class FakeOllama:
    """In-process stand-in for the Ollama daemon."""

    def __init__(
        self,
        models: Optional[List[str]] = None,
        response: str = "Hello from the model.",
        chunks: Optional[List[str]] = None,
        offline: bool = False,
        generate_error: Optional[Exception] = None,
    ) -> None:
        self.models = ["llama2:latest"] if models is None else models
        self.response = response
        self.chunks = chunks if chunks is not None else ["Hel", "lo", "!"]
        self.offline = offline
        self.generate_error = generate_error
        self.calls: List[Dict[str, Any]] = []

    def list_models(self) -> List[Dict[str, Any]]:
        if self.offline:
            raise OllamaUnavailable("connection refused")
        return [{"name": name, "size": 1024} for name in self.models]

    def generate(self, *, model: str, prompt: str, options: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append({"model": model, "prompt": prompt, "options": options})
        if self.offline:
            raise OllamaUnavailable("connection refused")
        if self.generate_error is not None:
            raise self.generate_error
        return {
            "model": model,
            "created_at": "2024-01-20T10:00:00Z",
            "response": self.response,
            "done": True,
            "total_duration": 1200,
            "load_duration": 100,
            "prompt_eval_count": 12,
            "eval_count": 5,
        }

    def stream_generate(self, *, model: str, prompt: str, options: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        self.calls.append({"model": model, "prompt": prompt, "options": options, "stream": True})
        for index, chunk in enumerate(self.chunks):
            yield {"model": model, "response": chunk, "done": False}
            if self.generate_error is not None and index == 0:
                raise self.generate_error
        yield {"model": model, "response": "", "done": True}


@pytest.fixture
def fake_ollama() -> FakeOllama:
    return FakeOllama()


@pytest.fixture
def app_module(monkeypatch: pytest.MonkeyPatch, fake_ollama: FakeOllama):
    from kolosal import main

    main.analytics_log.clear()
    main.memory_store.clear()
    main.context_store.reset()
    main.workflow_store.reset()
    main.fine_tuning.reset()
    main.api_keys.reset()
    main.clusters.reset()
    monkeypatch.setitem(main.settings_manager.settings, "simulate_latency", False)
    monkeypatch.setattr(main.inference, "client", fake_ollama)
    return main


@pytest.fixture
def client(app_module):
    from fastapi.testclient import TestClient

    return TestClient(app_module.app)


__all__ = ["FakeOllama", "OllamaError"]
