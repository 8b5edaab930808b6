from __future__ import annotations

import base64
import copy
import html
import random
import string
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from .storage import RecordStore, millis, now_utc, isoformat, utcnow

SERVER_VERSION = "2.0.0"

NEW_FEATURES = [
    "Image Analysis",
    "File Processing",
    "AI Art Generation",
    "Music Composition",
    "Language Translation",
    "Document Generation",
    "Task Scheduling",
]


class ToolError(RuntimeError):
    """Raised for unknown tools or invalid tool arguments."""


class ToolNotFound(ToolError):
    pass


@dataclass
class ToolDefinition:
    name: str
    description: str
    parameters: Dict[str, Any]
    handler: Callable[[Dict[str, Any]], Any]

    def to_schema(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def bind(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate required parameters and fill declared defaults.
        """
        bound = dict(arguments)
        for key, spec in self.parameters.items():
            if key in bound and bound[key] is not None:
                continue
            if spec.get("required"):
                raise ToolError(f"Tool '{self.name}' requires the '{key}' parameter.")
            if "default" in spec:
                bound[key] = copy.deepcopy(spec["default"])
        return bound


class ToolRegistry:
    """
    Registry of callable MCP tools exposed to the playground and workflows.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, ToolDefinition] = {}

    def register(
        self,
        name: str,
        description: str,
        parameters: Dict[str, Any],
        handler: Callable[[Dict[str, Any]], Any],
    ) -> None:
        self._tools[name] = ToolDefinition(
            name=name,
            description=description,
            parameters=parameters,
            handler=handler,
        )

    def definitions(self) -> List[Dict[str, Any]]:
        return [tool.to_schema() for tool in self._tools.values()]

    def names(self) -> List[str]:
        return list(self._tools)

    def execute(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
        if name not in self._tools:
            raise ToolNotFound(f"Tool '{name}' not found")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ToolError("Tool parameters must be a JSON object.")
        tool = self._tools[name]
        return tool.handler(tool.bind(arguments))

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:  # pragma: no cover - trivial
        return len(self._tools)


class MemoryStore:
    """Key/value scratch space behind the memory_manager tool."""

    def __init__(self) -> None:
        self._items: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def store(self, key: str, value: Any) -> None:
        with self._lock:
            self._items[key] = {"value": value, "timestamp": utcnow()}

    def retrieve(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self._items.get(key)
            return dict(item) if item else None

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


def _tool_names(tools: Any) -> List[str]:
    if tools is None:
        return []
    if not isinstance(tools, list) or not all(isinstance(name, str) for name in tools):
        raise ValueError("Context tools must be a list of tool names")
    return list(tools)


class ContextStore(RecordStore):
    """MCP contexts: named tool sets with their own memory."""

    def create(self, name: Optional[str], description: Optional[str], tools: Optional[List[str]]) -> Dict[str, Any]:
        tools = _tool_names(tools)
        timestamp = utcnow()
        context = {
            "id": f"ctx_{millis()}",
            "name": name or "Unnamed Context",
            "description": description or "",
            "tools": tools,
            "memory": {},
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        return self.add(context)

    def update_context(self, context_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        changes = {key: value for key, value in fields.items() if key not in {"id", "created_at"}}
        if "tools" in changes:
            changes["tools"] = _tool_names(changes["tools"])
        changes["updated_at"] = utcnow()
        return self.update(context_id, changes)


def _svg_data_url(svg: str) -> str:
    return "data:image/svg+xml;base64," + base64.b64encode(svg.encode("utf-8")).decode("ascii")


IDEAS = [
    "A social network for plants",
    "AI-powered dream interpreter",
    "Virtual reality meditation garden",
    "Blockchain-based recipe sharing",
    "Smart mirror with personality",
    "Time capsule messaging app",
    "Emotion-based music generator",
    "AR pet adoption platform",
]

NAMES = ["Aurora", "Zephyr", "Nova", "Sage", "Phoenix", "Luna", "Atlas", "Iris"]

LANGUAGES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
    "ar": "Arabic",
    "hi": "Hindi",
}

DOCUMENT_TEMPLATES = {
    "report": "Executive Summary\n\n1. Introduction\n2. Methodology\n3. Findings\n4. Recommendations\n5. Conclusion",
    "letter": "Dear [Recipient],\n\n[Opening paragraph]\n\n[Body paragraphs]\n\n[Closing paragraph]\n\nSincerely,\n[Your name]",
    "contract": "CONTRACT AGREEMENT\n\nParties: [Party A] and [Party B]\nTerms: [Contract terms]\nDuration: [Time period]\nSignatures: ___________",
    "resume": "PROFESSIONAL RESUME\n\nContact Information\nProfessional Summary\nWork Experience\nEducation\nSkills\nReferences",
    "proposal": "PROJECT PROPOSAL\n\n1. Project Overview\n2. Objectives\n3. Methodology\n4. Timeline\n5. Budget\n6. Expected Outcomes",
}

FILE_OPERATIONS: Dict[str, Dict[str, Any]] = {
    "extract_text": {
        "text": "This is extracted text from the document...",
        "word_count": 1250,
        "pages": 5,
        "language": "en",
    },
    "parse_csv": {
        "rows": 1000,
        "columns": ["name", "age", "city", "salary"],
        "sample_data": [
            {"name": "John Doe", "age": 30, "city": "New York", "salary": 75000},
            {"name": "Jane Smith", "age": 28, "city": "Los Angeles", "salary": 82000},
        ],
        "statistics": {
            "avg_age": 29,
            "avg_salary": 78500,
            "cities": ["New York", "Los Angeles", "Chicago"],
        },
    },
    "validate_json": {"valid": True, "schema_errors": [], "size": "15.2 KB", "objects": 45},
    "compress": {
        "original_size": "10.5 MB",
        "compressed_size": "2.1 MB",
        "compression_ratio": "80%",
        "format": "ZIP",
    },
    "convert": {
        "from_format": "PDF",
        "to_format": "DOCX",
        "success": True,
        "output_url": "/converted/document.docx",
    },
}


def register_default_tools(
    registry: ToolRegistry,
    memory: MemoryStore,
    rng: Optional[random.Random] = None,
) -> None:
    """
    Register the built-in demo tools. Handlers return canned or randomised data.
    """
    rng = rng or random.Random()

    def web_search(params: Dict[str, Any]) -> Dict[str, Any]:
        query = str(params["query"])
        return {
            "results": [
                {
                    "title": f"Search results for: {query}",
                    "url": f"https://example.com/search?q={quote(query, safe='')}",
                    "snippet": f"Relevant information about {query} from the web...",
                    "timestamp": utcnow(),
                }
            ]
        }

    registry.register(
        name="web_search",
        description="Search the web for real-time information",
        parameters={
            "query": {"type": "string", "required": True},
            "max_results": {"type": "number", "default": 5},
        },
        handler=web_search,
    )

    def code_analyzer(_: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "analysis": {
                "bugs": ["Potential null pointer exception on line 15"],
                "performance": ["Consider using async/await for better performance"],
                "best_practices": ["Add error handling for API calls"],
                "complexity_score": rng.randint(1, 10),
                "maintainability": "Good",
            }
        }

    registry.register(
        name="code_analyzer",
        description="Analyze code for bugs, performance issues, and best practices",
        parameters={
            "code": {"type": "string", "required": True},
            "language": {"type": "string", "required": True},
        },
        handler=code_analyzer,
    )

    def data_visualizer(params: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "visualization": {
                "type": params["chart_type"],
                "data": params["data"],
                "config": {
                    "title": "Generated Visualization",
                    "x_axis": "Categories",
                    "y_axis": "Values",
                },
                "svg_url": f"/api/mcp/visualizations/{millis()}.svg",
            }
        }

    registry.register(
        name="data_visualizer",
        description="Create visualizations from data",
        parameters={
            "data": {"type": "array", "required": True},
            "chart_type": {"type": "string", "default": "bar"},
        },
        handler=data_visualizer,
    )

    def sentiment_analyzer(_: Dict[str, Any]) -> Dict[str, Any]:
        emotions = ["joy", "anger", "sadness", "fear", "surprise", "disgust"]
        return {
            "sentiment": {
                "label": rng.choice(["positive", "negative", "neutral"]),
                "confidence": rng.random(),
                "emotions": [
                    {"emotion": emotion, "intensity": rng.random()}
                    for emotion in emotions[: rng.randint(1, 3)]
                ],
            }
        }

    registry.register(
        name="sentiment_analyzer",
        description="Analyze sentiment and emotions in text",
        parameters={"text": {"type": "string", "required": True}},
        handler=sentiment_analyzer,
    )

    def memory_manager(params: Dict[str, Any]) -> Dict[str, Any]:
        action = params["action"]
        key = str(params["key"])
        if action == "store":
            memory.store(key, params.get("value"))
            return {"success": True, "message": f"Stored {key}"}
        if action == "retrieve":
            item = memory.retrieve(key)
            return item if item else {"error": "Key not found"}
        if action == "delete":
            memory.delete(key)
            return {"success": True, "message": f"Deleted {key}"}
        return {"error": "Invalid action"}

    registry.register(
        name="memory_manager",
        description="Store and retrieve contextual information",
        parameters={
            "action": {"type": "string", "required": True},
            "key": {"type": "string", "required": True},
            "value": {"type": "any", "required": False},
        },
        handler=memory_manager,
    )

    generators: Dict[str, Callable[[], Any]] = {
        "number": lambda: rng.randrange(1000),
        "string": lambda: "".join(rng.choice(string.ascii_lowercase + string.digits) for _ in range(13)),
        "idea": lambda: rng.choice(IDEAS),
        "color": lambda: f"#{rng.randrange(16777215):06x}",
        "name": lambda: rng.choice(NAMES),
    }

    def random_generator(params: Dict[str, Any]) -> Dict[str, Any]:
        generator = generators.get(params["type"])
        if generator is None:
            return {"error": "Invalid type"}
        try:
            count = int(params.get("count") or 1)
        except (TypeError, ValueError) as exc:
            raise ToolError("random_generator 'count' must be a number.") from exc
        count = max(1, min(count, 100))
        results = [generator() for _ in range(count)]
        return {"results": results[0] if count == 1 else results}

    registry.register(
        name="random_generator",
        description="Generate random data, ideas, or creative content",
        parameters={
            "type": {"type": "string", "required": True},
            "count": {"type": "number", "default": 1},
        },
        handler=random_generator,
    )

    def image_analyzer(_: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "analysis": {
                "objects": [
                    {"name": "person", "confidence": 0.95, "bbox": [100, 150, 200, 400]},
                    {"name": "car", "confidence": 0.87, "bbox": [300, 200, 500, 350]},
                    {"name": "building", "confidence": 0.92, "bbox": [0, 0, 800, 300]},
                ],
                "text": [
                    {"text": "STOP", "confidence": 0.98, "bbox": [150, 180, 190, 210]},
                    {"text": "Main Street", "confidence": 0.85, "bbox": [400, 50, 500, 80]},
                ],
                "faces": [
                    {"age": 25, "gender": "female", "emotion": "happy", "confidence": 0.89},
                    {"age": 35, "gender": "male", "emotion": "neutral", "confidence": 0.76},
                ],
                "colors": ["#FF5733", "#33FF57", "#3357FF"],
                "dimensions": {"width": 800, "height": 600},
                "file_size": "2.3 MB",
                "format": "JPEG",
            }
        }

    registry.register(
        name="image_analyzer",
        description="Analyze images for objects, text, faces, and content",
        parameters={
            "image_url": {"type": "string", "required": True},
            "analysis_type": {"type": "string", "default": "comprehensive"},
        },
        handler=image_analyzer,
    )

    def file_processor(params: Dict[str, Any]) -> Dict[str, Any]:
        result = FILE_OPERATIONS.get(params["operation"])
        return copy.deepcopy(result) if result else {"error": "Invalid operation"}

    registry.register(
        name="file_processor",
        description="Process and analyze various file types (PDF, CSV, JSON, etc.)",
        parameters={
            "file_url": {"type": "string", "required": True},
            "operation": {"type": "string", "required": True},
            "options": {"type": "object", "default": {}},
        },
        handler=file_processor,
    )

    def ai_art_generator(params: Dict[str, Any]) -> Dict[str, Any]:
        prompt = str(params["prompt"])
        svg = (
            '<svg width="512" height="512" xmlns="http://www.w3.org/2000/svg">'
            '<defs><linearGradient id="grad1" x1="0%" y1="0%" x2="100%" y2="100%">'
            '<stop offset="0%" style="stop-color:#FF6B6B;stop-opacity:1" />'
            '<stop offset="50%" style="stop-color:#4ECDC4;stop-opacity:1" />'
            '<stop offset="100%" style="stop-color:#45B7D1;stop-opacity:1" />'
            "</linearGradient></defs>"
            '<rect width="512" height="512" fill="url(#grad1)" />'
            '<circle cx="256" cy="256" r="100" fill="white" opacity="0.8" />'
            '<text x="256" y="266" text-anchor="middle" font-family="Arial" font-size="24" fill="#333">'
            f"AI Art: {html.escape(prompt[:20])}..."
            "</text></svg>"
        )
        return {
            "artwork": {
                "image_url": _svg_data_url(svg),
                "prompt": prompt,
                "style": params["style"],
                "size": params["size"],
                "generation_time": "3.2s",
                "seed": rng.randrange(1000000),
                "model": "DALL-E-3-Simulator",
            }
        }

    registry.register(
        name="ai_art_generator",
        description="Generate AI artwork and images from text descriptions",
        parameters={
            "prompt": {"type": "string", "required": True},
            "style": {"type": "string", "default": "realistic"},
            "size": {"type": "string", "default": "512x512"},
            "quality": {"type": "string", "default": "standard"},
        },
        handler=ai_art_generator,
    )

    def music_composer(params: Dict[str, Any]) -> Dict[str, Any]:
        notes = ["C", "D", "E", "F", "G", "A", "B"]
        melody = [f"{rng.choice(notes)}{rng.randint(3, 5)}" for _ in range(16)]
        stamp = millis()
        return {
            "composition": {
                "title": f"AI Composition: {str(params['description'])[:30]}...",
                "genre": params["genre"],
                "duration": params["duration"],
                "tempo": rng.randint(80, 139),
                "key": f"{rng.choice(notes)} Major",
                "melody": melody,
                "chord_progression": ["C", "Am", "F", "G"],
                "instruments": params["instruments"],
                "audio_url": "data:audio/wav;base64," + base64.b64encode(b"simulated_audio_data").decode("ascii"),
                "midi_url": f"/generated/composition_{stamp}.mid",
                "sheet_music_url": f"/generated/sheet_{stamp}.pdf",
            }
        }

    registry.register(
        name="music_composer",
        description="Compose music and generate melodies from descriptions",
        parameters={
            "description": {"type": "string", "required": True},
            "genre": {"type": "string", "default": "ambient"},
            "duration": {"type": "number", "default": 30},
            "instruments": {"type": "array", "default": ["piano"]},
        },
        handler=music_composer,
    )

    def language_translator(params: Dict[str, Any]) -> Dict[str, Any]:
        text = str(params["text"])
        target = str(params["to_language"])
        source = params["from_language"]
        tagged = f"[{target.upper()}] {text}"
        return {
            "translation": {
                "original_text": text,
                "translated_text": tagged,
                "from_language": "en" if source == "auto" else source,
                "to_language": target,
                "confidence": rng.random() * 0.3 + 0.7,
                "context": params["context"],
                "alternatives": [f"Alternative 1: {tagged}", f"Alternative 2: {tagged}"],
                "detected_language": LANGUAGES.get(source, "English"),
            }
        }

    registry.register(
        name="language_translator",
        description="Translate text between multiple languages with context awareness",
        parameters={
            "text": {"type": "string", "required": True},
            "from_language": {"type": "string", "default": "auto"},
            "to_language": {"type": "string", "required": True},
            "context": {"type": "string", "default": "general"},
        },
        handler=language_translator,
    )

    def document_generator(params: Dict[str, Any]) -> Dict[str, Any]:
        document_type = str(params["document_type"])
        word_count = rng.randint(500, 1499)
        stamp = millis()
        return {
            "document": {
                "type": document_type,
                "title": f"Generated {document_type[:1].upper()}{document_type[1:]}",
                "content": DOCUMENT_TEMPLATES.get(document_type, "Custom document content..."),
                "style": params["style"],
                "word_count": word_count,
                "pages": -(-word_count // 250),
                "format": "DOCX",
                "download_url": f"/generated/document_{stamp}.docx",
                "preview_url": f"/preview/document_{stamp}.html",
            }
        }

    registry.register(
        name="document_generator",
        description="Generate various types of documents (reports, letters, contracts, etc.)",
        parameters={
            "document_type": {"type": "string", "required": True},
            "content_outline": {"type": "string", "required": True},
            "style": {"type": "string", "default": "professional"},
            "length": {"type": "string", "default": "medium"},
        },
        handler=document_generator,
    )

    def task_scheduler(params: Dict[str, Any]) -> Dict[str, Any]:
        now = now_utc()
        return {
            "scheduled_task": {
                "id": f"task_{millis()}",
                "name": params["task_name"],
                "schedule": params["schedule"],
                "action": params["action"],
                "status": "scheduled",
                "next_run": isoformat(now + timedelta(days=1)),
                "created_at": isoformat(now),
                "parameters": params["parameters"],
                "estimated_duration": "5 minutes",
                "priority": "medium",
            }
        }

    registry.register(
        name="task_scheduler",
        description="Schedule and manage automated tasks and workflows",
        parameters={
            "task_name": {"type": "string", "required": True},
            "schedule": {"type": "string", "required": True},
            "action": {"type": "string", "required": True},
            "parameters": {"type": "object", "default": {}},
        },
        handler=task_scheduler,
    )
