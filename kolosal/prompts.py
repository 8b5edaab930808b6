from __future__ import annotations

from typing import Any, Dict, List, Optional

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."

LANGUAGE_TASKS: Dict[str, str] = {
    "completion": "{text}",
    "summarization": "Please provide a concise summary of the following text:\n\n{text}\n\nSummary:",
    "translation": "Translate the following text to English:\n\n{text}\n\nTranslation:",
    "question-answering": "Answer the following question based on the provided context:\n\n{text}\n\nAnswer:",
    "code-generation": "Generate code based on the following description:\n\n{text}\n\nCode:",
    "code-explanation": "Explain the following code:\n\n{text}\n\nExplanation:",
    "creative-writing": "Write a creative piece based on the following prompt:\n\n{text}\n\nStory:",
}


def _render_message(message: Any) -> str:
    if not isinstance(message, dict):
        return str(message)
    role = message.get("role")
    content = message.get("content") or ""
    if not isinstance(content, str):
        content = str(content)
    if role == "user":
        return f"Human: {content}"
    if role == "assistant":
        return f"Assistant: {content}"
    return content


def build_chat_prompt(messages: List[Any], system_prompt: Optional[str]) -> str:
    """
    Flatten a chat transcript into the single prompt string /api/generate expects.
    """
    prompt = f"System: {system_prompt}\n\n" if system_prompt else ""
    prompt += "\n\n".join(_render_message(message) for message in messages)
    return prompt + "\n\nAssistant: "


def build_task_prompt(task: str, text: str) -> str:
    # .replace keeps braces inside user text intact
    template = LANGUAGE_TASKS.get(task, "{text}")
    return template.replace("{text}", text)
