"""
Placeholder media generators for the image and audio playgrounds.

Neither modality has a real backend yet: images are gradient SVGs derived
from the prompt and style, speech is a decaying sine tone packed as WAV.
"""
from __future__ import annotations

import base64
import io
import wave
from html import escape
from typing import Dict, List, Tuple

import numpy as np

STYLE_COLORS: Dict[str, List[str]] = {
    "realistic": ["#6B73FF", "#9575CD", "#7986CB"],
    "artistic": ["#FF6B6B", "#4ECDC4", "#45B7D1"],
    "cartoon": ["#FFD93D", "#6BCF7F", "#4D96FF"],
    "abstract": ["#FF6B6B", "#4ECDC4", "#45B7D1", "#FFD93D"],
    "vintage": ["#D4A574", "#B5A165", "#8B7355"],
    "futuristic": ["#00E5FF", "#3F51B5", "#9C27B0"],
    "minimalist": ["#F5F5F5", "#E0E0E0", "#BDBDBD"],
    "surreal": ["#E91E63", "#9C27B0", "#673AB7"],
}

IMAGE_SIZES: Dict[str, Tuple[int, int]] = {
    "square": (512, 512),
    "portrait": (512, 768),
    "landscape": (768, 512),
}

QUALITY_DELAYS: Dict[str, float] = {
    "draft": 1.0,
    "standard": 3.0,
    "high": 5.0,
    "ultra": 8.0,
}

QUALITY_COST_MULTIPLIER: Dict[str, float] = {"ultra": 2.0, "high": 1.5}

IMAGE_COST = 0.002

VOICES = [
    {"id": "alloy", "name": "Alloy", "gender": "neutral", "language": "en-US", "description": "A balanced, versatile voice"},
    {"id": "echo", "name": "Echo", "gender": "male", "language": "en-US", "description": "A clear, professional male voice"},
    {"id": "fable", "name": "Fable", "gender": "male", "language": "en-US", "description": "A warm, storytelling voice"},
    {"id": "onyx", "name": "Onyx", "gender": "male", "language": "en-US", "description": "A deep, authoritative voice"},
    {"id": "nova", "name": "Nova", "gender": "female", "language": "en-US", "description": "A bright, energetic female voice"},
    {"id": "shimmer", "name": "Shimmer", "gender": "female", "language": "en-US", "description": "A soft, gentle female voice"},
]

HIGH_VOICES = {"nova", "shimmer"}
SAMPLE_RATE = 44100
AUDIO_DELAY = 2.0
WORDS_PER_MINUTE = 150
RATE_RANGE = (0.25, 4.0)
MAX_TONE_SECONDS = 30


def image_cost(quality: str) -> float:
    return IMAGE_COST * QUALITY_COST_MULTIPLIER.get(quality, 1.0)


def render_placeholder_svg(prompt: str, style: str, size: str) -> str:
    width, height = IMAGE_SIZES.get(size, (512, 512))
    colors = STYLE_COLORS.get(style, STYLE_COLORS["artistic"])
    stops = "".join(
        f'<stop offset="{index / (len(colors) - 1) * 100:g}%" style="stop-color:{color};stop-opacity:1" />'
        for index, color in enumerate(colors)
    )
    short = min(width, height)
    parts = [
        f'<svg width="{width}" height="{height}" xmlns="http://www.w3.org/2000/svg">',
        '<defs>',
        f'<linearGradient id="grad1" x1="0%" y1="0%" x2="100%" y2="100%">{stops}</linearGradient>',
        '<filter id="blur"><feGaussianBlur in="SourceGraphic" stdDeviation="3"/></filter>',
        '</defs>',
        f'<rect width="{width}" height="{height}" fill="url(#grad1)" />',
    ]
    if style == "abstract":
        parts.append(
            f'<circle cx="{width * 0.3:g}" cy="{height * 0.3:g}" r="{short * 0.15:g}" fill="white" opacity="0.7" />'
        )
        parts.append(
            f'<circle cx="{width * 0.7:g}" cy="{height * 0.7:g}" r="{short * 0.1:g}" fill="white" opacity="0.5" />'
        )
    if style == "geometric":
        parts.append(
            f'<polygon points="{width * 0.5:g},{height * 0.2:g} {width * 0.8:g},{height * 0.8:g} '
            f'{width * 0.2:g},{height * 0.8:g}" fill="white" opacity="0.6" />'
        )
    caption = prompt[:30] + ("..." if len(prompt) > 30 else "")
    label = style[:1].upper() + style[1:]
    parts.extend(
        [
            f'<circle cx="{width / 2:g}" cy="{height / 2:g}" r="{short * 0.12:g}" fill="white" opacity="0.8" />',
            f'<text x="{width / 2:g}" y="{height / 2 - 10:g}" text-anchor="middle" font-family="Arial, sans-serif" '
            'font-size="16" font-weight="bold" fill="#333">Generated Image</text>',
            f'<text x="{width / 2:g}" y="{height / 2 + 10:g}" text-anchor="middle" font-family="Arial, sans-serif" '
            f'font-size="12" fill="#666">{escape(label)} Style</text>',
            f'<text x="{width / 2:g}" y="{height / 2 + 30:g}" text-anchor="middle" font-family="Arial, sans-serif" '
            f'font-size="10" fill="#999">{escape(caption)}</text>',
            '</svg>',
        ]
    )
    return "".join(parts)


def placeholder_image_url(prompt: str, style: str, size: str) -> str:
    svg = render_placeholder_svg(prompt, style, size)
    return "data:image/svg+xml;base64," + base64.b64encode(svg.encode("utf-8")).decode("ascii")


def word_count(text: str) -> int:
    return len(text.split())


def estimate_duration(text: str, speed: float) -> int:
    """Seconds of speech at 150 words per minute, never below one second."""
    return max(1, round(word_count(text) / WORDS_PER_MINUTE * 60 / speed))


def synthesize_tone(text: str, voice: str, speed: float, pitch: float, duration: float) -> bytes:
    """
    Render a 16-bit mono WAV tone whose frequency depends on voice, pitch and text.

    The rendered clip stops at MAX_TONE_SECONDS however long the estimate is.
    """
    samples = int(SAMPLE_RATE * min(duration, MAX_TONE_SECONDS))
    base = 220 if voice in HIGH_VOICES else 110
    frequency = base * pitch + sum(ord(char) for char in text) % 50
    t = np.arange(samples, dtype=np.float64) / SAMPLE_RATE
    envelope = np.exp(-t * 2) * np.sin(2 * np.pi * frequency * t / speed)
    pcm = np.floor(envelope * 16383).astype("<i2")

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as handle:
        handle.setnchannels(1)
        handle.setsampwidth(2)
        handle.setframerate(SAMPLE_RATE)
        handle.writeframes(pcm.tobytes())
    return buffer.getvalue()


def audio_data_url(wav_bytes: bytes) -> str:
    return "data:audio/wav;base64," + base64.b64encode(wav_bytes).decode("ascii")
