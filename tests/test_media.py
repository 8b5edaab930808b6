import base64
import io
import wave

import pytest

from kolosal.media import (
    SAMPLE_RATE,
    audio_data_url,
    estimate_duration,
    image_cost,
    placeholder_image_url,
    render_placeholder_svg,
    synthesize_tone,
)


def test_svg_dimensions_follow_size() -> None:
    svg = render_placeholder_svg("a lighthouse", "vintage", "portrait")
    assert svg.startswith('<svg width="512" height="768"')
    assert "#D4A574" in svg
    assert "Vintage Style" in svg


def test_svg_escapes_prompt_and_truncates() -> None:
    svg = render_placeholder_svg('<b onload="x">' + "y" * 40, "abstract", "square")
    assert "<b onload" not in svg
    assert "&lt;b onload=" in svg
    assert "..." in svg


def test_image_url_is_svg_data_url() -> None:
    url = placeholder_image_url("cat", "cartoon", "landscape")
    assert url.startswith("data:image/svg+xml;base64,")
    assert b'width="768"' in base64.b64decode(url.split(",", 1)[1])


def test_image_cost_scales_with_quality() -> None:
    assert image_cost("standard") == 0.002
    assert image_cost("high") == pytest.approx(0.003)
    assert image_cost("ultra") == pytest.approx(0.004)


def test_duration_estimate() -> None:
    assert estimate_duration("one two", 1.0) == 1
    assert estimate_duration(" ".join(["word"] * 300), 1.0) == 120
    assert estimate_duration(" ".join(["word"] * 300), 2.0) == 60


def test_tone_is_valid_wav() -> None:
    data = synthesize_tone("hello world", "nova", 1.0, 1.0, 1)
    with wave.open(io.BytesIO(data)) as handle:
        assert handle.getnchannels() == 1
        assert handle.getsampwidth() == 2
        assert handle.getframerate() == SAMPLE_RATE
        assert handle.getnframes() == SAMPLE_RATE
    assert audio_data_url(data).startswith("data:audio/wav;base64,UklGR")


def test_tone_length_is_capped() -> None:
    from kolosal.media import MAX_TONE_SECONDS

    data = synthesize_tone("long", "alloy", 1.0, 1.0, MAX_TONE_SECONDS * 100)
    with wave.open(io.BytesIO(data)) as handle:
        assert handle.getnframes() == SAMPLE_RATE * MAX_TONE_SECONDS
