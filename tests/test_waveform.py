"""
tests/test_waveform.py — Waveform Renderer
===========================================
"""

from __future__ import annotations

import io

import pytest
from PIL import Image

from rankedle.engine.waveform import (
    WaveformMode,
    canvas_size,
    downsample,
    normalize,
    render_waveform,
)


def _open(png: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(png))
    img.load()
    return img


class TestSampleShaping:
    def test_downsample_averages_absolute_values(self):
        assert downsample([1, -3, 2, -2], 2) == [2.0, 2.0]

    def test_downsample_pads_short_input(self):
        buckets = downsample([5], 3)
        assert len(buckets) == 3
        assert all(b == 5 for b in buckets)

    def test_downsample_empty(self):
        assert downsample([], 4) == [0.0] * 4

    def test_downsample_rejects_zero_bars(self):
        with pytest.raises(ValueError):
            downsample([1, 2], 0)

    def test_normalize_to_unit_range(self):
        assert normalize([2, 4, 1]) == [0.5, 1.0, 0.25]

    def test_normalize_silence(self):
        assert normalize([0, 0]) == [0.0, 0.0]


class TestRender:
    SAMPLES = [abs((i % 40) - 20) * 100 for i in range(4000)]

    def test_png_size_follows_bar_geometry(self):
        img = _open(render_waveform(self.SAMPLES, "locked", bar_count=10, bar_width=4, gap=2, height=50))
        assert img.format == "PNG"
        assert img.size == canvas_size(10, 4, 2, 50) == (58, 50)

    def test_default_geometry(self):
        img = _open(render_waveform(self.SAMPLES))
        assert img.size == (200 * 8 + 199 * 8, 160)

    def test_gaps_stay_transparent(self):
        img = _open(render_waveform(self.SAMPLES, "unlocked", bar_count=5, bar_width=4, gap=4, height=40))
        # x=5 is inside the first gap
        assert img.getpixel((5, 20))[3] == 0
        assert img.getpixel((1, 20))[3] == 255

    def test_locked_and_unlocked_differ_only_in_fill(self):
        locked = _open(render_waveform(self.SAMPLES, WaveformMode.LOCKED, bar_count=5, height=40))
        unlocked = _open(render_waveform(self.SAMPLES, WaveformMode.UNLOCKED, bar_count=5, height=40))
        assert locked.getchannel("A").tobytes() == unlocked.getchannel("A").tobytes()
        assert locked.getpixel((2, 20)) != unlocked.getpixel((2, 20))

    def test_progress_colours_bars_only(self):
        progress = _open(render_waveform(self.SAMPLES, "progress", bar_count=5, bar_width=4, gap=4, height=40))
        unlocked = _open(render_waveform(self.SAMPLES, "unlocked", bar_count=5, bar_width=4, gap=4, height=40))
        assert progress.getchannel("A").tobytes() == unlocked.getchannel("A").tobytes()
        r, g, b, _ = progress.getpixel((1, 20))
        assert (r, g, b) != unlocked.getpixel((1, 20))[:3]
        assert progress.getpixel((5, 20))[3] == 0

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            render_waveform(self.SAMPLES, "neon")
