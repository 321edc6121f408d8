"""
rankedle.engine.waveform — Waveform Bar-Chart Renderer
=======================================================

Turns the amplitude samples extracted from the full preview clip into a
PNG of vertically centred rounded bars.  Three render modes:

* ``locked``    — dark grey gradient (clip not yet revealed)
* ``unlocked``  — light grey gradient
* ``progress``  — light grey bars with a three-stop colour gradient laid
  over them using *source-atop* compositing, so only bar pixels are tinted.

Pure Pillow — no DB or filesystem access.
"""

from __future__ import annotations

import enum
import io
from collections.abc import Sequence

from PIL import Image, ImageChops, ImageDraw

DEFAULT_BAR_COUNT = 200
DEFAULT_BAR_WIDTH = 8
DEFAULT_GAP = 8
DEFAULT_HEIGHT = 160

Color = tuple[int, int, int]
GradientStops = Sequence[tuple[float, Color]]


class WaveformMode(enum.StrEnum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    PROGRESS = "progress"


# Vertical grey fills (top → bottom)
LOCKED_STOPS: GradientStops = ((0.0, (82, 82, 91)), (1.0, (39, 39, 42)))
UNLOCKED_STOPS: GradientStops = ((0.0, (228, 228, 231)), (1.0, (161, 161, 170)))
# Horizontal colour overlay (left → right)
PROGRESS_STOPS: GradientStops = (
    (0.0, (255, 0, 110)),
    (0.5, (131, 56, 236)),
    (1.0, (58, 134, 255)),
)


# ---------------------------------------------------------------------------
# Sample shaping
# ---------------------------------------------------------------------------
def downsample(samples: Sequence[float], bar_count: int) -> list[float]:
    """Average the absolute sample values inside each of *bar_count*
    equal windows."""
    if bar_count <= 0:
        raise ValueError("bar_count must be positive")
    total = len(samples)
    if total == 0:
        return [0.0] * bar_count

    block = total / bar_count
    buckets: list[float] = []
    for i in range(bar_count):
        start = int(i * block)
        end = max(int((i + 1) * block), start + 1)
        window = samples[start:min(end, total)] or samples[-1:]
        buckets.append(sum(abs(s) for s in window) / len(window))
    return buckets


def normalize(values: Sequence[float]) -> list[float]:
    """Scale *values* into ``[0, 1]`` by the global maximum."""
    peak = max(values, default=0.0)
    if peak <= 0:
        return [0.0 for _ in values]
    return [v / peak for v in values]


# ---------------------------------------------------------------------------
# Drawing helpers
# ---------------------------------------------------------------------------
def _interpolate(stops: GradientStops, t: float) -> Color:
    if t <= stops[0][0]:
        return stops[0][1]
    for (o1, c1), (o2, c2) in zip(stops, stops[1:]):
        if t <= o2:
            f = (t - o1) / (o2 - o1) if o2 > o1 else 0.0
            return tuple(round(a + (b - a) * f) for a, b in zip(c1, c2))  # type: ignore[return-value]
    return stops[-1][1]


def linear_gradient(
    size: tuple[int, int], stops: GradientStops, *, horizontal: bool
) -> Image.Image:
    """RGB image filled with a linear gradient along one axis."""
    width, height = size
    length = width if horizontal else height
    line = [_interpolate(stops, i / max(length - 1, 1)) for i in range(length)]
    strip = Image.new("RGB", (length, 1) if horizontal else (1, length))
    strip.putdata(line)
    return strip.resize(size, Image.Resampling.NEAREST)


def canvas_size(bar_count: int, bar_width: int, gap: int, height: int) -> tuple[int, int]:
    return bar_count * bar_width + max(bar_count - 1, 0) * gap, height


def bar_mask(
    values: Sequence[float], bar_width: int, gap: int, height: int
) -> Image.Image:
    """8-bit mask with one rounded, vertically centred bar per value."""
    mask = Image.new("L", canvas_size(len(values), bar_width, gap, height), 0)
    draw = ImageDraw.Draw(mask)
    radius = bar_width // 2
    for i, value in enumerate(values):
        bar_height = max(round(value * height), bar_width)
        bar_height = min(bar_height, height)
        x = i * (bar_width + gap)
        y = (height - bar_height) // 2
        draw.rounded_rectangle(
            (x, y, x + bar_width - 1, y + bar_height - 1), radius=radius, fill=255
        )
    return mask


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def render_waveform(
    samples: Sequence[float],
    mode: WaveformMode | str = WaveformMode.LOCKED,
    *,
    bar_count: int = DEFAULT_BAR_COUNT,
    bar_width: int = DEFAULT_BAR_WIDTH,
    gap: int = DEFAULT_GAP,
    height: int = DEFAULT_HEIGHT,
) -> bytes:
    """Render *samples* as a PNG bar chart and return the encoded bytes."""
    mode = WaveformMode(mode)
    if bar_width <= 0 or gap < 0 or height <= 0:
        raise ValueError("invalid bar geometry")

    values = normalize(downsample(samples, bar_count))
    mask = bar_mask(values, bar_width, gap, height)
    size = mask.size

    fill_stops = LOCKED_STOPS if mode == WaveformMode.LOCKED else UNLOCKED_STOPS
    canvas = Image.new("RGBA", size, (0, 0, 0, 0))
    canvas.paste(linear_gradient(size, fill_stops, horizontal=False), (0, 0), mask)

    if mode == WaveformMode.PROGRESS:
        overlay = linear_gradient(size, PROGRESS_STOPS, horizontal=True).convert("RGBA")
        # source-atop: the overlay only lands where the bars are opaque
        overlay.putalpha(ImageChops.multiply(overlay.getchannel("A"), canvas.getchannel("A")))
        canvas = Image.alpha_composite(canvas, overlay)

    buffer = io.BytesIO()
    canvas.save(buffer, format="PNG")
    return buffer.getvalue()
