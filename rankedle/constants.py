"""
rankedle.constants — Shared Constants
======================================

Single source of truth for the scoring table, the reveal-step clip
lengths and the glyphs used on the result screen and in share text.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Reveal steps & scoring
# ---------------------------------------------------------------------------
MAX_SKIPS = 6
HINT_SKIPS = 5  # hint is only redeemable with exactly one reveal step left

# Points awarded for a win, indexed by skip count
POINTS: list[int] = [8, 6, 4, 3, 2, 1, 0]

# Preview clip lengths in seconds, indexed by clip number (0–5)
CLIP_RANGES: list[int] = [1, 2, 4, 7, 11, 16]

FULL_PREVIEW_SECONDS = 30
AUDIO_BITRATE_KBPS = 96
SILENCE_FILTER = "silenceremove=1:0:-50dB"
PACKAGED_AUDIO_SUFFIX = ".egg"

SEARCH_RESULT_LIMIT = 5
HISTORY_PAGE_SIZE = 8

# ---------------------------------------------------------------------------
# Artifact file names (inside <assets_dir>/<puzzle_id>/)
# ---------------------------------------------------------------------------
SONG_FILE = "song.mp3"
FULL_PREVIEW_FILE = "preview_full.mp3"
WAVEFORM_FILE = "waveform.json"


def preview_file(clip: int | str) -> str:
    """File name of preview clip *clip* (0–5 or ``"full"``)."""
    return f"preview_{clip}.mp3"


# ---------------------------------------------------------------------------
# Result glyphs
# ---------------------------------------------------------------------------
VOLUME_LOST = "\U0001f507"        # 🔇
VOLUME_FIRST_TRY = "\U0001f50a"   # 🔊
VOLUME_WON = "\U0001f509"         # 🔉

STEP_GLYPHS: dict[str | None, str] = {
    "skip": "\u2b1b",            # ⬛
    "fail": "\U0001f7e5",         # 🟥
    "success": "\U0001f7e9",      # 🟩
    None: "\u2b1c",              # ⬜
}

# ---------------------------------------------------------------------------
# Discord permissions
# ---------------------------------------------------------------------------
VIEW_CHANNEL = 1 << 10
