"""
rankedle.services.media_service — Download, ffmpeg & Image Toolchain
=====================================================================

Thin wrappers over the external tools the asset pipeline needs:

* ``httpx``           — map archive and cover downloads
* ``zipfile``         — pull the packaged ``.egg`` track out of the archive
* ``ffmpeg/ffprobe``  — silence trim, duration probe, clip cuts, PCM decode
* ``Pillow``          — blurred cover rendering for the hint

Every stage reads and writes files so each ffmpeg call consumes the
previous stage's output.  Failures surface as the matching
:mod:`rankedle.errors` type; nothing here retries.
"""

from __future__ import annotations

import base64
import io
import logging
import subprocess
import zipfile
from array import array
from pathlib import Path

import httpx
from PIL import Image, ImageFilter

from rankedle.constants import AUDIO_BITRATE_KBPS, SILENCE_FILTER
from rankedle.errors import DownloadError, ExtractionError, TranscodeError

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = httpx.Timeout(60.0, connect=10.0)

# PCM decode used for waveform extraction
WAVEFORM_SAMPLE_RATE = 8000
WAVEFORM_PEAKS_PER_SECOND = 100

COVER_SIZE = (300, 300)
COVER_BLUR_RADIUS = 20
COVER_SECOND_BLUR_RADIUS = 10


class MediaToolchain:
    """Media collaborator used by the asset pipeline and the hint.

    Parameters
    ----------
    ffmpeg_path, ffprobe_path:
        Binaries to invoke (resolved through ``PATH`` by default).
    http:
        Optional shared :class:`httpx.Client`; one is created per call
        otherwise.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        http: httpx.Client | None = None,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self._http = http

    # -------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------
    def _get(self, url: str) -> httpx.Response:
        if self._http is not None:
            return self._http.get(url, follow_redirects=True)
        with httpx.Client(timeout=DOWNLOAD_TIMEOUT, follow_redirects=True) as client:
            return client.get(url)

    def download_archive(self, url: str) -> bytes:
        """Fetch *url* once; any transport error or non-2xx status fails."""
        try:
            response = self._get(url)
        except httpx.HTTPError as exc:
            raise DownloadError(f"Song download failed (url: {url})") from exc
        if not response.is_success:
            raise DownloadError(
                f"Song download failed (url: {url}, status: {response.status_code})"
            )
        return response.content

    # -------------------------------------------------------------------
    # Archive
    # -------------------------------------------------------------------
    @staticmethod
    def extract_single_entry(archive: bytes, suffix: str) -> bytes:
        """Return the first archive entry whose name ends with *suffix*."""
        try:
            with zipfile.ZipFile(io.BytesIO(archive)) as zf:
                for info in zf.infolist():
                    if not info.is_dir() and info.filename.lower().endswith(suffix):
                        return zf.read(info)
        except zipfile.BadZipFile as exc:
            raise ExtractionError("Downloaded archive is not a valid zip file") from exc
        raise ExtractionError(f"No {suffix} entry found in archive")

    # -------------------------------------------------------------------
    # ffmpeg / ffprobe
    # -------------------------------------------------------------------
    def _run(self, args: list[str]) -> bytes:
        logger.debug("Running %s", " ".join(args))
        try:
            proc = subprocess.run(args, capture_output=True, check=False)
        except OSError as exc:
            raise TranscodeError(f"Cannot execute {args[0]}: {exc}") from exc
        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace").strip()
            raise TranscodeError(
                f"{Path(args[0]).name} exited with {proc.returncode}: {stderr[-500:]}"
            )
        return proc.stdout

    def trim_silence(self, source: Path, dest: Path) -> None:
        """Strip leading silence and re-encode to constant-bitrate MP3."""
        self._run([
            self.ffmpeg_path, "-y", "-i", str(source),
            "-af", SILENCE_FILTER,
            "-map", "0:a",
            "-map_metadata", "-1",
            "-codec:a", "libmp3lame",
            "-b:a", f"{AUDIO_BITRATE_KBPS}k",
            str(dest),
        ])

    def probe_duration(self, path: Path) -> float:
        out = self._run([
            self.ffprobe_path, "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
        ])
        try:
            return float(out.decode().strip())
        except ValueError as exc:
            raise TranscodeError(f"Unreadable duration for {path.name}") from exc

    def cut_clip(self, source: Path, dest: Path, start: float, duration: float) -> None:
        """Stream-copy *duration* seconds of *source* starting at *start*."""
        self._run([
            self.ffmpeg_path, "-y", "-i", str(source),
            "-ss", f"{start:g}",
            "-t", f"{duration:g}",
            "-c", "copy",
            str(dest),
        ])

    def extract_waveform_samples(self, path: Path) -> list[int]:
        """Decode *path* to mono 16-bit PCM and keep one absolute peak per
        ``1 / WAVEFORM_PEAKS_PER_SECOND`` seconds."""
        raw = self._run([
            self.ffmpeg_path, "-v", "error", "-i", str(path),
            "-ac", "1",
            "-ar", str(WAVEFORM_SAMPLE_RATE),
            "-f", "s16le",
            "-acodec", "pcm_s16le",
            "pipe:1",
        ])
        pcm = array("h")
        pcm.frombytes(raw[: len(raw) - len(raw) % 2])
        window = WAVEFORM_SAMPLE_RATE // WAVEFORM_PEAKS_PER_SECOND
        return [
            max(abs(s) for s in pcm[i:i + window])
            for i in range(0, len(pcm), window)
        ]

    # -------------------------------------------------------------------
    # Cover
    # -------------------------------------------------------------------
    def blur_cover(self, url: str) -> str:
        """Download the cover at *url*, blur it twice and return a base64
        WebP."""
        response = self._get(url)
        if not response.is_success:
            raise DownloadError(f"Cover download failed (url: {url})")

        with Image.open(io.BytesIO(response.content)) as img:
            cover = img.convert("RGB").resize(COVER_SIZE)
        cover = cover.filter(ImageFilter.GaussianBlur(COVER_BLUR_RADIUS))
        cover = cover.filter(ImageFilter.GaussianBlur(COVER_SECOND_BLUR_RADIUS))

        buffer = io.BytesIO()
        cover.save(buffer, format="WEBP", quality=100)
        return base64.b64encode(buffer.getvalue()).decode("ascii")
