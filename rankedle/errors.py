"""
rankedle.errors — Error Taxonomy
=================================

Every failure the core raises derives from :class:`RankedleError`.
Pipeline errors are swallowed by :func:`generate_puzzle`; state-machine
errors propagate to the API layer, which maps them to HTTP statuses.
"""

from __future__ import annotations


class RankedleError(Exception):
    """Base class for all Rankedle failures."""


class NoActivePuzzleError(RankedleError):
    """No puzzle is assigned to today's date."""

    def __init__(self, message: str = "No rankedle found") -> None:
        super().__init__(message)


class NoCandidateMapError(RankedleError):
    """Every map in the pool has already been used (or excluded)."""


class DownloadError(RankedleError):
    """The packaged map archive could not be downloaded."""


class ExtractionError(RankedleError):
    """The archive holds no packaged audio track."""


class TranscodeError(RankedleError):
    """An ffmpeg / ffprobe invocation failed."""


class ForbiddenError(RankedleError):
    """The action is not allowed for this player right now.

    The message is intentionally opaque: it never reveals whether the
    player is banned or simply outside the allowed skip window.
    """

    def __init__(self, message: str = "Action impossible") -> None:
        super().__init__(message)


class NotFoundError(RankedleError):
    """A referenced puzzle or map does not exist."""
