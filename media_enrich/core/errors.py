"""Exception hierarchy for the enrichment pipeline."""

from __future__ import annotations


class MediaEnrichError(Exception):
    """Base class for all errors raised by media_enrich."""


class TagReadError(MediaEnrichError):
    """Raised when exiftool cannot read tags from a media or sidecar file."""


class ProbeError(MediaEnrichError):
    """Raised when ffprobe fails to inspect a media file."""


class ReverseGeocodeError(MediaEnrichError, LookupError):
    """Raised when the geocoding index is not ready or a lookup fails."""


class FilesystemError(MediaEnrichError):
    """Raised when a required file is missing or unreadable."""


class DispatchError(MediaEnrichError):
    """Raised when enumerating assets for a scan fails."""


class UnknownJobError(MediaEnrichError):
    """Raised when a job is queued under a name no queue knows about."""
