"""
Error taxonomy for catalog and guide ingestion.
"""


class LiveTVError(Exception):
    """Base class for all ingestion errors."""


class FetchError(LiveTVError):
    """Network failure, timeout or non-success status while fetching a source."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Failed to fetch {url}: {message}")


class DecodeError(LiveTVError):
    """A fetched document could not be decompressed or parsed."""


class MalformedRecordError(LiveTVError):
    """A single playlist record or schedule entry is unusable.

    Always absorbed by dropping the record; never propagated past the parser.
    """


class ConfigurationError(LiveTVError):
    """Invalid configuration value."""
