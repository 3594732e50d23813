"""Error taxonomy shared by the integrations and the control loop."""

from __future__ import annotations


class ClipwireError(RuntimeError):
    """Base class for every failure the relay knows how to reason about."""


class FeedError(ClipwireError):
    """The publication feed could not be turned into usable items."""


class FeedFetchFailed(FeedError):
    """Network or HTTP failure while downloading the feed document."""


class FeedEmpty(FeedError):
    """The feed downloaded fine but yielded zero parsable items."""


class RateLimited(ClipwireError):
    """A collaborator answered with HTTP 429.

    ``reset_at`` is the Unix epoch at which the server says the window
    reopens, or ``None`` when no hint was supplied.
    """

    def __init__(self, message: str, *, reset_at: float | None = None, source: str = "unknown") -> None:
        super().__init__(message)
        self.reset_at = reset_at
        self.source = source


class AcquisitionFailed(ClipwireError):
    """The download tool could not produce the raw media file."""


class ConversionFailed(ClipwireError):
    """Transcoding the raw media into the publish profile failed."""


class PublishError(ClipwireError):
    """Publishing could not be completed."""


class MediaProcessingFailed(PublishError):
    """The platform reported that server-side media processing failed."""


class MediaProcessingTimeout(PublishError):
    """Server-side media processing never reported ready in time."""


class IdentityLookupFailed(ClipwireError):
    """Looking up the authenticated publishing identity failed."""


class IdentityMismatch(ClipwireError):
    """The credentials belong to a different account than the configured one."""

    def __init__(self, actual: str, expected: str) -> None:
        super().__init__(f"Authenticated @{actual} != expected @{expected}")
        self.actual = actual
        self.expected = expected


class ShutdownRequested(ClipwireError):
    """A stop was requested while the loop was waiting; abandon the current item."""
