"""Error taxonomy for intro path discovery.

An empty result ("no path found") and a truncated search are not errors;
they are reported in the response metadata instead.
"""


class IntroPathError(Exception):
    """Base class for all intro path failures."""


class InvalidRequest(IntroPathError):
    """Request parameters are missing or out of bounds.

    Raised before any traversal work is performed.
    """


class StoreUnavailable(IntroPathError):
    """The graph data source could not be reached or timed out.

    Args:
        message: Human-readable description.
        transient: Whether retrying the same call may succeed.
    """

    def __init__(self, message: str, *, transient: bool = True):
        super().__init__(message)
        self.transient = transient


class RequestCancelled(IntroPathError):
    """The caller abandoned the request while traversal was in flight."""
