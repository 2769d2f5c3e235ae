"""
Error taxonomy for the ratings core.

Only ValidationError and ConfigurationError are ever raised to callers.
The network errors travel inside a FetchResult, because a failed request
must never leave the store half-updated or stuck loading.
"""


class RatingsError(Exception):
    """Base class for every error this package defines."""


class ValidationError(RatingsError):
    """The selection is incomplete (e.g. no stars chosen)."""


class ConfigurationError(RatingsError):
    """Resolver or fetcher settings make no sense."""


class TransientNetworkFailure(RatingsError):
    """One candidate endpoint failed: timeout, non-2xx, network error or bad body."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class AllEndpointsFailed(RatingsError):
    """Every candidate for one logical request failed."""

    def __init__(self, logical_path: str, failures: list[TransientNetworkFailure]):
        super().__init__(
            f"All {len(failures)} endpoint(s) failed for '{logical_path}'"
        )
        self.logical_path = logical_path
        self.failures = failures


class MalformedResponse(RatingsError):
    """The server accepted the request but sent back an unusable body."""
