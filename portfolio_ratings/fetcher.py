"""
Resilient fetcher: one logical request, several places to try it.

Tries every candidate URL from the transport resolver in order, each with a
hard timeout, and stops at the first 2xx. Nothing here touches the ratings
store; it only reports what happened in a FetchResult.

Failure handling, per candidate:
    - timeout, connection error, non-2xx    -> try the next candidate
    - 2xx with bad/missing JSON on a GET    -> try the next candidate
    - 2xx GET body of the wrong shape       -> try the next candidate
    - 2xx with bad/missing JSON on a POST   -> success, with a fallback body
      built from what we sent (the server did accept the write)
"""

import logging
from typing import Optional

import requests

from portfolio_ratings.config import REQUEST_TIMEOUT
from portfolio_ratings.errors import (
    AllEndpointsFailed,
    ConfigurationError,
    MalformedResponse,
    TransientNetworkFailure,
)
from portfolio_ratings.models import FetchResult
from portfolio_ratings.transport import TransportResolver

logger = logging.getLogger(__name__)

JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

MIN_TIMEOUT = 1.0
MAX_TIMEOUT = 60.0


class ResilientFetcher:

    def __init__(self, resolver: TransportResolver,
                 session: Optional[requests.Session] = None,
                 timeout: float = REQUEST_TIMEOUT):
        if not MIN_TIMEOUT <= timeout <= MAX_TIMEOUT:
            raise ConfigurationError(
                f"Request timeout must be between {MIN_TIMEOUT:g} and {MAX_TIMEOUT:g} seconds"
            )
        self.resolver = resolver
        self.session = session or requests.Session()
        self.timeout = timeout

    def attempt(self, method: str, logical_path: str, body: Optional[dict] = None,
                expect: Optional[type] = None) -> FetchResult:
        """
        Run one logical request against every candidate until one answers.
        expect, if given, is the type a GET body must have to count as an
        answer (a relay error page served as a JSON object does not).
        """
        method = method.upper()
        body_required = method == "GET"
        candidates = self.resolver.resolve_candidates(logical_path)
        failures = []

        for index, url in enumerate(candidates, start=1):
            try:
                data = self._try_candidate(method, url, body, body_required, expect)
            except TransientNetworkFailure as e:
                logger.warning(f"Attempt {index}/{len(candidates)} failed: {e}")
                failures.append(e)
                continue
            except MalformedResponse as e:
                logger.warning(f"{method} {url} accepted but body unusable, using request data: {e}")
                return FetchResult(
                    ok=True,
                    data=dict(body or {}),
                    url=url,
                    degraded=True,
                    error=e,
                    attempts=candidates[:index],
                )

            logger.debug(f"{method} {url} succeeded on attempt {index}")
            return FetchResult(ok=True, data=data, url=url, attempts=candidates[:index])

        return FetchResult(
            ok=False,
            error=AllEndpointsFailed(logical_path, failures),
            attempts=list(candidates),
        )

    def _try_candidate(self, method: str, url: str, body: Optional[dict], body_required: bool,
                       expect: Optional[type] = None):
        """
        One request to one URL.
        Raises TransientNetworkFailure to move on, MalformedResponse when a
        write went through but the reply can't be read.
        """
        try:
            response = self.session.request(
                method,
                url,
                json=body,
                headers=JSON_HEADERS,
                timeout=self.timeout,
            )
            response.raise_for_status()  # Raises exception if HTTP error (404, 500, etc.)
        except requests.Timeout:
            raise TransientNetworkFailure(url, f"timed out after {self.timeout:g}s")
        except requests.RequestException as e:
            raise TransientNetworkFailure(url, str(e) or type(e).__name__)

        if not response.content or not response.content.strip():
            reason = f"empty body (status {response.status_code})"
            if body_required:
                raise TransientNetworkFailure(url, reason)
            raise MalformedResponse(reason)

        try:
            data = response.json()
        except ValueError as e:
            reason = f"invalid JSON (status {response.status_code}): {e}"
            if body_required:
                raise TransientNetworkFailure(url, reason)
            raise MalformedResponse(reason)

        if body_required and expect is not None and not isinstance(data, expect):
            raise TransientNetworkFailure(
                url, f"expected a JSON {expect.__name__}, got {type(data).__name__}"
            )
        return data


def describe(result: FetchResult) -> str:
    """One-line summary of a FetchResult for log messages."""
    if result.ok:
        state = "degraded" if result.degraded else "ok"
        return f"{state} via {result.url} after {len(result.attempts)} attempt(s)"
    failures = getattr(result.error, "failures", [])
    return "; ".join(str(f) for f in failures) or "no candidates"
