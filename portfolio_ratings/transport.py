"""
Transport resolver: which URLs to try, and in what order.

A logical path like "ratings" becomes an ordered list of concrete URLs:
the direct API address and/or the same address wrapped through one or more
relay proxies (e.g. "https://corsproxy.io/?" + url-encoded target).

The order depends only on configuration, never on what happened in an
earlier request, so the same resolver always produces the same list.
"""

from typing import Optional
from urllib.parse import quote

from portfolio_ratings.config import API_BASE_URL, MAX_CANDIDATES, PROXY_MODE, PROXY_URLS
from portfolio_ratings.errors import ConfigurationError

PROXY_MODES = ("never", "fallback", "prefer", "only")


def wrap_with_proxy(proxy_prefix: str, target_url: str) -> str:
    """Relay convention: the full target URL, percent-encoded, appended to the prefix."""
    return f"{proxy_prefix}{quote(target_url, safe='')}"


class TransportResolver:

    def __init__(self, base_url: str = API_BASE_URL,
                 proxy_urls: Optional[list[str]] = None,
                 proxy_mode: str = PROXY_MODE,
                 max_candidates: int = MAX_CANDIDATES):
        if not base_url:
            raise ConfigurationError("A base URL is required")
        if proxy_mode not in PROXY_MODES:
            raise ConfigurationError(
                f"Unknown proxy mode '{proxy_mode}' (expected one of {', '.join(PROXY_MODES)})"
            )
        if max_candidates < 1:
            raise ConfigurationError("max_candidates must be at least 1")

        self.base_url = base_url.rstrip("/")
        self.proxy_urls = list(PROXY_URLS if proxy_urls is None else proxy_urls)
        self.proxy_mode = proxy_mode
        self.max_candidates = max_candidates

    def target_url(self, logical_path: str) -> str:
        return f"{self.base_url}/{logical_path.strip('/')}"

    def resolve_candidates(self, logical_path: str) -> list[str]:
        """
        Ordered candidate URLs for one logical request.
        Always at least one, never more than max_candidates.
        """
        direct = self.target_url(logical_path)
        proxied = [wrap_with_proxy(p, direct) for p in self.proxy_urls]

        if self.proxy_mode == "never" or not proxied:
            ordered = [direct]
        elif self.proxy_mode == "fallback":
            ordered = [direct] + proxied
        elif self.proxy_mode == "prefer":
            ordered = proxied + [direct]
        else:  # only
            ordered = proxied

        candidates = []
        for url in ordered:
            if url not in candidates:
                candidates.append(url)
        return candidates[:self.max_candidates]
