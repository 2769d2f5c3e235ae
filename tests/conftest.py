from __future__ import annotations

import json
from pathlib import Path

import pytest
import requests

from portfolio_ratings.fetcher import ResilientFetcher
from portfolio_ratings.storage import LocalStorage
from portfolio_ratings.store import RatingStore
from portfolio_ratings.transport import TransportResolver

BASE_URL = "https://api.example.test/api"
RELAY = "https://relay.example.test/?url="
DIRECT_RATINGS = f"{BASE_URL}/ratings"
RELAYED_RATINGS = RELAY + "https%3A%2F%2Fapi.example.test%2Fapi%2Fratings"


def make_response(status: int = 200, payload=None, raw: str | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.reason = "OK" if status < 400 else "Error"
    response.encoding = "utf-8"
    if raw is not None:
        response._content = raw.encode("utf-8")
    elif payload is not None:
        response._content = json.dumps(payload).encode("utf-8")
    else:
        response._content = b""
    return response


class FakeSession:
    """
    Stands in for requests.Session. Each URL maps to a Response, an
    exception instance to raise, or a callable(method, url, kwargs).
    Unknown URLs fail with a connection error.
    """

    def __init__(self, routes: dict | None = None):
        self.routes = dict(routes or {})
        self.calls: list[tuple[str, str, dict]] = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.routes.get(url, requests.ConnectionError(f"cannot reach {url}"))
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            outcome = outcome(method, url, kwargs)
        return outcome

    @property
    def urls(self) -> list[str]:
        return [url for _, url, _ in self.calls]


@pytest.fixture
def resolver() -> TransportResolver:
    return TransportResolver(BASE_URL, proxy_urls=[RELAY], proxy_mode="fallback", max_candidates=4)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fetcher(resolver: TransportResolver, session: FakeSession) -> ResilientFetcher:
    return ResilientFetcher(resolver, session=session, timeout=5)


@pytest.fixture
def store(fetcher: ResilientFetcher) -> RatingStore:
    return RatingStore(fetcher, user_id="user_test001")


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "local_storage.db"), namespace="test")
