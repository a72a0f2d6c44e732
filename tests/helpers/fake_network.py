"""In-memory stand-ins for requests sessions used across the unit tests."""

from __future__ import annotations

import json
import threading
import time
from collections import Counter
from typing import Callable, Dict, List, Optional, Union

import requests


class FakeResponse:
    def __init__(self, status_code: int = 200, text: str = "") -> None:
        self.status_code = status_code
        self.text = text

    def json(self):
        return json.loads(self.text)


def collection(*identifiers: str, key: str = "items", status_code: int = 200) -> FakeResponse:
    body = {
        "@context": "https://www.w3.org/ns/activitystreams",
        "type": "OrderedCollection" if key == "orderedItems" else "Collection",
        "totalItems": len(identifiers),
        key: [{"type": "Service", "id": ident} for ident in identifiers],
    }
    return FakeResponse(status_code, json.dumps(body))


Route = Union[FakeResponse, BaseException, Callable[[], FakeResponse]]


class FakeSession:
    def __init__(self, network: "FakeNetwork") -> None:
        self.network = network
        self.proxies: Dict[str, str] = {}
        self.trust_env = True
        self.closed = False

    def get(self, url: str, headers: Optional[Dict[str, str]] = None, timeout: Optional[float] = None):
        return self.network.handle(self, url, headers or {}, timeout)

    def close(self) -> None:
        self.closed = True


class FakeNetwork:
    """Session factory whose sessions answer from a shared route table."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None, delay: float = 0.0) -> None:
        self.routes: Dict[str, Route] = dict(routes or {})
        self.delay = delay
        self.sessions: List[FakeSession] = []
        self.calls: List[dict] = []
        self._lock = threading.Lock()

    def __call__(self) -> FakeSession:
        session = FakeSession(self)
        with self._lock:
            self.sessions.append(session)
        return session

    @property
    def hits(self) -> Counter:
        with self._lock:
            return Counter(call["url"] for call in self.calls)

    def handle(self, session: FakeSession, url: str, headers: Dict[str, str], timeout: Optional[float]):
        with self._lock:
            self.calls.append(
                {"url": url, "headers": headers, "timeout": timeout, "proxies": dict(session.proxies)}
            )
        if self.delay:
            time.sleep(self.delay)

        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(route, BaseException):
            raise route
        if callable(route):
            return route()
        return route
