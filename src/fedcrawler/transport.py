"""
Per-request routing between direct and proxied transports, with pooled sessions.
"""
from __future__ import annotations

import queue
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

import requests

from fedcrawler.config import CrawlConfig
from fedcrawler.errors import ConfigurationError

DIRECT = "direct"
PROXIED = "proxied"

ONION_SUFFIX = ".onion"

SessionFactory = Callable[[], requests.Session]


def is_onion_host(host: Optional[str]) -> bool:
    """Check if host belongs to the onion pseudo-TLD."""
    if not host:
        return False
    return host.lower().rstrip(".").endswith(ONION_SUFFIX)


class ClientPool:
    """
    Thread-safe pool of reusable sessions.

    Sessions are created lazily on checkout when the pool is empty and are
    always handed back on release, so concurrent tasks share connections
    instead of opening new ones per request.
    """

    def __init__(self, factory: Callable[[], requests.Session]) -> None:
        self._factory = factory
        self._idle: "queue.LifoQueue[requests.Session]" = queue.LifoQueue()
        self._created: List[requests.Session] = []

    @property
    def size(self) -> int:
        """Number of sessions created so far."""
        return len(self._created)

    @contextmanager
    def checkout(self) -> Iterator[requests.Session]:
        try:
            session = self._idle.get_nowait()
        except queue.Empty:
            session = self._factory()
            self._created.append(session)
        try:
            yield session
        finally:
            self._idle.put(session)

    def close(self) -> None:
        for session in self._created:
            session.close()


class TransportRouter:
    """Chooses the direct or proxied pool for each target host."""

    def __init__(
        self,
        config: CrawlConfig,
        session_factory: SessionFactory = requests.Session,
    ) -> None:
        self._config = config
        self._session_factory = session_factory
        self._direct = ClientPool(self._new_direct_session)
        self._proxied = ClientPool(self._new_proxied_session)

    @property
    def timeout_s(self) -> float:
        return self._config.timeout_s

    def route(self, host: Optional[str]) -> str:
        """Return the transport a request to ``host`` must use."""
        if self._config.force_proxy or is_onion_host(host):
            return PROXIED
        return DIRECT

    @contextmanager
    def select_client(self, host: Optional[str]) -> Iterator[requests.Session]:
        """
        Check out a session for ``host`` and return it to its pool afterwards.

        Raises ConfigurationError if the host needs the proxied path but no
        proxy is configured, or if it is an onion host and onion support is off.
        """
        if is_onion_host(host) and not self._config.onion_support:
            raise ConfigurationError(f"onion support disabled, refusing {host}")

        if self.route(host) == PROXIED:
            if not self._config.proxy_url:
                raise ConfigurationError("routing requires proxy but none configured")
            pool = self._proxied
        else:
            pool = self._direct

        with pool.checkout() as session:
            yield session

    def close(self) -> None:
        self._direct.close()
        self._proxied.close()

    def _new_direct_session(self) -> requests.Session:
        return self._session_factory()

    def _new_proxied_session(self) -> requests.Session:
        session = self._session_factory()
        # Environment proxies would otherwise take precedence over session.proxies
        session.trust_env = False
        proxy = self._config.proxy_url
        session.proxies = {"http": proxy, "https": proxy}
        return session
