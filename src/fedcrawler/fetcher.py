"""
Fetching and decoding of relation collections.
"""
from __future__ import annotations

from typing import Any, List
from urllib.parse import urlparse

import requests

from fedcrawler.errors import ProtocolError, TransportError
from fedcrawler.transport import TransportRouter

FOLLOWING = "/following"
FOLLOWERS = "/followers"
RELATION_PATHS = (FOLLOWING, FOLLOWERS)

ACCEPT = "application/activity+json, application/ld+json, application/json"


def extract_identifiers(payload: Any) -> List[str]:
    """
    Pull the ``id`` of every entry in a collection's item list.

    ``items`` wins over ``orderedItems``; a collection with neither is empty.
    Entries may be objects carrying an ``id`` or bare link strings.
    Order and duplicates are preserved.
    """
    if not isinstance(payload, dict):
        raise ProtocolError(f"expected a collection object, got {type(payload).__name__}")

    if "items" in payload:
        items = payload["items"]
    else:
        items = payload.get("orderedItems")
    if items is None:
        return []
    if not isinstance(items, list):
        raise ProtocolError(f"collection items must be a list, got {type(items).__name__}")

    identifiers: List[str] = []
    for entry in items:
        if isinstance(entry, str):
            identifiers.append(entry)
        elif isinstance(entry, dict):
            ident = entry.get("id")
            if isinstance(ident, str):
                identifiers.append(ident)
        else:
            raise ProtocolError(f"unexpected collection entry of type {type(entry).__name__}")
    return identifiers


class InstanceFetcher:
    """Issues relation requests through a TransportRouter."""

    def __init__(self, router: TransportRouter, user_agent: str, timeout_s: float) -> None:
        self.router = router
        self.user_agent = user_agent
        self.timeout_s = timeout_s

    def fetch_relations(self, instance_id: str, relation_path: str) -> List[str]:
        """
        GET ``instance_id + relation_path`` and return the referenced identifiers.

        Raises:
            ConfigurationError: the route needs a proxy the run does not have.
            TransportError: the request could not be completed.
            ProtocolError: non-2xx status or undecodable collection.
        """
        if relation_path not in RELATION_PATHS:
            raise ValueError(f"Unknown relation path: {relation_path}")

        url = instance_id.rstrip("/") + relation_path
        try:
            host = urlparse(url).hostname
        except ValueError as e:
            raise ProtocolError(f"{url}: malformed identifier ({e})") from e
        headers = {"User-Agent": self.user_agent, "Accept": ACCEPT}

        with self.router.select_client(host) as session:
            try:
                resp = session.get(url, headers=headers, timeout=self.timeout_s)
            except (requests.RequestException, ValueError) as e:
                # urllib3 raises ValueError subclasses (e.g. LocationParseError) on some bad URLs
                raise TransportError(f"{url}: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise ProtocolError(f"{url}: HTTP {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise ProtocolError(f"{url}: body is not JSON") from e

        return extract_identifiers(payload)
