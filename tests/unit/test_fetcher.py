import json

import pytest
import requests

from tests.helpers.fake_network import FakeNetwork, FakeResponse, collection
from tests.helpers.fedcrawler_imports import (
    FOLLOWERS,
    FOLLOWING,
    ConfigurationError,
    CrawlConfig,
    InstanceFetcher,
    ProtocolError,
    TransportError,
    TransportRouter,
)


def _fetcher(routes, **overrides):
    network = FakeNetwork(routes)
    config = CrawlConfig(seed_url="https://a.example", **overrides)
    router = TransportRouter(config, session_factory=network)
    return InstanceFetcher(router, user_agent=config.user_agent, timeout_s=config.timeout_s), network


def test_fetch_relations_returns_ids_in_order_with_duplicates():
    fetcher, network = _fetcher({
        "https://a.example/following": collection(
            "https://b.example", "https://c.example", "https://b.example"
        ),
    })

    result = fetcher.fetch_relations("https://a.example", FOLLOWING)

    assert result == ["https://b.example", "https://c.example", "https://b.example"]
    call = network.calls[0]
    assert call["headers"]["User-Agent"] == "FedIndexScan/1.0"
    assert "application/activity+json" in call["headers"]["Accept"]
    assert call["timeout"] == 15.0


def test_fetch_relations_strips_trailing_slash_before_joining():
    fetcher, network = _fetcher({"https://a.example/followers": collection()})

    assert fetcher.fetch_relations("https://a.example/", FOLLOWERS) == []
    assert network.calls[0]["url"] == "https://a.example/followers"


def test_fetch_relations_reads_ordered_items():
    fetcher, _ = _fetcher({
        "https://a.example/following": collection("https://b.example", key="orderedItems"),
    })

    assert fetcher.fetch_relations("https://a.example", FOLLOWING) == ["https://b.example"]


def test_fetch_relations_accepts_bare_links_and_skips_entries_without_id():
    body = {"items": ["https://b.example", {"type": "Service"}, {"id": "https://c.example"}]}
    fetcher, _ = _fetcher({"https://a.example/following": FakeResponse(200, json.dumps(body))})

    assert fetcher.fetch_relations("https://a.example", FOLLOWING) == [
        "https://b.example",
        "https://c.example",
    ]


def test_fetch_relations_treats_collection_without_items_as_empty():
    body = {"type": "Collection", "totalItems": 0}
    fetcher, _ = _fetcher({"https://a.example/following": FakeResponse(200, json.dumps(body))})

    assert fetcher.fetch_relations("https://a.example", FOLLOWING) == []


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(404, "{}"),
        FakeResponse(500, "oops"),
        FakeResponse(200, "<html>not json</html>"),
        FakeResponse(200, json.dumps(["https://b.example"])),
        FakeResponse(200, json.dumps({"items": "https://b.example"})),
        FakeResponse(200, json.dumps({"items": [42]})),
    ],
)
def test_fetch_relations_raises_protocol_error(response):
    fetcher, _ = _fetcher({"https://a.example/following": response})

    with pytest.raises(ProtocolError):
        fetcher.fetch_relations("https://a.example", FOLLOWING)


def test_fetch_relations_wraps_transport_failures():
    fetcher, _ = _fetcher({"https://a.example/following": requests.Timeout("read timed out")})

    with pytest.raises(TransportError) as excinfo:
        fetcher.fetch_relations("https://a.example", FOLLOWING)

    assert isinstance(excinfo.value.__cause__, requests.Timeout)
    assert excinfo.value.reason.startswith("TransportError: ")
    assert "read timed out" in excinfo.value.reason


def test_fetch_relations_surfaces_configuration_error_for_onion_without_proxy():
    fetcher, network = _fetcher({"http://c.onion/following": collection()})

    with pytest.raises(ConfigurationError):
        fetcher.fetch_relations("http://c.onion", FOLLOWING)

    assert network.calls == []


def test_fetch_relations_routes_onion_through_proxy():
    fetcher, network = _fetcher(
        {"http://c.onion/following": collection("https://a.example")},
        proxy_url="socks5h://127.0.0.1:9050",
    )

    assert fetcher.fetch_relations("http://c.onion", FOLLOWING) == ["https://a.example"]
    assert network.calls[0]["proxies"]["http"] == "socks5h://127.0.0.1:9050"
    assert network.calls[0]["timeout"] == 15.0


def test_force_proxy_routes_clearnet_through_proxy_with_same_timeout():
    fetcher, network = _fetcher(
        {"https://a.example/following": collection("https://b.example")},
        proxy_url="socks5h://127.0.0.1:9050",
        force_proxy=True,
    )

    assert fetcher.fetch_relations("https://a.example", FOLLOWING) == ["https://b.example"]
    call = network.calls[0]
    assert call["proxies"] == {
        "http": "socks5h://127.0.0.1:9050",
        "https": "socks5h://127.0.0.1:9050",
    }
    assert call["timeout"] == 15.0


def test_fetch_relations_rejects_malformed_identifier_without_request():
    fetcher, network = _fetcher({})

    with pytest.raises(ProtocolError, match="malformed identifier"):
        fetcher.fetch_relations("http://[broken", FOLLOWING)

    assert network.calls == []


def test_fetch_relations_rejects_unknown_relation():
    fetcher, _ = _fetcher({})

    with pytest.raises(ValueError):
        fetcher.fetch_relations("https://a.example", "/outbox")
