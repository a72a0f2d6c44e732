"""
Error taxonomy for the federation crawler.
"""
from __future__ import annotations


class FedCrawlerError(Exception):
    """Base class for all crawler errors."""


class FetchError(FedCrawlerError):
    """A relation fetch failed. Contained within the task of the node that raised it."""

    @property
    def reason(self) -> str:
        """Failure description recorded against a dead instance."""
        return f"{type(self).__name__}: {self}"


class ConfigurationError(FetchError):
    """Routing needs a proxy (or onion support) the run was not configured with."""


class TransportError(FetchError):
    """Connection, DNS, timeout or proxy failure."""


class ProtocolError(FetchError):
    """Non-success HTTP status or a body that is not a relation collection."""


class RegistryError(FedCrawlerError):
    """Seen registry invariant violated."""
