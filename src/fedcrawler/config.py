"""
Run-scoped configuration for a crawl.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_SEED = "https://fchan.xyz"
DEFAULT_USER_AGENT = "FedIndexScan/1.0"
DEFAULT_TIMEOUT_S = 15.0
DEFAULT_WORKERS = 32

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class CrawlConfig:
    """Immutable options shared by the router, fetcher and crawl engine."""
    seed_url: str
    proxy_url: Optional[str] = None
    force_proxy: bool = False
    onion_support: bool = True
    timeout_s: float = DEFAULT_TIMEOUT_S
    user_agent: str = DEFAULT_USER_AGENT
    max_workers: int = DEFAULT_WORKERS
    verbose: bool = False


def normalize_proxy_url(address: Optional[str]) -> Optional[str]:
    """
    Turn a proxy address into a URL requests understands.

    Bare ``host:port`` addresses are treated as SOCKS5 with remote DNS
    (``socks5h://``) so onion names are resolved by the proxy, not locally.
    """
    if address is None:
        return None
    address = address.strip()
    if not address:
        return None
    if "://" not in address:
        return f"socks5h://{address}"
    return address


def _env_flag(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip().lower() in _TRUTHY


def load_configuration(
    seed_url: str = DEFAULT_SEED,
    *,
    proxy: Optional[str] = None,
    force_proxy: Optional[bool] = None,
    onion_support: Optional[bool] = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    user_agent: str = DEFAULT_USER_AGENT,
    max_workers: int = DEFAULT_WORKERS,
    verbose: bool = False,
) -> CrawlConfig:
    """Builds a ``CrawlConfig`` from CLI input, falling back to environment variables."""

    load_dotenv()  # Loads .env values if present

    seed = (seed_url or "").strip().rstrip("/")
    if not seed:
        raise ValueError("Seed URL must not be empty")
    if max_workers < 1:
        raise ValueError(f"Worker count must be at least 1, got {max_workers}")
    if timeout_s <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout_s}")

    if proxy is None:
        proxy = os.getenv("FEDCRAWL_PROXY")
    if force_proxy is None:
        force_proxy = bool(_env_flag("FEDCRAWL_FORCE_PROXY"))
    if onion_support is None:
        env_onion = _env_flag("FEDCRAWL_ONION")
        onion_support = True if env_onion is None else env_onion

    return CrawlConfig(
        seed_url=seed,
        proxy_url=normalize_proxy_url(proxy),
        force_proxy=force_proxy,
        onion_support=onion_support,
        timeout_s=timeout_s,
        user_agent=user_agent,
        max_workers=max_workers,
        verbose=verbose,
    )
