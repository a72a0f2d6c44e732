"""
Core crawling logic and data structures.
"""
from __future__ import annotations

import sys
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, ContextManager, Dict, Iterable, List, Optional, Protocol, Tuple

import requests

from fedcrawler.config import CrawlConfig, DEFAULT_WORKERS
from fedcrawler.errors import FetchError, RegistryError
from fedcrawler.fetcher import FOLLOWERS, FOLLOWING, InstanceFetcher
from fedcrawler.transport import TransportRouter


class State(str, Enum):
    UNRESOLVED = "unresolved"
    ALIVE = "alive"
    DEAD = "dead"


@dataclass(frozen=True, slots=True)
class Outcome:
    """Traversal outcome of one instance identifier."""
    state: State
    reason: Optional[str] = None
    error_type: Optional[str] = None
    # Set on alive nodes whose followers fetch failed
    note: Optional[str] = None

    @classmethod
    def alive(cls, note: Optional[str] = None) -> "Outcome":
        return cls(State.ALIVE, note=note)

    @classmethod
    def dead(cls, error: FetchError) -> "Outcome":
        return cls(State.DEAD, reason=error.reason, error_type=type(error).__name__)

    @property
    def resolved(self) -> bool:
        return self.state is not State.UNRESOLVED


UNRESOLVED = Outcome(State.UNRESOLVED)


class RelationSource(Protocol):
    def fetch_relations(self, instance_id: str, relation_path: str) -> List[str]:
        ...


class SeenRegistry:
    """
    Map of every identifier seen during a run to its outcome.

    One lock guards every test-and-insert and every resolution. Entries are
    only ever added, and only move from UNRESOLVED to ALIVE or DEAD.
    """

    def __init__(self, lock: Optional[ContextManager] = None) -> None:
        self._lock = lock if lock is not None else threading.Lock()
        self._entries: Dict[str, Outcome] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def get(self, identifier: str) -> Optional[Outcome]:
        return self._entries.get(identifier)

    def snapshot(self) -> Dict[str, Outcome]:
        """Copy of the current entries."""
        with self._lock:
            return dict(self._entries)

    def claim(
        self,
        candidates: Iterable[str],
        schedule: Callable[[str], None],
    ) -> List[str]:
        """
        Insert each unseen candidate as UNRESOLVED and schedule it.

        The whole loop runs under the registry lock so no identifier can be
        scheduled twice. Returns the identifiers that were newly claimed.
        """
        claimed: List[str] = []
        with self._lock:
            for candidate in candidates:
                identifier = candidate.strip()
                if not identifier or identifier in self._entries:
                    continue
                self._entries[identifier] = UNRESOLVED
                schedule(identifier)
                claimed.append(identifier)
        return claimed

    def resolve(self, identifier: str, outcome: Outcome) -> None:
        """Record a terminal outcome for a claimed identifier."""
        if not outcome.resolved:
            raise RegistryError(f"Cannot resolve {identifier} to UNRESOLVED")
        with self._lock:
            current = self._entries.get(identifier)
            if current is None:
                raise RegistryError(f"Identifier was never claimed: {identifier}")
            if current.resolved:
                raise RegistryError(
                    f"Identifier already resolved as {current.state.value}: {identifier}"
                )
            self._entries[identifier] = outcome


@dataclass(slots=True)
class CrawlStats:
    """Statistics collected during crawl for summary output."""
    instances_alive: int = 0
    instances_dead: int = 0
    followers_failures: int = 0
    error_counts: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    @classmethod
    def from_registry(cls, registry: SeenRegistry) -> "CrawlStats":
        stats = cls()
        for outcome in registry.snapshot().values():
            stats.record(outcome)
        return stats

    def record(self, outcome: Outcome) -> None:
        """Record one resolved outcome."""
        if outcome.state is State.ALIVE:
            self.instances_alive += 1
            if outcome.note:
                self.followers_failures += 1
        elif outcome.state is State.DEAD:
            self.instances_dead += 1
            self.error_counts[outcome.error_type or "unknown"] += 1


def print_scan_line(identifier: str, outcome: Outcome, new_instances: int, depth: int) -> None:
    """Print single crawl result line."""
    if outcome.state is State.ALIVE:
        line = f"\n  → ALIVE {identifier} (+{new_instances} new, depth {depth})"
        if outcome.note:
            line += f"\n    ! followers: {outcome.note}"
    else:
        line = f"\n  ✗ DEAD {identifier}: {outcome.reason}"
    sys.stderr.write(line)
    sys.stderr.flush()


class Crawler:
    """
    Concurrent traversal of the following/followers graph.

    Every newly seen identifier gets its own task on a thread pool. The pool
    queue is unbounded, so scheduling from inside the registry lock never
    blocks; ``max_workers`` only caps how many tasks fetch at once.
    """

    def __init__(
        self,
        fetcher: RelationSource,
        max_workers: int = DEFAULT_WORKERS,
        verbose: bool = False,
        registry: Optional[SeenRegistry] = None,
    ) -> None:
        self.fetcher = fetcher
        self.max_workers = max_workers
        self.verbose = verbose
        self.registry = registry if registry is not None else SeenRegistry()

        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending = 0
        self._idle = threading.Condition()
        self._error: Optional[BaseException] = None

    def run(self, seed: str) -> SeenRegistry:
        """Crawl from ``seed`` until no task is outstanding and return the registry."""
        if self._executor is not None:
            raise RuntimeError("Crawler.run() is not re-entrant")
        self._error = None

        if self.verbose:
            sys.stderr.write(f"Starting crawl from: {seed}\n")
            sys.stderr.write(f"Workers: {self.max_workers}\n")

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="crawl") as executor:
            self._executor = executor
            try:
                self.registry.claim([seed], lambda ident: self._schedule(ident, 0))
                with self._idle:
                    self._idle.wait_for(lambda: self._pending == 0)
            finally:
                self._executor = None

        if self.verbose:
            sys.stderr.write("\n\n")

        # Surface bugs; fetch errors never reach here
        if self._error is not None:
            raise self._error

        return self.registry

    def _schedule(self, identifier: str, depth: int) -> None:
        with self._idle:
            self._pending += 1
        try:
            self._executor.submit(self._visit, identifier, depth)
        except BaseException:
            self._task_done()
            raise

    def _task_done(self) -> None:
        with self._idle:
            self._pending -= 1
            if self._pending == 0:
                self._idle.notify_all()

    def _visit(self, identifier: str, depth: int) -> None:
        try:
            outcome, new_count = self._crawl_node(identifier, depth)
            if self.verbose:
                print_scan_line(identifier, outcome, new_count, depth)
        except Exception as e:
            with self._idle:
                if self._error is None:
                    self._error = e
        finally:
            self._task_done()

    def _crawl_node(self, identifier: str, depth: int) -> Tuple[Outcome, int]:
        try:
            following = self.fetcher.fetch_relations(identifier, FOLLOWING)
        except FetchError as e:
            outcome = Outcome.dead(e)
            self.registry.resolve(identifier, outcome)
            return outcome, 0

        # A node that answered /following stays alive even if /followers fails
        note = None
        try:
            followers = self.fetcher.fetch_relations(identifier, FOLLOWERS)
        except FetchError as e:
            followers = []
            note = e.reason

        claimed = self.registry.claim(
            following + followers,
            lambda ident: self._schedule(ident, depth + 1),
        )

        outcome = Outcome.alive(note)
        self.registry.resolve(identifier, outcome)
        return outcome, len(claimed)


def crawl(
    config: CrawlConfig,
    session_factory: Callable[[], requests.Session] = requests.Session,
) -> Tuple[SeenRegistry, CrawlStats]:
    """
    Crawl the federation reachable from ``config.seed_url``.

    Args:
        config: Run configuration (seed, proxy, timeout, workers).
        session_factory: Builds the HTTP sessions pooled by the router.

    Returns:
        Tuple of (fully resolved seen registry, crawl statistics).
    """
    router = TransportRouter(config, session_factory=session_factory)
    fetcher = InstanceFetcher(router, user_agent=config.user_agent, timeout_s=config.timeout_s)
    crawler = Crawler(fetcher, max_workers=config.max_workers, verbose=config.verbose)
    try:
        registry = crawler.run(config.seed_url)
    finally:
        router.close()
    return registry, CrawlStats.from_registry(registry)
