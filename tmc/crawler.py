"""Crawl orchestrator: traversal loop and the per-node crawl state machine."""

import enum
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from tmc.config import CrawlerConfig
from tmc.errors import (
    EncodingFailure,
    ErrorKind,
    ProtocolFailure,
    ResolutionFailure,
    StoreFailure,
    Unreachable,
)
from tmc.geoip import GeoLocator, GeoResolver, build_locator
from tmc.models import Node, PeerInfo, address_key, node_key
from tmc.net import DEFAULT_RPC_PORT, parse_rpc_address, peer_address, ping_address, rpc_address
from tmc.pool import NodePool
from tmc.rpc import RPCClient
from tmc.store import KVStore

logger = logging.getLogger(__name__)


class CrawlOutcome(enum.Enum):
    """How far a single node crawl got."""

    CRAWLED = "crawled"  # status and peers fetched, record persisted
    PARTIAL = "partial"  # reachable, record persisted without full metadata
    UNREACHABLE = "unreachable"  # liveness failed, stale record removed
    FAILED = "failed"  # reachable, but the record could not be persisted


@dataclass
class CrawlResult:
    """Result of :meth:`Crawler.crawl_node`.

    Attributes:
        address: RPC address that was crawled.
        outcome: How far the crawl got.
        error: Kind of the failure that ended the crawl early, if any.
        node: The record as persisted (or as assembled, on ``FAILED``).
        peers_added: Number of peers newly offered to the pool.
    """

    address: str
    outcome: CrawlOutcome
    error: ErrorKind | None = None
    node: Node | None = None
    peers_added: int = 0


class Crawler:
    """Walks the peer graph from a seed set, forever.

    The crawler owns the node pool and is the only writer to the store.
    Collaborators are injectable so that tests can drive it without a
    network.

    Args:
        config: Crawler configuration.
        store: Key/value store holding node and location records.
        rpc: Tendermint RPC client (default: ``RPCClient``).
        locator: External geolocation source (default: from *config*).
        prober: ``(peer_address, timeout) -> bool`` liveness probe.
        rng: Random source for the node pool.
        sleep: Suspension used between sweeps.
        clock: Returns the current time for ``last_sync``.
    """

    def __init__(
        self,
        config: CrawlerConfig,
        store: KVStore,
        *,
        rpc: RPCClient | None = None,
        locator: GeoLocator | None = None,
        prober: Callable[[str, float], bool] = ping_address,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._rpc = rpc or RPCClient(timeout=config.rpc_timeout)
        self._geo = GeoResolver(store, locator or build_locator(config))
        self._prober = prober
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(UTC))
        self.pool = NodePool(config.reseed_size, rng=rng)

    def crawl(self, cycles: int | None = None) -> None:
        """Seed the pool and run sweep, sleep, reseed; forever by default.

        Args:
            cycles: Number of sweeps to run, or ``None`` for no limit.
        """
        self.pool.seed(self._config.seeds)
        logger.info("Starting crawl with %d seed(s)", self.pool.size())

        done = 0
        while cycles is None or done < cycles:
            crawled = self.crawl_pass()
            logger.info(
                "Crawled %d node(s); waiting %ss until next crawl attempt",
                crawled,
                self._config.crawl_interval,
            )
            self._sleep(self._config.crawl_interval)
            self.pool.reseed()
            done += 1

    def crawl_pass(self) -> int:
        """Crawl pending addresses until the frontier is empty.

        Peers discovered during the sweep join the same frontier and are
        crawled before it ends.

        Returns:
            Number of addresses crawled.
        """
        count = 0
        address = self.pool.random_node()
        while address is not None:
            self.crawl_node(address)
            self.pool.delete(address)
            count += 1
            address = self.pool.random_node()
        return count

    def crawl_node(self, address: str) -> CrawlResult:
        """Probe, locate, query and persist one node.

        Liveness failure removes any existing record for the address.  Every
        later failure persists what was assembled so far.  Nothing retries
        within a pass.
        """
        try:
            host, rpc_port = self._probe(address)
        except Unreachable as exc:
            logger.info("Node %s unreachable (%s); removing", address, exc)
            self._forget(address)
            return CrawlResult(address, CrawlOutcome.UNREACHABLE, exc.kind)

        node = Node(
            address=address,
            remote_ip=host,
            rpc_port=str(rpc_port),
            p2p_port=str(self._config.p2p_port),
        )

        try:
            node.location = self._geo.resolve(host)
        except (ResolutionFailure, StoreFailure) as exc:
            logger.info("Failed to get geolocation for %s: %s", address, exc)

        try:
            node.apply_status(self._rpc.status(address))
        except ProtocolFailure as exc:
            logger.info("Failed to get status of %s: %s", address, exc)
            return self._persist(node, CrawlOutcome.PARTIAL, exc.kind)

        try:
            peers = self._rpc.net_info(address)
        except ProtocolFailure as exc:
            logger.info("Failed to get net info of %s (%s): %s", address, node.id, exc)
            return self._persist(node, CrawlOutcome.PARTIAL, exc.kind)

        added = self._enqueue_peers(address, peers)
        result = self._persist(node, CrawlOutcome.CRAWLED)
        result.peers_added = added
        return result

    def _probe(self, address: str) -> tuple[str, int]:
        try:
            host, rpc_port = parse_rpc_address(address)
        except ValueError as exc:
            raise Unreachable(str(exc)) from exc

        target = peer_address(host, self._config.p2p_port)
        if not self._prober(target, self._config.probe_timeout):
            raise Unreachable(f"no answer from {target}")
        return host, rpc_port

    def _enqueue_peers(self, address: str, peers: list[PeerInfo]) -> int:
        """Offer every reported peer without a stored record to the pool."""
        added = 0
        for peer in peers:
            peer_rpc = rpc_address(peer.remote_ip, peer.rpc_port or DEFAULT_RPC_PORT)
            try:
                known = self._is_known(peer_rpc, peer.id)
            except StoreFailure as exc:
                logger.warning("Skipping peer %s: %s", peer_rpc, exc)
                continue

            if known:
                logger.debug("Peer %s already known", peer_rpc)
                continue
            self.pool.add(peer_rpc)
            added += 1

        logger.debug("Node %s reported %d peer(s), %d new", address, len(peers), added)
        return added

    def _is_known(self, address: str, node_id: str) -> bool:
        if node_id and self._store.has(node_key(node_id)):
            return True
        return self._store.has(address_key(address)) or self._store.has(node_key(address))

    def _persist(
        self,
        node: Node,
        outcome: CrawlOutcome,
        error: ErrorKind | None = None,
    ) -> CrawlResult:
        """Write *node* under its key and point the address index at it.

        A record previously stored for the same address under a different
        key (e.g. by address before the identity was known) is replaced.
        """
        node.last_sync = self._clock().isoformat()
        key = node.key()
        index = address_key(node.address)

        try:
            previous = self._store.get(index)
            stale = [previous] if previous is not None and previous != key else []
            self._store.apply({key: node.to_bytes(), index: key}, stale)
        except (EncodingFailure, StoreFailure) as exc:
            logger.warning("Failed to persist node %s: %s", node.address, exc)
            return CrawlResult(node.address, CrawlOutcome.FAILED, exc.kind, node)

        logger.info(
            "Persisted node %s (%s) [%s]",
            node.address,
            node.id or "unknown id",
            outcome.value,
        )
        return CrawlResult(node.address, outcome, error, node)

    def _forget(self, address: str) -> None:
        """Delete any record stored for *address* and its index entry.

        A record reached through the index is only deleted while it still
        belongs to *address*; another address may have since reported the
        same identity.
        """
        index = address_key(address)
        try:
            candidates = {node_key(address)}
            indexed = self._store.get(index)
            if indexed is not None and self._owned_by(indexed, address):
                candidates.add(indexed)

            present = [k for k in candidates if self._store.has(k)]
            if present:
                logger.info("Removing stale node %s", address)
            if present or indexed is not None:
                self._store.apply({}, present + [index])
        except StoreFailure as exc:
            logger.warning("Failed to delete node %s: %s", address, exc)

    def _owned_by(self, key: bytes, address: str) -> bool:
        raw = self._store.get(key)
        if raw is None:
            return False
        try:
            return Node.from_bytes(raw).address == address
        except EncodingFailure:
            return True
