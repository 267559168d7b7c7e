"""Node pool: the crawl frontier plus a bounded reseed reservoir."""

import logging
import random
from collections.abc import Iterable

logger = logging.getLogger(__name__)


class NodePool:
    """Set of RPC addresses awaiting a crawl in the current sweep.

    Every address ever added is also offered to a reseed reservoir of at
    most ``reseed_size`` entries, maintained by reservoir sampling so that
    each offered address has the same chance of being retained.  When the
    frontier drains, :meth:`reseed` refills it from that sample.

    Not thread-safe: the pool is owned by the crawler loop.

    Args:
        reseed_size: Capacity of the reseed reservoir.
        rng: Random source for frontier picks and reservoir eviction; pass
            a seeded ``random.Random`` for deterministic behaviour.
    """

    def __init__(self, reseed_size: int, rng: random.Random | None = None) -> None:
        if reseed_size <= 0:
            raise ValueError(f"reseed_size must be positive, got {reseed_size}")

        self._rng = rng or random.Random()
        self._reseed_size = reseed_size

        # Frontier as a list plus position index: O(1) add, pick and delete.
        self._nodes: list[str] = []
        self._positions: dict[str, int] = {}

        self._reservoir: list[str] = []
        self._sampled: set[str] = set()
        self._offered = 0

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, address: object) -> bool:
        return address in self._positions

    def size(self) -> int:
        """Return the number of pending addresses."""
        return len(self._nodes)

    def has(self, address: str) -> bool:
        """Return whether *address* is pending."""
        return address in self._positions

    @property
    def reservoir(self) -> tuple[str, ...]:
        """Current reseed sample."""
        return tuple(self._reservoir)

    def seed(self, addresses: Iterable[str]) -> None:
        """Add every address in *addresses*."""
        for address in addresses:
            self.add(address)

    def add(self, address: str) -> None:
        """Add *address* to the frontier and offer it to the reservoir."""
        if address not in self._positions:
            self._positions[address] = len(self._nodes)
            self._nodes.append(address)
        self._offer(address)

    def delete(self, address: str) -> None:
        """Remove *address* from the frontier if present."""
        pos = self._positions.pop(address, None)
        if pos is None:
            return

        last = self._nodes.pop()
        if pos < len(self._nodes):
            self._nodes[pos] = last
            self._positions[last] = pos

    def random_node(self) -> str | None:
        """Return a uniformly random pending address, or ``None`` if empty."""
        if not self._nodes:
            return None
        return self._nodes[self._rng.randrange(len(self._nodes))]

    def reseed(self) -> None:
        """Refill the frontier from the reseed reservoir."""
        sample = list(self._reservoir)
        logger.debug("Reseeding pool with %d address(es)", len(sample))
        self.seed(sample)

    def _offer(self, address: str) -> None:
        # Reservoir sampling (Algorithm R) over distinct offers.  Members are
        # not offered again, so reseeding never duplicates or displaces them.
        if address in self._sampled:
            return

        self._offered += 1
        if len(self._reservoir) < self._reseed_size:
            self._reservoir.append(address)
            self._sampled.add(address)
            return

        slot = self._rng.randrange(self._offered)
        if slot < self._reseed_size:
            self._sampled.discard(self._reservoir[slot])
            self._reservoir[slot] = address
            self._sampled.add(address)
