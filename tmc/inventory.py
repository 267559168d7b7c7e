"""Read-side projection of the node inventory held in the store."""

import logging

from tmc.errors import EncodingFailure
from tmc.models import NODE_KEY_PREFIX, Node, node_key
from tmc.store import KVStore

logger = logging.getLogger(__name__)


def load_nodes(store: KVStore) -> list[Node]:
    """Decode every ``node/`` record in key order.

    Records that fail to decode are logged and skipped.
    """
    nodes: list[Node] = []

    def collect(key: bytes, value: bytes) -> bool:
        try:
            nodes.append(Node.from_bytes(value))
        except EncodingFailure as exc:
            logger.warning("Skipping undecodable record %r: %s", key, exc)
        return False

    store.iterate_prefix(NODE_KEY_PREFIX, collect)
    return nodes


def find_node(store: KVStore, node_id: str) -> Node | None:
    """Return the node stored under *node_id* (identity or address), if any.

    Raises:
        EncodingFailure: If the stored record cannot be decoded.
    """
    raw = store.get(node_key(node_id))
    if raw is None:
        return None
    return Node.from_bytes(raw)


def paginate(count: int, page: int, limit: int) -> tuple[int, int]:
    """Return the ``[start, end)`` slice bounds of *page* over *count* items.

    Args:
        count: Total number of items.
        page: 1-based page number.
        limit: Page size; ``0`` means everything on a single page.

    Returns:
        Slice bounds; an empty ``(count, count)`` slice past the last page.
    """
    if limit <= 0:
        return (0, count) if page == 1 else (count, count)

    start = min((page - 1) * limit, count)
    end = min(start + limit, count)
    return start, end
