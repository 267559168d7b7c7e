"""Read-only HTTP query API over the stored node inventory.

Endpoints:
    GET /health                Liveness probe
    GET /api/nodes             Paginated node listing (``page``, ``limit``)
    GET /api/nodes/{node_id}   Point lookup by node identity or address
"""

import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from tmc import __version__
from tmc.errors import EncodingFailure, StoreFailure
from tmc.inventory import find_node, load_nodes, paginate
from tmc.store import KVStore

logger = logging.getLogger(__name__)


def create_app(store: KVStore) -> FastAPI:
    """Create the query API application.

    Args:
        store: Store shared with the crawler; only read here.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="tmc",
        description="Tendermint p2p network crawler inventory.",
        version=__version__,
        redoc_url=None,
    )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/nodes")
    def get_nodes(page: str | None = None, limit: str | None = None) -> JSONResponse:
        """List stored nodes, optionally one page at a time."""
        page_num = _positive_int(page, default=1)
        if page_num is None:
            return _error(400, f"invalid page query: {page}")
        limit_num = _positive_int(limit, default=0)
        if limit_num is None:
            return _error(400, f"invalid limit query: {limit}")

        try:
            nodes = load_nodes(store)
        except StoreFailure as exc:
            logger.warning("Failed to query nodes: %s", exc)
            return _error(500, f"failed to query nodes: {exc}")

        start, end = paginate(len(nodes), page_num, limit_num)
        return JSONResponse(
            content={
                "total": len(nodes),
                "page": page_num,
                "limit": limit_num,
                "nodes": [n.to_dict() for n in nodes[start:end]],
            }
        )

    @app.get("/api/nodes/{node_id:path}")
    def get_node(node_id: str) -> JSONResponse:
        """Look up a single node."""
        try:
            node = find_node(store, node_id)
        except (EncodingFailure, StoreFailure) as exc:
            logger.warning("Failed to load node %s: %s", node_id, exc)
            return _error(500, f"failed to load node: {exc}")

        if node is None:
            return _error(404, f"node not found: {node_id}")
        return JSONResponse(content=node.to_dict())

    return app


def _positive_int(raw: str | None, default: int) -> int | None:
    """Parse a positive integer query value; ``None`` signals invalid input."""
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})
