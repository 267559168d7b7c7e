"""Tendermint RPC client: ``/status`` and ``/net_info`` over HTTP."""

import logging

import httpx

from tmc.errors import ProtocolFailure
from tmc.models import NodeStatus, PeerInfo
from tmc.net import port_from_listen_address

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 2.0


class RPCClient:
    """Blocking client for the Tendermint RPC endpoints the crawler needs.

    Responses are decoded once, here, into ``NodeStatus`` and ``PeerInfo``;
    any transport error, non-2xx status, JSON-RPC error or unexpected shape
    is raised as ``ProtocolFailure``.

    Args:
        timeout: Per-request timeout in seconds.
        transport: Optional ``httpx`` transport (tests pass a
            ``httpx.MockTransport``).
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "RPCClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def status(self, rpc_address: str) -> NodeStatus:
        """Query a node's identity, moniker, network, version and tx-index flag."""
        result = self._call(rpc_address, "status")

        node_info = result.get("node_info")
        if not isinstance(node_info, dict) or not node_info.get("id"):
            raise ProtocolFailure(f"status from {rpc_address} has no node_info.id")

        other = node_info.get("other")
        other = other if isinstance(other, dict) else {}
        return NodeStatus(
            id=str(node_info["id"]),
            moniker=str(node_info.get("moniker") or ""),
            network=str(node_info.get("network") or ""),
            version=str(node_info.get("version") or ""),
            tx_index=str(other.get("tx_index") or ""),
        )

    def net_info(self, rpc_address: str) -> list[PeerInfo]:
        """Query a node's live peer list."""
        result = self._call(rpc_address, "net_info")

        peers = result.get("peers") or []
        if not isinstance(peers, list):
            raise ProtocolFailure(f"net_info from {rpc_address} has malformed peers")

        out: list[PeerInfo] = []
        for raw in peers:
            peer = _decode_peer(raw)
            if peer is None:
                logger.debug("Skipping malformed peer from %s: %r", rpc_address, raw)
                continue
            out.append(peer)
        return out

    def _call(self, rpc_address: str, method: str) -> dict:
        url = f"{rpc_address.rstrip('/')}/{method}"
        try:
            resp = self._client.get(url)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as exc:
            raise ProtocolFailure(f"{method} request to {rpc_address} failed: {exc}") from exc
        except ValueError as exc:
            raise ProtocolFailure(f"{method} from {rpc_address} is not JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise ProtocolFailure(f"{method} from {rpc_address} is not a JSON object")
        if payload.get("error"):
            raise ProtocolFailure(f"{method} from {rpc_address} returned error: {payload['error']}")

        result = payload.get("result")
        if not isinstance(result, dict):
            raise ProtocolFailure(f"{method} from {rpc_address} has no result")
        return result


def _decode_peer(raw: object) -> PeerInfo | None:
    """Decode one ``net_info`` peer entry, or return ``None`` if malformed."""
    if not isinstance(raw, dict):
        return None
    node_info = raw.get("node_info")
    remote_ip = raw.get("remote_ip")
    if not isinstance(node_info, dict) or not remote_ip:
        return None

    other = node_info.get("other")
    other = other if isinstance(other, dict) else {}
    return PeerInfo(
        id=str(node_info.get("id") or ""),
        remote_ip=str(remote_ip),
        rpc_port=port_from_listen_address(str(other.get("rpc_address") or "")),
    )
