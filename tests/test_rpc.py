"""Tests for tmc.rpc: Tendermint RPC client."""

import httpx
import pytest

from tmc.errors import ProtocolFailure
from tmc.models import NodeStatus, PeerInfo
from tmc.rpc import RPCClient

_STATUS = {
    "jsonrpc": "2.0",
    "id": -1,
    "result": {
        "node_info": {
            "id": "abc123",
            "listen_addr": "tcp://0.0.0.0:26656",
            "network": "test-1",
            "version": "0.34.0",
            "moniker": "alice",
            "other": {"tx_index": "on", "rpc_address": "tcp://0.0.0.0:26657"},
        },
        "sync_info": {"latest_block_height": "100"},
    },
}

_NET_INFO = {
    "jsonrpc": "2.0",
    "id": -1,
    "result": {
        "listening": True,
        "n_peers": "3",
        "peers": [
            {
                "node_info": {
                    "id": "def456",
                    "moniker": "bob",
                    "other": {"rpc_address": "tcp://0.0.0.0:26657"},
                },
                "remote_ip": "10.0.0.2",
            },
            {
                "node_info": {"id": "ghi789", "other": {"rpc_address": "tcp://127.0.0.1:36657"}},
                "remote_ip": "10.0.0.3",
            },
            {"node_info": {"id": "no-ip"}},
        ],
    },
}


def _client(handler) -> RPCClient:
    return RPCClient(timeout=1.0, transport=httpx.MockTransport(handler))


def _json(payload: object, status: int = 200):
    return lambda request: httpx.Response(status, json=payload)


class TestStatus:
    def test_decodes_node_info(self) -> None:
        with _client(_json(_STATUS)) as client:
            status = client.status("http://10.0.0.1:26657")

        assert status == NodeStatus(
            id="abc123",
            moniker="alice",
            network="test-1",
            version="0.34.0",
            tx_index="on",
        )

    def test_requests_status_path(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=_STATUS)

        with _client(handler) as client:
            client.status("http://10.0.0.1:26657/")

        assert seen == ["http://10.0.0.1:26657/status"]

    def test_missing_id_raises(self) -> None:
        payload = {"result": {"node_info": {"moniker": "x"}}}
        with _client(_json(payload)) as client, pytest.raises(ProtocolFailure, match="node_info.id"):
            client.status("http://10.0.0.1:26657")

    def test_jsonrpc_error_raises(self) -> None:
        payload = {"jsonrpc": "2.0", "error": {"code": -32603, "message": "Internal error"}}
        with _client(_json(payload)) as client, pytest.raises(ProtocolFailure, match="returned error"):
            client.status("http://10.0.0.1:26657")

    def test_http_error_raises(self) -> None:
        with _client(_json({}, status=500)) as client, pytest.raises(ProtocolFailure):
            client.status("http://10.0.0.1:26657")

    def test_connection_error_raises(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused")

        with _client(refuse) as client, pytest.raises(ProtocolFailure, match="Connection refused"):
            client.status("http://10.0.0.1:26657")

    def test_non_json_raises(self) -> None:
        handler = lambda request: httpx.Response(200, text="<html>nope</html>")  # noqa: E731
        with _client(handler) as client, pytest.raises(ProtocolFailure, match="not JSON"):
            client.status("http://10.0.0.1:26657")


class TestNetInfo:
    def test_decodes_peers_and_skips_malformed(self) -> None:
        with _client(_json(_NET_INFO)) as client:
            peers = client.net_info("http://10.0.0.1:26657")

        assert peers == [
            PeerInfo(id="def456", remote_ip="10.0.0.2", rpc_port="26657"),
            PeerInfo(id="ghi789", remote_ip="10.0.0.3", rpc_port="36657"),
        ]

    def test_missing_rpc_address_gives_empty_port(self) -> None:
        payload = {"result": {"peers": [{"node_info": {"id": "x"}, "remote_ip": "10.0.0.9"}]}}
        with _client(_json(payload)) as client:
            peers = client.net_info("http://10.0.0.1:26657")

        assert peers == [PeerInfo(id="x", remote_ip="10.0.0.9", rpc_port="")]

    def test_null_peers_is_empty(self) -> None:
        with _client(_json({"result": {"peers": None}})) as client:
            assert client.net_info("http://10.0.0.1:26657") == []

    def test_malformed_peers_raises(self) -> None:
        with _client(_json({"result": {"peers": "nope"}})) as client, pytest.raises(ProtocolFailure):
            client.net_info("http://10.0.0.1:26657")

    def test_missing_result_raises(self) -> None:
        with _client(_json({"jsonrpc": "2.0"})) as client, pytest.raises(ProtocolFailure, match="no result"):
            client.net_info("http://10.0.0.1:26657")
