"""Tests for tmc.net: address helpers, DNS resolution and liveness probe."""

import socket
from unittest.mock import MagicMock, patch

import pytest

from tmc.net import (
    format_address,
    parse_rpc_address,
    peer_address,
    ping_address,
    port_from_listen_address,
    resolve_host,
    rpc_address,
)

_IPV4_RESULT = (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("93.184.216.34", 0))
_IPV6_RESULT = (
    socket.AF_INET6,
    socket.SOCK_STREAM,
    6,
    "",
    ("2606:2800:220:1:248:1893:25c8:1946", 0, 0, 0),
)


class TestParseRpcAddress:
    def test_host_and_port(self) -> None:
        assert parse_rpc_address("http://10.0.0.1:26657") == ("10.0.0.1", 26657)

    def test_missing_port_defaults(self) -> None:
        assert parse_rpc_address("https://rpc.example.com") == ("rpc.example.com", 26657)

    def test_ipv6(self) -> None:
        assert parse_rpc_address("http://[2001:db8::1]:26657") == ("2001:db8::1", 26657)

    @pytest.mark.parametrize("address", ["10.0.0.1:26657", "", "http://", "http://h:99999"])
    def test_invalid_raises(self, address: str) -> None:
        with pytest.raises(ValueError):
            parse_rpc_address(address)


class TestAddressBuilders:
    def test_format_ipv4(self) -> None:
        assert format_address("10.0.0.1", 26656) == "10.0.0.1:26656"

    def test_format_ipv6_bracketed(self) -> None:
        assert format_address("2001:db8::1", 26656) == "[2001:db8::1]:26656"

    def test_rpc_address(self) -> None:
        assert rpc_address("10.0.0.2", "26657") == "http://10.0.0.2:26657"

    def test_peer_address_default_port(self) -> None:
        assert peer_address("10.0.0.1") == "10.0.0.1:26656"


class TestPortFromListenAddress:
    @pytest.mark.parametrize(
        ("listen", "expected"),
        [
            ("tcp://0.0.0.0:26657", "26657"),
            ("tcp://127.0.0.1:36657", "36657"),
            ("0.0.0.0:26657", "26657"),
            ("tcp://0.0.0.0", ""),
            ("", ""),
            ("tcp://0.0.0.0:abc", ""),
        ],
    )
    def test_extracts_port(self, listen: str, expected: str) -> None:
        assert port_from_listen_address(listen) == expected


class TestPingAddress:
    @patch("tmc.net.socket.create_connection")
    def test_reachable(self, mock_connect: MagicMock) -> None:
        assert ping_address("10.0.0.1:26656", 2.0) is True
        mock_connect.assert_called_once_with(("10.0.0.1", 26656), timeout=2.0)

    @patch("tmc.net.socket.create_connection", side_effect=ConnectionRefusedError)
    def test_refused(self, _mock_connect: MagicMock) -> None:
        assert ping_address("10.0.0.1:26656", 2.0) is False

    @patch("tmc.net.socket.create_connection", side_effect=socket.timeout)
    def test_timeout(self, _mock_connect: MagicMock) -> None:
        assert ping_address("10.0.0.1:26656", 0.1) is False

    @patch("tmc.net.socket.create_connection")
    def test_ipv6_brackets_stripped(self, mock_connect: MagicMock) -> None:
        ping_address("[2001:db8::1]:26656", 1.0)
        mock_connect.assert_called_once_with(("2001:db8::1", 26656), timeout=1.0)

    def test_malformed_address(self) -> None:
        assert ping_address("no-port", 1.0) is False


class TestResolveHost:
    @patch("tmc.net.socket.getaddrinfo")
    def test_returns_first_address(self, mock_gai: MagicMock) -> None:
        mock_gai.return_value = [_IPV4_RESULT, _IPV6_RESULT]

        assert resolve_host("example.com") == "93.184.216.34"
        mock_gai.assert_called_once_with("example.com", None, type=socket.SOCK_STREAM)

    @patch("tmc.net.socket.getaddrinfo")
    def test_ipv6_only(self, mock_gai: MagicMock) -> None:
        mock_gai.return_value = [_IPV6_RESULT]
        assert resolve_host("example.com") == "2606:2800:220:1:248:1893:25c8:1946"

    @patch("tmc.net.socket.getaddrinfo", side_effect=socket.gaierror("nope"))
    def test_failure_propagates(self, _mock_gai: MagicMock) -> None:
        with pytest.raises(socket.gaierror):
            resolve_host("nonexistent.invalid")
