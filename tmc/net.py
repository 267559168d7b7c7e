"""Address helpers, DNS resolution and the peer-layer liveness probe."""

import logging
import socket
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

DEFAULT_RPC_PORT = 26657
DEFAULT_P2P_PORT = 26656


def parse_rpc_address(address: str) -> tuple[str, int]:
    """Split an RPC address such as ``http://10.0.0.1:26657`` into host and port.

    Args:
        address: Node RPC address including its scheme.

    Returns:
        A ``(host, port)`` tuple.  The port defaults to ``26657`` when the
        address does not carry one.

    Raises:
        ValueError: If the address has no scheme or host, or an invalid port.
    """
    parts = urlsplit(address)
    if not parts.scheme or not parts.hostname:
        raise ValueError(f"Invalid RPC address: {address!r}")

    # .port raises ValueError itself for out-of-range or non-numeric ports
    port = parts.port
    return parts.hostname, port if port is not None else DEFAULT_RPC_PORT


def format_address(host: str, port: int | str) -> str:
    """Join *host* and *port*, bracketing IPv6 literals."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def rpc_address(host: str, port: int | str) -> str:
    """Build the crawl address (RPC scheme) for *host* and *port*."""
    return f"http://{format_address(host, port)}"


def peer_address(host: str, p2p_port: int = DEFAULT_P2P_PORT) -> str:
    """Build the peer-layer ``host:port`` address used for liveness probes."""
    return format_address(host, p2p_port)


def port_from_listen_address(listen_address: str) -> str:
    """Extract the port from a listen address like ``tcp://0.0.0.0:26657``.

    Returns:
        The port as a string, or ``""`` when it cannot be determined.
    """
    if not listen_address:
        return ""
    if "://" not in listen_address:
        listen_address = f"tcp://{listen_address}"
    try:
        port = urlsplit(listen_address).port
    except ValueError:
        return ""
    return str(port) if port is not None else ""


def ping_address(address: str, timeout: float) -> bool:
    """Attempt a TCP connection to a peer-layer ``host:port`` address.

    Args:
        address: Peer address as produced by :func:`peer_address`.
        timeout: Connect timeout in seconds.

    Returns:
        ``True`` if the connection was established, ``False`` otherwise.
    """
    host, _, port = address.rpartition(":")
    host = host.strip("[]")
    try:
        with socket.create_connection((host, int(port)), timeout=timeout):
            return True
    except (OSError, ValueError) as exc:
        logger.debug("Ping to %s failed: %s", address, exc)
        return False


def resolve_host(hostname: str) -> str:
    """Return the first address *hostname* resolves to, IPv4 or IPv6.

    Raises:
        socket.gaierror: If the name does not resolve.
    """
    infos = socket.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    ip = infos[0][4][0]
    logger.debug("Resolved %s to %s", hostname, ip)
    return ip
