"""Data models: Node and Location records, collaborator results, store keys."""

import dataclasses
from dataclasses import dataclass, field

import msgpack

from tmc.errors import EncodingFailure

NODE_KEY_PREFIX = b"node/"
LOCATION_KEY_PREFIX = b"location/"
ADDRESS_KEY_PREFIX = b"address/"


def node_key(addressable: str) -> bytes:
    """Return the store key of a node, by identity or by RPC address."""
    return NODE_KEY_PREFIX + addressable.encode("utf-8")


def location_key(host: str) -> bytes:
    """Return the store key of the cached location of *host*."""
    return LOCATION_KEY_PREFIX + host.encode("utf-8")


def address_key(address: str) -> bytes:
    """Return the index key mapping an RPC address to its node key."""
    return ADDRESS_KEY_PREFIX + address.encode("utf-8")


def _pack(record: object) -> bytes:
    try:
        return msgpack.packb(dataclasses.asdict(record), use_bin_type=True)
    except (TypeError, ValueError, OverflowError) as exc:
        raise EncodingFailure(f"Failed to encode {type(record).__name__}: {exc}") from exc


def _unpack(raw: bytes, kind: str) -> dict:
    try:
        data = msgpack.unpackb(raw, raw=False)
    except (msgpack.exceptions.UnpackException, ValueError, TypeError) as exc:
        raise EncodingFailure(f"Failed to decode {kind}: {exc}") from exc
    if not isinstance(data, dict):
        raise EncodingFailure(
            f"Failed to decode {kind}: expected a map, got {type(data).__name__}"
        )
    return data


def _str_fields(cls: type, data: dict) -> dict[str, str]:
    """Pick the string fields of *cls* out of *data*, coercing to ``str``."""
    out: dict[str, str] = {}
    for f in dataclasses.fields(cls):
        if f.type is str and data.get(f.name) is not None:
            out[f.name] = str(data[f.name])
    return out


@dataclass
class Location:
    """Geolocation of one host IP.

    Immutable once cached: a location is looked up at most once per host.
    Coordinates are kept as text with six decimals, empty when unknown.
    """

    country: str = ""
    region: str = ""
    city: str = ""
    latitude: str = ""
    longitude: str = ""

    @classmethod
    def from_geo(cls, record: "GeoRecord") -> "Location":
        """Translate a raw geolocation response into a ``Location``."""
        return cls(
            country=record.country or "",
            region=record.region or "",
            city=record.city or "",
            latitude=_fmt_coord(record.latitude),
            longitude=_fmt_coord(record.longitude),
        )

    def to_bytes(self) -> bytes:
        return _pack(self)

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Location":
        return cls(**_str_fields(cls, _unpack(raw, "location")))


@dataclass
class Node:
    """A full node of a Tendermint-based network.

    Attributes:
        address: RPC address the node was crawled at (``http://host:port``).
        remote_ip: Host part of ``address``.
        rpc_port: RPC port, empty when unknown.
        p2p_port: Peer-layer port, empty when unknown.
        moniker: Human-readable node name reported by ``/status``.
        id: Node identity; empty until the first successful status fetch.
        network: Chain ID the node reports.
        version: Tendermint version the node reports.
        tx_index: Transaction indexer state (``"on"``/``"off"``).
        last_sync: ISO-8601 UTC timestamp of the last crawl that reached
            persistence.
        location: Geolocation of ``remote_ip``.
    """

    address: str
    remote_ip: str = ""
    rpc_port: str = ""
    p2p_port: str = ""
    moniker: str = ""
    id: str = ""
    network: str = ""
    version: str = ""
    tx_index: str = ""
    last_sync: str = ""
    location: Location = field(default_factory=Location)

    def key(self) -> bytes:
        """Store key: node identity once known, RPC address otherwise."""
        return node_key(self.id or self.address)

    def apply_status(self, status: "NodeStatus") -> None:
        """Copy identity and version metadata from a status response."""
        self.id = status.id
        self.moniker = status.moniker
        self.network = status.network
        self.version = status.version
        self.tx_index = status.tx_index

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)

    def to_bytes(self) -> bytes:
        return _pack(self)

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Node":
        data = _unpack(raw, "node")
        if not data.get("address"):
            raise EncodingFailure("Failed to decode node: missing address")

        location = data.get("location")
        return cls(
            **_str_fields(cls, data),
            location=Location(**_str_fields(Location, location))
            if isinstance(location, dict)
            else Location(),
        )


@dataclass(frozen=True)
class NodeStatus:
    """Decoded ``/status`` response."""

    id: str
    moniker: str = ""
    network: str = ""
    version: str = ""
    tx_index: str = ""


@dataclass(frozen=True)
class PeerInfo:
    """One peer from a ``/net_info`` response.

    ``rpc_port`` is taken from the peer's advertised RPC listen address and
    is empty when the peer did not advertise one.
    """

    id: str
    remote_ip: str
    rpc_port: str = ""


@dataclass(frozen=True)
class GeoRecord:
    """Raw geolocation lookup response, before translation to ``Location``."""

    country: str | None = None
    region: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None


def _fmt_coord(value: float | None) -> str:
    if value is None:
        return ""
    return f"{value:f}"
