"""Error taxonomy for the crawl path.

Collaborators (store, RPC client, geolocation, record codec) translate their
library-specific exceptions into one of these classes at their boundary.  The
crawler catches each class explicitly and decides whether to delete the node,
persist a partial record, or simply move on.
"""

import enum


class ErrorKind(enum.Enum):
    """Discriminates why a crawl step failed."""

    UNREACHABLE = "unreachable"
    PROTOCOL = "protocol"
    RESOLUTION = "resolution"
    ENCODING = "encoding"
    STORE = "store"


class CrawlError(Exception):
    """Base class for every recoverable failure in the crawl path."""

    kind: ErrorKind


class Unreachable(CrawlError):
    """The peer-layer endpoint refused or timed out the liveness probe."""

    kind = ErrorKind.UNREACHABLE


class ProtocolFailure(CrawlError):
    """An RPC query failed or returned a malformed response."""

    kind = ErrorKind.PROTOCOL


class ResolutionFailure(CrawlError):
    """Geolocation lookup failed, or a cached location could not be decoded."""

    kind = ErrorKind.RESOLUTION


class EncodingFailure(CrawlError):
    """A record could not be serialized or deserialized."""

    kind = ErrorKind.ENCODING


class StoreFailure(CrawlError):
    """The underlying key/value store rejected an operation."""

    kind = ErrorKind.STORE
