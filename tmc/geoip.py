"""Geolocation: MaxMind locators and the cache-through resolver."""

import ipaddress
import logging
import socket
from abc import ABC, abstractmethod

import geoip2.database
import geoip2.errors
import geoip2.webservice

from tmc.config import CrawlerConfig
from tmc.errors import EncodingFailure, ResolutionFailure
from tmc.models import GeoRecord, Location, location_key
from tmc.net import resolve_host
from tmc.store import KVStore

logger = logging.getLogger(__name__)


class GeoLocator(ABC):
    """Abstract base class for external geolocation sources.

    Each source turns a host into a ``GeoRecord`` or raises
    ``ResolutionFailure``.
    """

    @abstractmethod
    def lookup(self, host: str) -> GeoRecord:
        """Look up the location of *host*.

        Args:
            host: IP address or hostname.

        Returns:
            The raw geolocation record.

        Raises:
            ResolutionFailure: If the host cannot be located.
        """

    def close(self) -> None:
        """Release any resources held by the locator."""


class WebServiceLocator(GeoLocator):
    """MaxMind GeoIP2 / GeoLite web service.

    Args:
        account_id: MaxMind account ID.
        license_key: MaxMind license key.
        host: Web service host (``geolite.info`` for the free tier).
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        account_id: int,
        license_key: str,
        host: str = "geolite.info",
        timeout: float = 5.0,
    ) -> None:
        self._client = geoip2.webservice.Client(
            account_id, license_key, host=host, timeout=timeout
        )

    def close(self) -> None:
        self._client.close()

    def lookup(self, host: str) -> GeoRecord:
        ip = _to_ip(host)
        try:
            resp = self._client.city(ip)
        except (geoip2.errors.GeoIP2Error, OSError, ValueError) as exc:
            # OSError covers the transport errors the client lets through.
            raise ResolutionFailure(f"Geolocation lookup failed for {host}: {exc}") from exc
        return _record_from_city(resp)


class DatabaseLocator(GeoLocator):
    """Local MaxMind GeoLite2-City database.

    Args:
        city_db_path: Path to ``GeoLite2-City.mmdb``.

    Raises:
        FileNotFoundError: If the database file does not exist.
    """

    def __init__(self, city_db_path: str) -> None:
        self._reader = geoip2.database.Reader(city_db_path)
        logger.debug("Opened GeoLite2-City DB: %s", city_db_path)

    def close(self) -> None:
        self._reader.close()

    def lookup(self, host: str) -> GeoRecord:
        ip = _to_ip(host)
        try:
            resp = self._reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError) as exc:
            raise ResolutionFailure(f"City lookup failed for {host}: {exc}") from exc
        return _record_from_city(resp)


class DisabledLocator(GeoLocator):
    """Stand-in used when no geolocation source is configured."""

    def lookup(self, host: str) -> GeoRecord:
        raise ResolutionFailure("No geolocation source configured")


def build_locator(config: CrawlerConfig) -> GeoLocator:
    """Pick the geolocation source from configuration.

    A local city database wins over the web service.  With neither
    configured, locations are left empty.
    """
    if config.maxmind_city_db:
        try:
            return DatabaseLocator(config.maxmind_city_db)
        except FileNotFoundError:
            logger.warning(
                "GeoLite2-City DB not found at %s; trying the web service",
                config.maxmind_city_db,
            )

    if config.maxmind_account_id and config.maxmind_license_key:
        return WebServiceLocator(
            int(config.maxmind_account_id),
            config.maxmind_license_key,
            host=config.maxmind_host,
            timeout=config.geo_timeout,
        )

    logger.warning("No geolocation source configured; node locations stay empty")
    return DisabledLocator()


class GeoResolver:
    """Cache-through geolocation backed by the key/value store.

    A host is looked up externally at most once for the lifetime of the
    store; afterwards the cached ``location/<host>`` record is returned,
    even if the external source would now answer differently.

    Args:
        store: Store holding the ``location/`` cache.
        locator: External geolocation source.
    """

    def __init__(self, store: KVStore, locator: GeoLocator) -> None:
        self._store = store
        self._locator = locator

    def resolve(self, host: str) -> Location:
        """Return the location of *host*, from cache or via the locator.

        Raises:
            ResolutionFailure: If the lookup fails or the cached record
                cannot be decoded.
            StoreFailure: If the cache cannot be read or written.
        """
        key = location_key(host)

        cached = self._store.get(key)
        if cached is not None:
            try:
                return Location.from_bytes(cached)
            except EncodingFailure as exc:
                raise ResolutionFailure(f"Cached location for {host} is corrupt: {exc}") from exc

        loc = Location.from_geo(self._locator.lookup(host))
        self._store.set(key, loc.to_bytes())
        logger.debug("Cached location for %s: %s", host, loc.country or "unknown")
        return loc


def _to_ip(host: str) -> str:
    """Return *host* if it is an IP literal, else its first resolved address."""
    try:
        return str(ipaddress.ip_address(host))
    except ValueError:
        pass

    try:
        return resolve_host(host)
    except (socket.gaierror, UnicodeError) as exc:
        raise ResolutionFailure(f"Cannot resolve {host}: {exc}") from exc


def _record_from_city(resp: object) -> GeoRecord:
    """Translate a ``geoip2.models.City`` response into a ``GeoRecord``."""
    return GeoRecord(
        country=resp.country.name,
        region=resp.subdivisions.most_specific.name,
        city=resp.city.name,
        latitude=resp.location.latitude,
        longitude=resp.location.longitude,
    )
