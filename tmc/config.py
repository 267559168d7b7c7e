"""YAML configuration file loading."""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from tmc.net import DEFAULT_P2P_PORT

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".tmc"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_DB_PATH = str(DEFAULT_CONFIG_DIR / "tmc.db")
DEFAULT_LISTEN_ADDR = "0.0.0.0:27758"


@dataclass
class CrawlerConfig:
    """Top-level configuration for the crawler and its query API.

    Attributes:
        db_path: Path to the SQLite key/value store.
        listen_addr: ``host:port`` the query API binds to.
        seeds: RPC addresses the traversal starts from (required to crawl).
        reseed_size: Capacity of the reseed reservoir.
        crawl_interval: Seconds to sleep between a drained frontier and the
            next reseed.
        recheck_interval: Seconds between rechecks of known nodes.  Accepted
            for compatibility; the traversal loop does not consult it.
        p2p_port: Well-known peer-layer port probed for liveness.
        probe_timeout: Liveness probe timeout in seconds.
        rpc_timeout: RPC request timeout in seconds.
        geo_timeout: Geolocation web service timeout in seconds.
        maxmind_account_id: MaxMind account ID for the web service.
        maxmind_license_key: MaxMind license key for the web service.
        maxmind_host: Web service host (``geolite.info`` for GeoLite,
            ``geoip.maxmind.com`` for GeoIP2 Precision).
        maxmind_city_db: Path to a local GeoLite2-City.mmdb; preferred over
            the web service when set.
    """

    db_path: str = DEFAULT_DB_PATH
    listen_addr: str = DEFAULT_LISTEN_ADDR
    seeds: list[str] = field(default_factory=list)
    reseed_size: int = 100
    crawl_interval: float = 15
    recheck_interval: float = 3600
    p2p_port: int = DEFAULT_P2P_PORT
    probe_timeout: float = 3.0
    rpc_timeout: float = 2.0
    geo_timeout: float = 5.0
    maxmind_account_id: int | None = None
    maxmind_license_key: str | None = field(default=None, repr=False)
    maxmind_host: str = "geolite.info"
    maxmind_city_db: str | None = None

    def validate(self) -> None:
        """Check the settings needed to run the crawler.

        Raises:
            ConfigError: On the first invalid setting found.
        """
        if not self.seeds:
            raise ConfigError("No seeds provided in configuration")
        if not isinstance(self.seeds, list) or not all(
            isinstance(s, str) and s for s in self.seeds
        ):
            raise ConfigError("seeds must be a list of RPC addresses")

        for name in ("reseed_size", "p2p_port"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")

        for name in (
            "crawl_interval",
            "recheck_interval",
            "probe_timeout",
            "rpc_timeout",
            "geo_timeout",
        ):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                raise ConfigError(f"{name} must be a positive number, got {value!r}")

        self.listen_host_port()

    def listen_host_port(self) -> tuple[str, int]:
        """Split ``listen_addr`` into host and port.

        Raises:
            ConfigError: If the address is not ``host:port``.
        """
        host, sep, port = str(self.listen_addr).rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ConfigError(f"Invalid listen_addr: {self.listen_addr!r}")
        return host.strip("[]"), int(port)


# YAML keys are the CrawlerConfig field names.
_CONFIG_KEYS = frozenset(f.name for f in fields(CrawlerConfig))


def load_config(path: Path | str | None = None) -> CrawlerConfig:
    """Load configuration from a YAML file.

    Args:
        path: Explicit path to a YAML config file.  If ``None``, the
            default location (``~/.tmc/config.yaml``) is tried.  If the
            default file doesn't exist, a ``CrawlerConfig`` with all defaults
            is returned silently.

    Returns:
        A populated ``CrawlerConfig`` instance.

    Raises:
        FileNotFoundError: If an explicit *path* was given but doesn't exist.
        ConfigError: If the file contains invalid YAML or has an unexpected
            top-level structure.
    """
    resolved = _resolve_path(path)

    if resolved is None:
        logger.debug("No config file found; using defaults")
        return CrawlerConfig()

    logger.debug("Loading config from %s", resolved)
    text = resolved.read_text(encoding="utf-8")

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {resolved}: {exc}") from exc

    if raw is None:
        # Empty file: treat as all-defaults.
        return CrawlerConfig()

    if not isinstance(raw, dict):
        raise ConfigError(
            f"Expected a YAML mapping at the top level in {resolved}, "
            f"got {type(raw).__name__}"
        )

    return _build_config(raw, source=resolved)


class ConfigError(Exception):
    """Raised when a configuration file is malformed or incomplete."""


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _resolve_path(path: Path | str | None) -> Path | None:
    """Return a concrete ``Path`` to read, or ``None`` if nothing to read.

    Raises:
        FileNotFoundError: If the caller supplied an explicit path that
            doesn't exist on disk.
    """
    if path is not None:
        p = Path(path).expanduser()
        if not p.is_file():
            raise FileNotFoundError(f"Config file not found: {p}")
        return p

    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.is_file():
        return default
    return None


def _build_config(raw: dict, source: Path) -> CrawlerConfig:
    """Map raw YAML dict to a ``CrawlerConfig``, ignoring unknown keys."""
    unknown = sorted(str(k) for k in set(raw) - _CONFIG_KEYS)
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", source, ", ".join(unknown))

    return CrawlerConfig(**{k: v for k, v in raw.items() if k in _CONFIG_KEYS})
