"""CLI entry point for the tmc tool."""

import logging
import sys
import threading

import click
import structlog
import uvicorn

from tmc import __version__
from tmc.api import create_app
from tmc.config import ConfigError, CrawlerConfig, load_config
from tmc.crawler import Crawler
from tmc.errors import StoreFailure
from tmc.inventory import load_nodes
from tmc.output import render_nodes
from tmc.store import KVStore

logger = logging.getLogger(__name__)

LOG_LEVELS = ("debug", "info", "warning", "error")
LOG_FORMATS = ("text", "json")
TEXT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
FORMATS = ("table", "json")

_config_option = click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=False),
    help="Path to YAML config file (default: ~/.tmc/config.yaml).",
)


@click.group()
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    show_default=True,
    help="Logging level.",
)
@click.option(
    "--log-format",
    default="text",
    type=click.Choice(LOG_FORMATS, case_sensitive=False),
    show_default=True,
    help="Log line format.",
)
def main(log_level: str, log_format: str) -> None:
    """Crawl a Tendermint p2p network and serve the discovered nodes.

    Captures geolocation and node metadata such as network name, node
    version, RPC information and node ID for each crawled node.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(log_formatter(log_format.lower()))
    logging.basicConfig(level=getattr(logging, log_level.upper()), handlers=[handler])


@main.command()
@_config_option
def crawl(config_path: str | None) -> None:
    """Run the crawler and the query API until interrupted."""
    cfg = _load(config_path)
    try:
        cfg.validate()
        host, port = cfg.listen_host_port()
        store = KVStore(cfg.db_path)
    except (ConfigError, StoreFailure) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    try:
        crawler = Crawler(cfg, store)
        threading.Thread(target=crawler.crawl, name="crawler", daemon=True).start()

        logger.info("Starting API server on %s", cfg.listen_addr)
        uvicorn.run(create_app(store), host=host, port=port, log_level="warning")
    finally:
        store.close()


@main.command()
@_config_option
@click.option(
    "--format",
    "-f",
    "output_format",
    default="table",
    type=click.Choice(FORMATS, case_sensitive=False),
    show_default=True,
    help="Output format.",
)
def nodes(config_path: str | None, output_format: str) -> None:
    """Print the stored node inventory."""
    cfg = _load(config_path)
    try:
        store = KVStore(cfg.db_path)
    except StoreFailure as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    try:
        inventory = load_nodes(store)
    finally:
        store.close()

    render_nodes(inventory, output_format.lower())


@main.command()
def version() -> None:
    """Print the tmc version."""
    click.echo(__version__)


def _load(config_path: str | None) -> CrawlerConfig:
    """Load configuration or exit with an error message."""
    try:
        cfg = load_config(config_path)
    except (ConfigError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    logger.debug("Config loaded: %s", cfg)
    return cfg


def log_formatter(log_format: str) -> logging.Formatter:
    """Return the formatter for *log_format*.

    ``json`` renders every record as one JSON object per line with
    ``timestamp``, ``level``, ``logger`` and ``event`` keys.

    Raises:
        ValueError: If *log_format* is not ``"text"`` or ``"json"``.
    """
    if log_format == "text":
        return logging.Formatter(TEXT_LOG_FORMAT)
    if log_format == "json":
        return structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
            ],
        )
    raise ValueError(f"Unknown log format: {log_format!r}")
