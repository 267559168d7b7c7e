"""Output renderer for the node inventory: rich table or JSON."""

import json
import logging
import sys
from io import StringIO

from rich.console import Console
from rich.table import Table

from tmc.models import Node

logger = logging.getLogger(__name__)

# (header, accessor) pairs for the inventory table.
_NODE_COLUMNS = [
    ("ID", lambda n: n.id),
    ("Moniker", lambda n: n.moniker),
    ("Address", lambda n: n.address),
    ("Network", lambda n: n.network),
    ("Version", lambda n: n.version),
    ("Country", lambda n: n.location.country),
    ("City", lambda n: n.location.city),
    ("Last sync", lambda n: n.last_sync),
]


def render_nodes(
    nodes: list[Node],
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Dispatch output to the appropriate formatter.

    Args:
        nodes: Nodes to render.
        fmt: Output format, ``"table"`` or ``"json"``.
        file: Writable file object for output (default: ``sys.stdout``).
        width: Explicit console width (default: auto-detect).

    Raises:
        ValueError: If *fmt* is not ``"table"`` or ``"json"``.
    """
    if fmt == "table":
        render_table(nodes, file=file, width=width)
    elif fmt == "json":
        render_json(nodes, file=file)
    else:
        raise ValueError(f"Unknown output format: {fmt!r}")


def render_table(
    nodes: list[Node],
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render *nodes* as a ``rich`` table followed by a summary line."""
    out = file or sys.stdout
    console = Console(file=out, highlight=False, width=width)

    table = Table(title=f"{len(nodes)} nodes")
    for header, _ in _NODE_COLUMNS:
        table.add_column(header)

    for node in nodes:
        table.add_row(*[_fmt(get(node)) for _, get in _NODE_COLUMNS])

    console.print(table)
    _print_summary(console, nodes)


def _print_summary(console: Console, nodes: list[Node]) -> None:
    """Print a one-line summary beneath the table."""
    networks: dict[str, int] = {}
    for n in nodes:
        if n.network:
            networks[n.network] = networks.get(n.network, 0) + 1
    top_network = max(networks, key=networks.get) if networks else "—"  # type: ignore[arg-type]
    located = sum(1 for n in nodes if n.location.country)

    console.print(
        f"  {len(nodes)} nodes, {located} located, top network: {top_network}"
    )


def render_json(nodes: list[Node], *, file: object | None = None) -> None:
    """Render *nodes* as a JSON object ``{"total": ..., "nodes": [...]}``."""
    out = file or sys.stdout
    payload = {"total": len(nodes), "nodes": [n.to_dict() for n in nodes]}
    json.dump(payload, out, indent=2)
    out.write("\n")  # type: ignore[union-attr]


def _fmt(value: str) -> str:
    """Empty values become ``"—"``."""
    return value or "—"


def render_to_string(nodes: list[Node], fmt: str, *, width: int = 200) -> str:
    """Render to a string instead of stdout."""
    buf = StringIO()
    render_nodes(nodes, fmt, file=buf, width=width)
    return buf.getvalue()
