"""kgquery CLI for querying knowledge graph databases."""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..config import Settings, load_settings
from ..db.connection import get_connection
from ..db.schema import SchemaError
from ..graph.errors import GraphQueryError

console = Console()
app = typer.Typer(add_completion=False, no_args_is_help=True)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _resolve_settings(
    config_path: Optional[Path],
    db: Optional[Path],
    org: Optional[str] = None,
) -> Settings:
    settings = load_settings(config_path)
    if db:
        settings.db_path = Path(db).expanduser().resolve()
    if org:
        settings.default_organization_id = org
    _configure_logging(settings.log_level)
    return settings


@contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except FileNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    except (GraphQueryError, SchemaError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)


def _parse_properties(values: Optional[List[str]]) -> Optional[Dict[str, Any]]:
    """Turn repeated key=value options into a dict; values are read as YAML scalars."""
    if not values:
        return None
    properties: Dict[str, Any] = {}
    for item in values:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            console.print(f"[red]Invalid property filter:[/red] {item} (expected key=value)")
            raise typer.Exit(1)
        properties[key.strip()] = yaml.safe_load(raw)
    return properties


@app.command()
def status(
    db: Optional[Path] = typer.Option(None, "--db", help="Path to graph database"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Show information about the graph database."""
    settings = _resolve_settings(config, db)

    if not settings.db_path.exists():
        console.print(f"[red]Database not found:[/red] {settings.db_path}")
        raise typer.Exit(1)

    with _handle_errors(), get_connection(settings.db_path) as conn:
        node_total = conn.execute("SELECT COUNT(*) FROM graph_nodes").fetchone()[0]
        node_active = conn.execute(
            "SELECT COUNT(*) FROM graph_nodes WHERE is_active = 1"
        ).fetchone()[0]
        edge_total = conn.execute("SELECT COUNT(*) FROM graph_edges").fetchone()[0]
        edge_active = conn.execute(
            "SELECT COUNT(*) FROM graph_edges WHERE is_active = 1"
        ).fetchone()[0]
        org_count = conn.execute(
            "SELECT COUNT(DISTINCT organization_id) FROM graph_nodes"
        ).fetchone()[0]

    table = Table(title="Knowledge Graph Database")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Database Path", str(settings.db_path))
    table.add_row("Organizations", str(org_count))
    table.add_row("Nodes (active/total)", f"{node_active}/{node_total}")
    table.add_row("Edges (active/total)", f"{edge_active}/{edge_total}")

    console.print(table)


@app.command()
def load(
    source: Path = typer.Argument(..., help="YAML or JSON graph document"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to graph database"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    org: Optional[str] = typer.Option(None, "--org", help="Organization for entries without one"),
):
    """Load nodes and edges from a YAML/JSON document."""
    settings = _resolve_settings(config, db)

    if not source.exists():
        console.print(f"[red]File not found:[/red] {source}")
        raise typer.Exit(1)

    text = source.read_text()
    if source.suffix.lower() == ".json":
        payload = json.loads(text)
    else:
        payload = yaml.safe_load(text) or {}
    if org and not payload.get("organization_id"):
        payload["organization_id"] = org

    from ..db.query_service import GraphQueryService
    service = GraphQueryService(settings)

    with _handle_errors():
        counts = service.load_graph(payload)

    console.print(
        f"[green]Loaded {counts['nodes']} nodes and {counts['edges']} edges[/green] "
        f"into {settings.db_path}"
    )


@app.command()
def path(
    source: str = typer.Argument(..., help="Source node id"),
    target: str = typer.Argument(..., help="Target node id"),
    org: Optional[str] = typer.Option(None, "--org", help="Organization id"),
    algorithm: str = typer.Option(
        "dijkstra", "--algorithm", "-a", help="dijkstra, weighted or astar"
    ),
    rel_type: Optional[List[str]] = typer.Option(
        None, "--rel-type", "-r", help="Relationship type to follow (repeatable)"
    ),
    direction: str = typer.Option("both", "--direction", "-d", help="outgoing, incoming or both"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to graph database"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Find a path between two nodes."""
    settings = _resolve_settings(config, db, org)

    from ..db.query_service import GraphQueryService
    service = GraphQueryService(settings)

    with _handle_errors():
        result = service.shortest_path(
            source,
            target,
            algorithm=algorithm,
            relationship_types=rel_type,
            direction=direction,
        )

    if result is None:
        console.print(f"[yellow]No path found from '{source}' to '{target}'[/yellow]")
        return

    names = {node["id"]: node["name"] for node in result.get("nodes", [])}
    console.print(
        f"[cyan bold]{len(result['path']) - 1} hops[/cyan bold], "
        f"total weight {result['total_weight']:g} ({result['algorithm']})"
    )

    table = Table(title=f"Path {source} -> {target}")
    table.add_column("From", style="cyan")
    table.add_column("Relationship")
    table.add_column("To", style="cyan")
    table.add_column("Weight", justify="right")

    for edge in result["edges"]:
        table.add_row(
            names.get(edge["source_id"], edge["source_id"]),
            edge["type"],
            names.get(edge["target_id"], edge["target_id"]),
            f"{edge['weight']:g}",
        )

    console.print(table)


@app.command()
def neighbors(
    node: str = typer.Argument(..., help="Node id"),
    org: Optional[str] = typer.Option(None, "--org", help="Organization id"),
    rel_type: Optional[List[str]] = typer.Option(
        None, "--rel-type", "-r", help="Relationship type to follow (repeatable)"
    ),
    direction: str = typer.Option("both", "--direction", "-d", help="outgoing, incoming or both"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to graph database"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """List the neighbors of a node."""
    settings = _resolve_settings(config, db, org)

    from ..db.query_service import GraphQueryService
    service = GraphQueryService(settings)

    with _handle_errors():
        result = service.neighbors(node, relationship_types=rel_type, direction=direction)

    if result is None:
        console.print(f"[yellow]Node '{node}' not found[/yellow]")
        return

    if not result["neighbors"]:
        console.print(f"[yellow]Node '{result['node']['name']}' has no neighbors[/yellow]")
        return

    table = Table(title=f"Neighbors of {result['node']['name']}")
    table.add_column("Node", style="cyan")
    table.add_column("Name")
    table.add_column("Relationship")
    table.add_column("Direction")
    table.add_column("Weight", justify="right")

    for entry in result["neighbors"]:
        table.add_row(
            entry["node_id"],
            entry.get("name") or "",
            entry["relationship_type"],
            entry["direction"],
            f"{entry['weight']:g}",
        )

    console.print(table)


@app.command()
def subgraph(
    org: Optional[str] = typer.Option(None, "--org", help="Organization id"),
    node_type: Optional[List[str]] = typer.Option(
        None, "--node-type", "-t", help="Node type to include (repeatable)"
    ),
    rel_type: Optional[List[str]] = typer.Option(
        None, "--rel-type", "-r", help="Relationship type to include (repeatable)"
    ),
    min_weight: Optional[float] = typer.Option(None, "--min-weight", help="Minimum edge weight"),
    max_weight: Optional[float] = typer.Option(None, "--max-weight", help="Maximum edge weight"),
    tag: Optional[List[str]] = typer.Option(None, "--tag", help="Node tag (repeatable, any match)"),
    after: Optional[datetime] = typer.Option(None, "--after", help="Created at or after"),
    before: Optional[datetime] = typer.Option(None, "--before", help="Created at or before"),
    prop: Optional[List[str]] = typer.Option(
        None, "--property", "-p", help="Node property filter key=value (repeatable)"
    ),
    closed: bool = typer.Option(
        False, "--closed", help="Drop edges whose endpoints were filtered out"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON result"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to graph database"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Extract the nodes and edges matching the given criteria."""
    settings = _resolve_settings(config, db, org)
    properties = _parse_properties(prop)

    from ..db.query_service import GraphQueryService
    service = GraphQueryService(settings)

    with _handle_errors():
        result = service.extract_subgraph(
            node_types=node_type,
            relationship_types=rel_type,
            min_weight=min_weight,
            max_weight=max_weight,
            tags=tag,
            created_after=after,
            created_before=before,
            properties=properties,
            closed=closed,
        )

    if as_json:
        typer.echo(json.dumps(result, indent=2, ensure_ascii=False))
        return

    if not result["nodes"]:
        console.print("[yellow]No nodes match the given criteria[/yellow]")
        return

    console.print(
        f"[cyan bold]{result['node_count']} nodes[/cyan bold], {result['edge_count']} edges"
    )

    table = Table(title="Nodes")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Tags")
    for item in result["nodes"]:
        table.add_row(item["id"], item["name"], item["type"], ", ".join(item["tags"]))
    console.print(table)

    if result["edges"]:
        edge_table = Table(title="Edges")
        edge_table.add_column("Source", style="cyan")
        edge_table.add_column("Relationship")
        edge_table.add_column("Target", style="cyan")
        edge_table.add_column("Weight", justify="right")
        for edge in result["edges"]:
            edge_table.add_row(
                edge["source_node_id"],
                edge["type"],
                edge["target_node_id"],
                f"{edge['weight']:g}",
            )
        console.print(edge_table)


@app.command()
def search(
    query: str = typer.Argument(..., help="Text to look for in names and descriptions"),
    org: Optional[str] = typer.Option(None, "--org", help="Organization id"),
    node_type: Optional[List[str]] = typer.Option(
        None, "--node-type", "-t", help="Node type filter (repeatable)"
    ),
    tag: Optional[List[str]] = typer.Option(None, "--tag", help="Node tag (repeatable, any match)"),
    limit: int = typer.Option(25, "--limit", "-n", help="Max results"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to graph database"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Search nodes by name or description."""
    settings = _resolve_settings(config, db, org)

    from ..db.query_service import GraphQueryService
    service = GraphQueryService(settings)

    with _handle_errors():
        results = service.find_nodes(query, node_types=node_type, tags=tag, limit=limit)

    if not results:
        console.print(f"[yellow]No nodes found matching '{query}'[/yellow]")
        return

    table = Table(title=f"Nodes matching '{query}'")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Description")

    for r in results:
        table.add_row(r["id"], r["name"], r["type"], r.get("description") or "")

    console.print(table)


@app.command()
def metrics(
    org: Optional[str] = typer.Option(None, "--org", help="Organization id"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to graph database"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Show counts, degree and density of an organization's graph."""
    settings = _resolve_settings(config, db, org)

    from ..db.query_service import GraphQueryService
    service = GraphQueryService(settings)

    with _handle_errors():
        stats = service.graph_metrics()

    table = Table(title=f"Graph metrics for {stats['organization_id']}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Nodes", str(stats["node_count"]))
    table.add_row("Edges", str(stats["edge_count"]))
    table.add_row("Average degree", f"{stats['average_degree']:.3f}")
    table.add_row("Density", f"{stats['density_ratio']:.3f}")
    for node_type, count in sorted(stats["node_type_distribution"].items()):
        table.add_row(f"Nodes: {node_type}", str(count))
    for edge_type, count in sorted(stats["edge_type_distribution"].items()):
        table.add_row(f"Edges: {edge_type}", str(count))

    console.print(table)
