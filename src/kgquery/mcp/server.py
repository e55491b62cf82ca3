"""MCP server for knowledge graph queries.

Provides graph tools over a kgquery database:
- shortest_path: Path between two nodes
- neighbors: Adjacency of a node
- extract_subgraph: Nodes and edges matching criteria
- find_nodes: Text search over names and descriptions
- graph_metrics: Counts, degree, density and type distributions
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from ..config import Settings, load_settings
from ..db.query_service import GraphQueryService
from ..graph.errors import InvalidArgumentError, SearchTruncatedError
from ..models.records import Direction, NodeType, RelationshipType

server = Server("kgquery-mcp")
runtime_settings: Optional[Settings] = None

RELATIONSHIP_TYPES = [member.value for member in RelationshipType]
NODE_TYPES = [member.value for member in NodeType]
DIRECTIONS = [member.value for member in Direction]


def _resolve_settings(config: Optional[Path], db: Optional[Path]) -> Settings:
    settings = load_settings(config)
    if db:
        settings.db_path = Path(db).expanduser().resolve()
    return settings


def _json_text(payload: Any) -> TextContent:
    return TextContent(type="text", text=json.dumps(payload, indent=2, ensure_ascii=False))


def _get_query_service() -> GraphQueryService:
    """Get GraphQueryService instance with current settings."""
    if runtime_settings is None:
        raise RuntimeError("MCP server has not been initialized with settings.")
    return GraphQueryService(runtime_settings)


def _optional_datetime(arguments: dict[str, Any], key: str) -> Optional[datetime]:
    value = arguments.get(key)
    if value is None:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise InvalidArgumentError(f"{key} must be an ISO-8601 timestamp") from exc


def _optional_float(arguments: dict[str, Any], key: str) -> Optional[float]:
    value = arguments.get(key)
    return float(value) if value is not None else None


@server.list_tools()
async def handle_list_tools() -> list[Tool]:
    return [
        Tool(
            name="shortest_path",
            description="Find a path between two nodes of an organization's knowledge graph. Returns node ids, hop count, total weight and the edges followed.",
            inputSchema={
                "type": "object",
                "properties": {
                    "source_id": {"type": "string", "description": "Start node id."},
                    "target_id": {"type": "string", "description": "Goal node id."},
                    "organization_id": {
                        "type": "string",
                        "description": "Organization scope. Defaults to the configured organization.",
                    },
                    "algorithm": {
                        "type": "string",
                        "enum": ["dijkstra", "weighted", "astar"],
                        "description": "dijkstra prefers fewer hops; weighted and astar minimize total weight.",
                        "default": "dijkstra",
                    },
                    "relationship_types": {
                        "type": "array",
                        "items": {"type": "string", "enum": RELATIONSHIP_TYPES},
                        "description": "Only follow edges of these types.",
                    },
                    "direction": {
                        "type": "string",
                        "enum": DIRECTIONS,
                        "description": "Edge direction to follow (astar always uses both).",
                        "default": "both",
                    },
                },
                "required": ["source_id", "target_id"],
            },
        ),
        Tool(
            name="neighbors",
            description="List the nodes directly connected to a node, with the relationship and weight of each edge.",
            inputSchema={
                "type": "object",
                "properties": {
                    "node_id": {"type": "string", "description": "Node id."},
                    "organization_id": {"type": "string", "description": "Organization scope."},
                    "relationship_types": {
                        "type": "array",
                        "items": {"type": "string", "enum": RELATIONSHIP_TYPES},
                        "description": "Only follow edges of these types.",
                    },
                    "direction": {
                        "type": "string",
                        "enum": DIRECTIONS,
                        "default": "both",
                    },
                },
                "required": ["node_id"],
            },
        ),
        Tool(
            name="extract_subgraph",
            description="Extract the nodes matching type, tag, date and property filters together with the edges joining them.",
            inputSchema={
                "type": "object",
                "properties": {
                    "organization_id": {"type": "string", "description": "Organization scope."},
                    "node_types": {
                        "type": "array",
                        "items": {"type": "string", "enum": NODE_TYPES},
                    },
                    "relationship_types": {
                        "type": "array",
                        "items": {"type": "string", "enum": RELATIONSHIP_TYPES},
                    },
                    "min_weight": {"type": "number", "minimum": 0},
                    "max_weight": {"type": "number", "minimum": 0},
                    "tags": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Nodes carrying at least one of these tags.",
                    },
                    "created_after": {"type": "string", "description": "ISO-8601 timestamp."},
                    "created_before": {"type": "string", "description": "ISO-8601 timestamp."},
                    "properties": {
                        "type": "object",
                        "description": "Exact-match node property filters.",
                    },
                    "closed": {
                        "type": "boolean",
                        "description": "Drop edges whose endpoints were removed by the property filter.",
                        "default": False,
                    },
                },
            },
        ),
        Tool(
            name="find_nodes",
            description="Case-insensitive text search over node names and descriptions.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Literal text to look for."},
                    "organization_id": {"type": "string", "description": "Organization scope."},
                    "node_types": {
                        "type": "array",
                        "items": {"type": "string", "enum": NODE_TYPES},
                    },
                    "tags": {"type": "array", "items": {"type": "string"}},
                    "limit": {
                        "type": "integer",
                        "description": "Maximum results to return.",
                        "default": 25,
                        "minimum": 1,
                        "maximum": 200,
                    },
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="graph_metrics",
            description="Node and edge counts, average degree, density and type distributions of an organization's graph.",
            inputSchema={
                "type": "object",
                "properties": {
                    "organization_id": {"type": "string", "description": "Organization scope."},
                },
            },
        ),
    ]


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict[str, Any]
) -> list[TextContent]:
    service = _get_query_service()
    org = arguments.get("organization_id")

    if name == "shortest_path":
        source_id = arguments.get("source_id")
        target_id = arguments.get("target_id")
        if not source_id or not target_id:
            raise ValueError("source_id and target_id are required")

        try:
            result = service.shortest_path(
                source_id,
                target_id,
                organization_id=org,
                algorithm=arguments.get("algorithm", "dijkstra"),
                relationship_types=arguments.get("relationship_types"),
                direction=arguments.get("direction", "both"),
            )
        except SearchTruncatedError as exc:
            return [_json_text({"error": str(exc), "reason": exc.reason, "expanded": exc.expanded})]

        if result is None:
            return [_json_text({"error": f"No path found from '{source_id}' to '{target_id}'"})]

        return [_json_text(result)]

    if name == "neighbors":
        node_id = arguments.get("node_id")
        if not node_id:
            raise ValueError("node_id is required")

        result = service.neighbors(
            node_id,
            organization_id=org,
            relationship_types=arguments.get("relationship_types"),
            direction=arguments.get("direction", "both"),
        )

        if result is None:
            return [_json_text({"error": f"Node '{node_id}' not found"})]

        return [_json_text(result)]

    if name == "extract_subgraph":
        result = service.extract_subgraph(
            organization_id=org,
            node_types=arguments.get("node_types"),
            relationship_types=arguments.get("relationship_types"),
            min_weight=_optional_float(arguments, "min_weight"),
            max_weight=_optional_float(arguments, "max_weight"),
            tags=arguments.get("tags"),
            created_after=_optional_datetime(arguments, "created_after"),
            created_before=_optional_datetime(arguments, "created_before"),
            properties=arguments.get("properties"),
            closed=bool(arguments.get("closed", False)),
        )
        return [_json_text(result)]

    if name == "find_nodes":
        query = arguments.get("query")
        if not query:
            raise ValueError("query is required")

        limit = int(arguments.get("limit", 25))

        results = service.find_nodes(
            query,
            organization_id=org,
            node_types=arguments.get("node_types"),
            tags=arguments.get("tags"),
            limit=limit,
        )
        return [_json_text({"count": len(results), "nodes": results})]

    if name == "graph_metrics":
        return [_json_text(service.graph_metrics(org))]

    raise ValueError(f"Unknown tool: {name}")


async def _main(settings: Settings) -> None:
    global runtime_settings
    runtime_settings = settings
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            InitializationOptions(
                server_name="kgquery-mcp",
                server_version="0.1.0",
                capabilities=server.get_capabilities(
                    notification_options=NotificationOptions(),
                    experimental_capabilities={},
                ),
            ),
        )


def run_server() -> None:
    parser = argparse.ArgumentParser(description="kgquery MCP server")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--db", type=Path, help="Path to knowledge graph database")
    args = parser.parse_args()
    settings = _resolve_settings(args.config, args.db)
    # stdout carries the protocol, so logs go to stderr.
    logging.basicConfig(level=settings.log_level)
    asyncio.run(_main(settings))
