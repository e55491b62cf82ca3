"""Configuration for kgquery.

The query engine only reads the graph, so configuration is small:
- db_path: Path to the SQLite database holding graph_nodes / graph_edges
- default_organization_id: Organization used by the CLI when none is given
- max_expansions / search_timeout_seconds: Bounds applied to every traversal
- log_level: Level used when the CLI or MCP server configures logging
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator


class Settings(BaseModel):
    """kgquery settings."""

    db_path: Path = Field(
        default_factory=lambda: Path("graph.db").resolve(),
        description="Path to the knowledge graph SQLite database"
    )
    default_organization_id: Optional[str] = Field(
        default=None,
        description="Organization scope used when a command omits --org"
    )
    max_expansions: Optional[int] = Field(
        default=10_000,
        ge=1,
        description="Maximum nodes expanded per search; None disables the cap"
    )
    search_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Wall-clock budget per search; None disables the deadline"
    )
    log_level: str = Field(default="WARNING")

    @field_validator("db_path", mode="before")
    def _coerce_path(cls, value: str | Path) -> Path:
        return Path(value).expanduser().resolve()

    @field_validator("log_level", mode="before")
    def _normalize_level(cls, value: str) -> str:
        return str(value).upper()


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Load configuration from YAML if provided, otherwise use defaults."""
    path = config_path or Path(__file__).resolve().parent.parent.parent / "config.yaml"
    if path.exists():
        data = yaml.safe_load(path.read_text()) or {}
    else:
        data = {}
    return Settings(**data)
