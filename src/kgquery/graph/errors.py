"""Error taxonomy for graph queries.

Not-found and empty results are never exceptions: path searches return
None and scans return empty lists. The classes below cover the cases a
caller must be able to tell apart from "no match".
"""
from __future__ import annotations

from typing import Optional


class GraphQueryError(Exception):
    """Base class for failures raised by the query engine."""
    pass


class InvalidArgumentError(GraphQueryError, ValueError):
    """Raised when query arguments violate the engine contract."""
    pass


class StoreError(GraphQueryError):
    """Raised when the backing store fails during a scan."""
    pass


class SearchTruncatedError(GraphQueryError):
    """Raised when a search stops on a limit before it could finish.

    Attributes:
        reason: One of "max_expansions", "deadline", "cancelled"
        expanded: Number of nodes expanded before the search stopped
    """

    def __init__(self, reason: str, expanded: int, detail: Optional[str] = None) -> None:
        self.reason = reason
        self.expanded = expanded
        message = f"Search truncated ({reason}) after expanding {expanded} nodes"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
