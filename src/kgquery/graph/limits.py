from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Optional

from .errors import SearchTruncatedError


@dataclass(slots=True, frozen=True)
class SearchLimits:
    """Bounds applied to one search call.

    max_expansions caps the number of nodes whose neighbors are fetched.
    deadline is an absolute time.monotonic() value. cancel_event lets another
    thread stop the search between iterations.
    """
    max_expansions: Optional[int] = None
    deadline: Optional[float] = None
    cancel_event: Optional[threading.Event] = None

    @classmethod
    def from_timeout(
        cls,
        max_expansions: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> "SearchLimits":
        deadline = time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        return cls(max_expansions=max_expansions, deadline=deadline, cancel_event=cancel_event)

    def check(self, expanded: int) -> None:
        """Raise SearchTruncatedError when any bound has been reached.

        Called once per iteration of a search loop, before the next expansion.
        """
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise SearchTruncatedError("cancelled", expanded)
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise SearchTruncatedError("deadline", expanded)
        if self.max_expansions is not None and expanded >= self.max_expansions:
            raise SearchTruncatedError(
                "max_expansions", expanded, f"limit is {self.max_expansions}"
            )


UNLIMITED = SearchLimits()
