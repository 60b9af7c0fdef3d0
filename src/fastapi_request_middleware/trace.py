"""ChainTrace and TraceEntry — debug execution recording."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class HandlerState(Enum):
    """Lifecycle of one chain position during a request."""

    PENDING = "pending"
    RUNNING = "running"
    DELEGATED = "delegated"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (HandlerState.DONE, HandlerState.FAILED)


@dataclass(frozen=True)
class TraceEntry:
    """Single handler execution record.

    ``duration_ms`` includes the time spent inside ``next()``.
    """

    handler_name: str
    position: int
    duration_ms: float
    outcome: Literal["DONE", "FAILED"]
    delegated: bool = False
    reason: str | None = None


@dataclass
class ChainTrace:
    """Structured record of one dispatched request.

    Entries are appended as positions settle, so the innermost handler
    comes first.
    """

    entries: list[TraceEntry] = field(default_factory=list)
    states: list[HandlerState] = field(default_factory=list)
    rendered: bool = False
    total_duration_ms: float = 0.0
    outcome: Literal["OK", "SHORT_CIRCUITED", "ERROR"] = "OK"
    error: BaseException | None = None
