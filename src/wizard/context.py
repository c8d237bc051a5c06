"""Wizard session context and request cancellation."""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Optional, TypeVar

from pydantic import BaseModel, Field

from .errors import RequestCancelledError
from .models import Direction

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WizardPhase(str, Enum):
    """Furthest step the wizard session has reached."""

    INITIALIZED = "initialized"
    CONFIGURING = "configuring"
    COLUMNS_DISCOVERED = "columns_discovered"
    PREVIEWED = "previewed"
    EXECUTING = "executing"
    COMPLETE = "complete"
    FAILED = "failed"


class WizardContext(BaseModel):
    """Bookkeeping for one wizard session: phase history and errors."""

    # Identification
    session_id: str = Field(
        default_factory=lambda: datetime.now().strftime("%Y%m%d_%H%M%S")
    )
    started_at: datetime = Field(default_factory=datetime.now)

    direction: Optional[Direction] = None

    # Phase tracking
    current_phase: WizardPhase = WizardPhase.INITIALIZED
    phase_history: list[dict[str, Any]] = Field(default_factory=list)
    attempt_count: int = 0

    # Error tracking
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def transition_to(
        self, phase: WizardPhase, metadata: Optional[dict[str, Any]] = None
    ) -> None:
        """Record a phase transition."""
        if phase == self.current_phase:
            return
        self.phase_history.append(
            {
                "from_phase": self.current_phase.value,
                "to_phase": phase.value,
                "timestamp": datetime.now().isoformat(),
                "metadata": metadata or {},
            }
        )
        logger.debug(f"Wizard phase {self.current_phase.value} -> {phase.value}")
        self.current_phase = phase

    def get_duration(self) -> float:
        """Get total duration in seconds."""
        return (datetime.now() - self.started_at).total_seconds()

    def to_summary(self) -> dict[str, Any]:
        """Generate a summary of the wizard session."""
        return {
            "session_id": self.session_id,
            "direction": self.direction.value if self.direction else None,
            "started_at": self.started_at.isoformat(),
            "duration_seconds": self.get_duration(),
            "current_phase": self.current_phase.value,
            "attempt_count": self.attempt_count,
            "errors_count": len(self.errors),
            "warnings_count": len(self.warnings),
            "phase_transitions": len(self.phase_history),
        }


class CancellationToken:
    """
    Scope shared by every remote call issued under one direction session.

    Cancelling the token cancels the calls still in flight and makes any
    response that slips through raise ``RequestCancelledError`` instead of
    reaching the store.
    """

    def __init__(self, direction: Optional[Direction] = None):
        self.direction = direction
        self._cancelled = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.info(f"Cancelled {len(pending)} in-flight request(s)")

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelledError("Wizard session was reset")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` as a task owned by this token."""
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RequestCancelledError("Wizard session was reset")

        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        try:
            result = await task
        except asyncio.CancelledError:
            if self._cancelled:
                raise RequestCancelledError("Wizard session was reset") from None
            raise
        finally:
            self._tasks.discard(task)

        self.raise_if_cancelled()
        return result
