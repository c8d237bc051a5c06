"""Ingestion executor - state machine around the single transfer request."""

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Callable, Optional

from .context import CancellationToken
from .errors import ExecutionError, RequestCancelledError, StepUnavailableError
from .events import EventBus, EventType
from .models import ExecutionResult, StatusMessage
from .settings import WizardSettings
from .store import ConfigurationStore
from .transfer import DownloadSink, IntegrationService, TransferRequest

logger = logging.getLogger(__name__)

EXECUTION_FAILED_MESSAGE = "Ingestion failed."


class ExecutionState(str, Enum):
    """States of the transfer."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProgressTicker:
    """
    Advances a simulated progress value on a fixed timer.

    The service answers once, with no intermediate events, so the value only
    creeps towards ``ceiling``. Reaching 100 is left to whoever observes the
    response.
    """

    def __init__(
        self,
        interval: float,
        step: int,
        ceiling: int,
        on_tick: Callable[[int], None],
    ):
        if ceiling >= 100:
            raise ValueError("Progress ceiling must stay below 100")
        self.interval = interval
        self.step = step
        self.ceiling = ceiling
        self.on_tick = on_tick
        self.value = 0

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.value < self.ceiling:
                self.value = min(self.ceiling, self.value + self.step)
                self.on_tick(self.value)


class IngestionExecutor:
    """
    Runs the transfer.

    States: IDLE -> RUNNING -> {SUCCEEDED, FAILED}; ``start()`` from either
    terminal state runs the whole cycle again against the current store.
    There is no automatic retry.
    """

    def __init__(
        self,
        service: IntegrationService,
        store: ConfigurationStore,
        sink: DownloadSink,
        token_provider: Callable[[], CancellationToken],
        events: EventBus,
        settings: Optional[WizardSettings] = None,
    ):
        self.service = service
        self.store = store
        self.sink = sink
        self.token_provider = token_provider
        self.events = events
        self.settings = settings or WizardSettings()

        self.state = ExecutionState.IDLE
        self.progress: Optional[int] = None
        self.status: Optional[StatusMessage] = None
        self.result: Optional[ExecutionResult] = None

    def reset(self) -> None:
        self.state = ExecutionState.IDLE
        self.progress = None
        self.status = None
        self.result = None

    def _set_progress(self, value: Optional[int]) -> None:
        self.progress = value
        self.events.emit(EventType.EXECUTION_PROGRESS, "executor", {"progress": value})

    async def start(self) -> Optional[ExecutionResult]:
        """
        Perform the transfer.

        Returns:
            The result on success; None on failure (see ``status``) or when
            the session was reset while the request was in flight.
        """
        if self.state == ExecutionState.RUNNING:
            raise StepUnavailableError("An ingestion is already running")

        # Read lazily so edits made after a failed attempt are picked up
        snapshot = self.store.snapshot()
        if snapshot.direction is None:
            raise StepUnavailableError("Choose a direction first")
        request = TransferRequest.for_execution(snapshot)
        token = self.token_provider()

        self.status = None
        self.result = None
        self.state = ExecutionState.RUNNING
        self._set_progress(0)
        self.events.emit(
            EventType.EXECUTION_STARTED,
            "executor",
            {"direction": snapshot.direction.value},
        )
        logger.info(f"Starting {snapshot.direction.value} ingestion")

        def on_tick(value: int) -> None:
            if not token.cancelled:
                self._set_progress(value)

        ticker = ProgressTicker(
            interval=self.settings.progress_interval_seconds,
            step=self.settings.progress_step,
            ceiling=self.settings.progress_ceiling,
            on_tick=on_tick,
        )
        ticker_task = asyncio.create_task(ticker.run())
        try:
            response = await token.run(
                self.service.execute(snapshot.direction, request, snapshot.upload)
            )
        except ExecutionError as e:
            self._fail(e.server_message)
            return None
        except RequestCancelledError:
            logger.info("Discarding ingestion result from a reset session")
            return None
        except Exception:
            self._fail(None)
            raise
        finally:
            ticker_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker_task

        try:
            result = response.finalize(snapshot, self.sink)
        except OSError as e:
            logger.error(f"Could not save exported file: {e}")
            self._fail(f"Could not save exported file: {e}")
            return None

        self.result = result
        self.state = ExecutionState.SUCCEEDED
        self._set_progress(100)
        records = result.total_records if result.total_records is not None else "unknown"
        self.status = StatusMessage.success(
            f"Ingestion completed. Total records processed: {records}"
        )
        logger.info(f"Ingestion succeeded: {records} records")
        self.events.emit(
            EventType.EXECUTION_SUCCEEDED,
            "executor",
            {
                "direction": result.direction.value,
                "total_records": result.total_records,
                "saved_path": str(result.saved_path) if result.saved_path else None,
            },
        )
        return result

    def _fail(self, server_message: Optional[str]) -> None:
        self.state = ExecutionState.FAILED
        self._set_progress(None)
        self.status = StatusMessage.error(server_message or EXECUTION_FAILED_MESSAGE)
        logger.error(f"Ingestion failed: {self.status.text}")
        self.events.emit(EventType.EXECUTION_FAILED, "executor", {"message": self.status.text})
