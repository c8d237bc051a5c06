"""Preview fetcher: a bounded sample of the source rows for the current selection."""

import logging
from typing import Callable, Optional

from .columns import ColumnSelectionManager
from .context import CancellationToken
from .errors import PreviewError, RequestCancelledError, StepUnavailableError
from .events import EventBus, EventType
from .models import (
    PREVIEW_DISPLAY_LIMIT,
    EndpointType,
    PreviewResult,
    PreviewState,
    StatusMessage,
)
from .store import ConfigurationStore
from .transfer import IntegrationService, TransferRequest

logger = logging.getLogger(__name__)

EMPTY_PREVIEW_MESSAGE = "No rows available for preview."
PREVIEW_FAILED_MESSAGE = "Failed to fetch preview data."


class PreviewFetcher:
    """Builds the preview request from the store at call time and records the outcome."""

    def __init__(
        self,
        service: IntegrationService,
        store: ConfigurationStore,
        columns: ColumnSelectionManager,
        token_provider: Callable[[], CancellationToken],
        events: EventBus,
        on_state_change: Optional[Callable[[PreviewState], None]] = None,
        display_limit: int = PREVIEW_DISPLAY_LIMIT,
    ):
        self.service = service
        self.store = store
        self.columns = columns
        self.token_provider = token_provider
        self.events = events
        self.on_state_change = on_state_change
        self.display_limit = display_limit

        self.state = PreviewState.NOT_REQUESTED
        self.result: Optional[PreviewResult] = None
        self.status: Optional[StatusMessage] = None

    def reset(self) -> None:
        """Forget the last attempt without notifying."""
        self.state = PreviewState.NOT_REQUESTED
        self.result = None
        self.status = None

    def _set_state(self, state: PreviewState) -> None:
        self.state = state
        if self.on_state_change:
            self.on_state_change(state)

    async def fetch(self) -> PreviewState:
        snapshot = self.store.snapshot()
        if snapshot.direction is None:
            raise StepUnavailableError("Choose a direction first")

        selected = self.columns.selected
        if not selected:
            raise StepUnavailableError("Select at least one column to preview")

        request = TransferRequest.for_preview(snapshot, selected)
        token = self.token_provider()

        self.result = None
        self.status = None
        self._set_state(PreviewState.LOADING)
        self.events.emit(EventType.PREVIEW_STARTED, "preview", {"columns": len(selected)})

        try:
            if snapshot.direction.source == EndpointType.CLICKHOUSE:
                rows = await token.run(self.service.preview_clickhouse(request))
            else:
                rows = await token.run(self.service.preview_file(request, snapshot.upload))
        except PreviewError as e:
            logger.warning(f"Preview failed: {e.server_message or e}")
            self._fail(e.server_message)
            return self.state
        except RequestCancelledError:
            logger.info("Discarding preview rows from a reset session")
            return self.state
        except Exception:
            self._fail(None)
            raise

        if not rows:
            self.result = PreviewResult(columns=[col.name for col in selected])
            self.status = StatusMessage.warning(EMPTY_PREVIEW_MESSAGE)
            self._set_state(PreviewState.EMPTY)
        else:
            self.result = PreviewResult.from_rows(
                rows, [col.name for col in selected], limit=self.display_limit
            )
            self.status = StatusMessage.success(self.result.caption)
            self._set_state(PreviewState.ROWS)

        logger.info(f"Preview finished: {self.state.value} ({len(rows)} rows)")
        self.events.emit(
            EventType.PREVIEW_COMPLETED,
            "preview",
            {
                "state": self.state.value,
                "displayed": self.result.displayed_count,
                "total": self.result.total_count,
            },
        )
        return self.state

    def _fail(self, server_message: Optional[str]) -> None:
        self.status = StatusMessage.error(server_message or PREVIEW_FAILED_MESSAGE)
        self._set_state(PreviewState.FAILED)
        self.events.emit(EventType.PREVIEW_FAILED, "preview", {"message": self.status.text})
