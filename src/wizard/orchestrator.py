"""Orchestrator - gates the wizard steps and sequences the remote calls."""

import logging
from pathlib import Path
from typing import Optional

from .columns import ColumnSelectionManager
from .context import CancellationToken, WizardContext, WizardPhase
from .discovery import SchemaDiscovery
from .errors import StepUnavailableError
from .events import EventBus, EventType
from .executor import ExecutionState, IngestionExecutor
from .gates import StepAvailability, evaluate_gates
from .models import (
    Column,
    ConnectionConfig,
    Direction,
    EndpointType,
    ExecutionResult,
    FileConfig,
    PreviewState,
    StatusMessage,
    UploadedFile,
)
from .preview import PreviewFetcher
from .settings import WizardSettings
from .store import ConfigurationStore
from .transfer import DirectorySink, DownloadSink, IntegrationService

logger = logging.getLogger(__name__)


class IngestionWizard:
    """
    One wizard session.

    Flow:
    1. choose_direction: export (ClickHouse -> file) or import (file -> ClickHouse)
    2. configure the source (and test the connection / list tables for ClickHouse)
    3. load_columns: schema discovery for the source
    4. column selection through ``columns``
    5. preview
    6. configure the target
    7. start_ingestion

    The configuration store is the only channel between the steps. Gates are
    recomputed synchronously after every store mutation and every preview
    outcome; operations whose gate is closed raise ``StepUnavailableError``.
    """

    def __init__(
        self,
        service: IntegrationService,
        settings: Optional[WizardSettings] = None,
        sink: Optional[DownloadSink] = None,
        events: Optional[EventBus] = None,
        context: Optional[WizardContext] = None,
    ):
        self.settings = settings or WizardSettings()
        self.events = events or EventBus()
        self.context = context or WizardContext()
        self.store = ConfigurationStore()
        self._token = CancellationToken()
        self._gates = StepAvailability()

        self.columns = ColumnSelectionManager(self.store, on_change=self._on_selection_changed)
        self.discovery = SchemaDiscovery(service, self.store, self.current_token, self.events)
        self.preview = PreviewFetcher(
            service,
            self.store,
            self.columns,
            self.current_token,
            self.events,
            on_state_change=self._on_preview_state,
        )
        self.executor = IngestionExecutor(
            service,
            self.store,
            sink or DirectorySink(Path(self.settings.download_dir)),
            self.current_token,
            self.events,
            self.settings,
        )

        self.store.subscribe(self._on_store_changed)

    # Session state

    def current_token(self) -> CancellationToken:
        return self._token

    @property
    def direction(self) -> Optional[Direction]:
        return self.store.snapshot().direction

    @property
    def gates(self) -> StepAvailability:
        return self._gates

    def choose_direction(self, direction: Direction) -> None:
        """
        Activate ``direction``.

        A different direction cancels in-flight calls and clears discovered
        columns, preview results and every source/target setting in one
        store notification. Re-selecting the active direction does nothing.
        """
        direction = Direction(direction)
        if direction == self.direction:
            logger.debug(f"Direction {direction.value} already active")
            return

        self._token.cancel()
        self._token = CancellationToken(direction)

        self.discovery.reset()
        self.preview.reset()
        self.executor.reset()
        with self.store.batch():
            self.columns.clear()
            self.store.clear_session()
            self.store.set_direction(direction)

        self.context.direction = direction
        self.context.transition_to(WizardPhase.CONFIGURING, {"direction": direction.value})
        logger.info(f"Direction set to {direction.value}")
        self.events.emit(EventType.DIRECTION_CHANGED, "wizard", {"direction": direction.value})

    # Configuration

    def _require_direction(self) -> Direction:
        direction = self.direction
        if direction is None:
            raise StepUnavailableError("Choose a direction first")
        return direction

    def configure_clickhouse(self, config: ConnectionConfig) -> None:
        self._require_direction()
        self.store.configure_clickhouse(config)

    def configure_file(self, config: FileConfig, upload: Optional[UploadedFile] = None) -> None:
        """Set the flat file settings; an upload replaces any path/URL and vice versa."""
        self._require_direction()
        if upload is not None:
            self.store.use_uploaded_file(config, upload)
        else:
            self.store.use_file_reference(config)

    def select_table(self, table_name: str) -> None:
        self._require_direction()
        self.store.set_table_name(table_name)

    def set_target_table(self, table_name: str) -> None:
        self._require_direction()
        self.store.set_target_table_name(table_name)

    def configure_join(self, additional_tables: list[str], join_condition: str) -> None:
        direction = self._require_direction()
        if direction.source != EndpointType.CLICKHOUSE:
            raise StepUnavailableError("Joins are only available for a ClickHouse source")
        self.store.set_join(additional_tables, join_condition)

    # Discovery

    async def test_connection(self) -> Optional[StatusMessage]:
        self._require_direction()
        return await self.discovery.test_connection()

    async def list_tables(self) -> Optional[StatusMessage]:
        direction = self._require_direction()
        if direction.source != EndpointType.CLICKHOUSE:
            raise StepUnavailableError("Tables are only listed for a ClickHouse source")
        return await self.discovery.list_tables()

    async def load_columns(self) -> Optional[StatusMessage]:
        """Discover the source columns, replacing any previous list and preview."""
        self._require_direction()
        columns = await self.discovery.fetch_schema()
        if columns is None:
            return self.discovery.status

        self.preview.reset()
        with self.store.batch():
            self.columns.initialize(columns)

        if columns:
            self.context.transition_to(
                WizardPhase.COLUMNS_DISCOVERED, {"columns": len(columns)}
            )
        self.events.emit(
            EventType.COLUMNS_DISCOVERED,
            "wizard",
            {"columns": [col.name for col in columns]},
        )
        return self.discovery.status

    # Preview and execution

    async def fetch_preview(self) -> PreviewState:
        if not self._gates.preview:
            raise StepUnavailableError("Load columns before previewing")
        state = await self.preview.fetch()
        if state.completed:
            self.context.transition_to(WizardPhase.PREVIEWED, {"preview": state.value})
        elif state == PreviewState.FAILED and self.preview.status:
            self.context.warnings.append(self.preview.status.text)
        return state

    async def start_ingestion(self) -> Optional[ExecutionResult]:
        if not self._gates.execution:
            raise StepUnavailableError(
                "Configure source and target, select columns and preview before ingesting"
            )

        self.context.attempt_count += 1
        self.context.transition_to(WizardPhase.EXECUTING, {"attempt": self.context.attempt_count})
        result = await self.executor.start()

        if self.executor.state == ExecutionState.SUCCEEDED:
            self.context.transition_to(
                WizardPhase.COMPLETE, {"total_records": result.total_records}
            )
        elif self.executor.state == ExecutionState.FAILED:
            self.context.errors.append(self.executor.status.text)
            self.context.transition_to(WizardPhase.FAILED)
        return result

    # Gate bookkeeping

    def _refresh_gates(self) -> None:
        gates = evaluate_gates(self.store.snapshot(), len(self.columns), self.preview.state)
        if gates != self._gates:
            self._gates = gates
            logger.debug(f"Step availability: {gates.model_dump()}")
            self.events.emit(EventType.GATES_CHANGED, "wizard", gates.model_dump())

    def _on_store_changed(self, changed: frozenset) -> None:
        self.events.emit(
            EventType.STORE_UPDATED,
            "store",
            {"keys": sorted(key.value for key in changed)},
        )
        self._refresh_gates()

    def _on_preview_state(self, state: PreviewState) -> None:
        self._refresh_gates()

    def _on_selection_changed(self, columns: list[Column]) -> None:
        self.events.emit(
            EventType.SELECTION_CHANGED,
            "columns",
            {"selected": [col.name for col in columns if col.selected]},
        )
