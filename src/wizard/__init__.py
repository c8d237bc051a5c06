"""ClickHouse / flat file ingestion wizard."""

from .models import (
    Column,
    ConnectionConfig,
    Direction,
    EndpointType,
    ExecutionResult,
    FileConfig,
    PreviewResult,
    PreviewState,
    StatusLevel,
    StatusMessage,
    UploadedFile,
)
from .errors import (
    ConnectionFailedError,
    ExecutionError,
    IngestionWizardError,
    PreviewError,
    RemoteCallError,
    RequestCancelledError,
    SchemaFetchError,
    StepUnavailableError,
)
from .settings import WizardSettings
from .store import ConfigSnapshot, ConfigurationStore, StoreKey
from .context import CancellationToken, WizardContext, WizardPhase
from .events import Event, EventBus, EventType
from .columns import ColumnSelectionManager
from .gates import StepAvailability, evaluate_gates
from .transfer import (
    DirectorySink,
    ExportPayload,
    ImportReceipt,
    IntegrationService,
    TransferRequest,
)
from .discovery import SchemaDiscovery
from .preview import PreviewFetcher
from .executor import ExecutionState, IngestionExecutor, ProgressTicker
from .orchestrator import IngestionWizard

__all__ = [
    # Models
    "Column",
    "ConnectionConfig",
    "Direction",
    "EndpointType",
    "ExecutionResult",
    "FileConfig",
    "PreviewResult",
    "PreviewState",
    "StatusLevel",
    "StatusMessage",
    "UploadedFile",
    # Errors
    "ConnectionFailedError",
    "ExecutionError",
    "IngestionWizardError",
    "PreviewError",
    "RemoteCallError",
    "RequestCancelledError",
    "SchemaFetchError",
    "StepUnavailableError",
    # Session
    "WizardSettings",
    "ConfigSnapshot",
    "ConfigurationStore",
    "StoreKey",
    "CancellationToken",
    "WizardContext",
    "WizardPhase",
    "Event",
    "EventBus",
    "EventType",
    # Steps
    "ColumnSelectionManager",
    "StepAvailability",
    "evaluate_gates",
    "DirectorySink",
    "ExportPayload",
    "ImportReceipt",
    "IntegrationService",
    "TransferRequest",
    "SchemaDiscovery",
    "PreviewFetcher",
    "ExecutionState",
    "IngestionExecutor",
    "ProgressTicker",
    # Orchestrator
    "IngestionWizard",
]
