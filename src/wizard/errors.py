"""Error types raised by the ingestion wizard and its remote client."""

from typing import Optional


class IngestionWizardError(Exception):
    """Base class for wizard errors."""


class StepUnavailableError(IngestionWizardError):
    """Raised when an operation is invoked while its step is gated off."""


class RequestCancelledError(IngestionWizardError):
    """Raised when a response arrives for a session that has been reset."""


class RemoteCallError(IngestionWizardError):
    """A remote call failed at the transport level or with an error status."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        server_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        self.server_message = server_message


class ConnectionFailedError(RemoteCallError):
    """Connectivity test or table listing failed."""


class SchemaFetchError(RemoteCallError):
    """Schema discovery failed."""


class PreviewError(RemoteCallError):
    """Row preview failed."""


class ExecutionError(RemoteCallError):
    """The transfer request failed."""
