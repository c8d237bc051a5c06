"""Schema discovery: connectivity test, table listing and column loading."""

import logging
from typing import Callable, Optional

from .context import CancellationToken
from .errors import (
    ConnectionFailedError,
    RequestCancelledError,
    SchemaFetchError,
    StepUnavailableError,
)
from .events import EventBus, EventType
from .models import Column, EndpointType, StatusMessage
from .store import ConfigurationStore
from .transfer import IntegrationService

logger = logging.getLogger(__name__)

CONNECTION_FAILED_MESSAGE = "Connection failed."
TABLES_FAILED_MESSAGE = "Error fetching tables."
TABLES_LOADED_MESSAGE = "Tables fetched successfully."
SCHEMA_FAILED_MESSAGE = "Failed to load columns."
NO_COLUMNS_MESSAGE = "No columns found."


class SchemaDiscovery:
    """
    Wizard-side wrapper around the discovery calls.

    Remote failures are converted into a ``StatusMessage`` here and go no
    further. The connectivity test and the table listing exclude each other:
    while one is in flight the other is unavailable.
    """

    def __init__(
        self,
        service: IntegrationService,
        store: ConfigurationStore,
        token_provider: Callable[[], CancellationToken],
        events: EventBus,
    ):
        self.service = service
        self.store = store
        self.token_provider = token_provider
        self.events = events

        self.tables: list[str] = []
        self.status: Optional[StatusMessage] = None
        self.testing_connection = False
        self.loading_tables = False
        self.loading_columns = False

    @property
    def busy(self) -> bool:
        return self.testing_connection or self.loading_tables

    def reset(self) -> None:
        self.tables = []
        self.status = None

    def _require_idle(self, action: str) -> None:
        if self.busy:
            raise StepUnavailableError(f"Cannot {action} while another connection request is running")

    async def test_connection(self) -> Optional[StatusMessage]:
        """Check the ClickHouse settings; returns None if the session was reset meanwhile."""
        self._require_idle("test the connection")
        snapshot = self.store.snapshot()
        if snapshot.clickhouse_config is None:
            raise StepUnavailableError("ClickHouse connection is not configured")

        token = self.token_provider()
        self.status = None
        self.tables = []
        self.testing_connection = True
        try:
            message = await token.run(self.service.test_connection(snapshot.clickhouse_config))
            self.status = StatusMessage.success(message)
        except ConnectionFailedError as e:
            # Server detail is logged but not shown
            logger.warning(f"Connection test failed: {e.server_message or e}")
            self.status = StatusMessage.error(CONNECTION_FAILED_MESSAGE)
        except RequestCancelledError:
            logger.info("Discarding connection test result from a reset session")
            return None
        finally:
            self.testing_connection = False

        return self.status

    async def list_tables(self) -> Optional[StatusMessage]:
        """Reload the table list of the ClickHouse source."""
        self._require_idle("load tables")
        snapshot = self.store.snapshot()
        if snapshot.clickhouse_config is None:
            raise StepUnavailableError("ClickHouse connection is not configured")

        token = self.token_provider()
        # Cleared before the call so a slow response never lands on stale data
        self.tables = []
        self.status = None
        self.loading_tables = True
        try:
            tables = await token.run(self.service.list_tables(snapshot.clickhouse_config))
        except ConnectionFailedError as e:
            logger.warning(f"Listing tables failed: {e.server_message or e}")
            self.status = StatusMessage.error(TABLES_FAILED_MESSAGE)
            return self.status
        except RequestCancelledError:
            logger.info("Discarding table list from a reset session")
            return None
        finally:
            self.loading_tables = False

        self.tables = tables
        self.status = StatusMessage.success(TABLES_LOADED_MESSAGE)
        self.events.emit(EventType.TABLES_LOADED, "discovery", {"tables": list(tables)})
        return self.status

    async def fetch_schema(self) -> Optional[list[Column]]:
        """
        Fetch the source's columns.

        Returns the columns on success, or None when the call failed (see
        ``status``) or belonged to a session that has since been reset.
        """
        snapshot = self.store.snapshot()
        if snapshot.direction is None:
            raise StepUnavailableError("Choose a direction first")

        token = self.token_provider()
        self.status = None
        self.loading_columns = True
        try:
            if snapshot.direction.source == EndpointType.CLICKHOUSE:
                if snapshot.clickhouse_config is None or not snapshot.table_name:
                    raise StepUnavailableError("Select a ClickHouse table first")
                columns = await token.run(
                    self.service.fetch_clickhouse_schema(
                        snapshot.clickhouse_config, snapshot.table_name
                    )
                )
            else:
                file_config = snapshot.flat_file_config
                if file_config is None or (not file_config.file_name and snapshot.upload is None):
                    raise StepUnavailableError("Provide a file path, URL or upload first")
                columns = await token.run(
                    self.service.fetch_file_schema(file_config, snapshot.upload)
                )
        except SchemaFetchError as e:
            logger.warning(f"Schema discovery failed: {e.server_message or e}")
            self.status = StatusMessage.error(e.server_message or SCHEMA_FAILED_MESSAGE)
            return None
        except RequestCancelledError:
            logger.info("Discarding schema from a reset session")
            return None
        finally:
            self.loading_columns = False

        if not columns:
            self.status = StatusMessage.warning(NO_COLUMNS_MESSAGE)
        else:
            self.status = StatusMessage.success(f"Loaded {len(columns)} columns.")
        return columns
