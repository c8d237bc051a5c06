"""Request payloads and response variants exchanged with the integration service."""

import logging
from pathlib import Path
from typing import Any, Optional, Protocol, Union

from pydantic import BaseModel, Field

from .models import (
    Column,
    ConnectionConfig,
    Direction,
    EndpointType,
    ExecutionResult,
    FileConfig,
    UploadedFile,
)
from .store import ConfigSnapshot

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_STEM = "data"


class TransferRequest(BaseModel):
    """Body of the preview and execute calls (``ingestionRequest`` on the wire)."""

    source_type: Optional[EndpointType] = None
    target_type: Optional[EndpointType] = None
    clickhouse_config: Optional[ConnectionConfig] = None
    flat_file_config: Optional[FileConfig] = None
    table_name: Optional[str] = None
    additional_tables: list[str] = Field(default_factory=list)
    join_condition: Optional[str] = None
    selected_columns: list[Column] = Field(default_factory=list)
    target_table_name: Optional[str] = None

    @classmethod
    def for_preview(cls, snapshot: ConfigSnapshot, columns: list[Column]) -> "TransferRequest":
        """Only the fields the preview endpoint of the source reads."""
        if snapshot.direction is None:
            raise ValueError("No direction chosen")
        if snapshot.direction.source == EndpointType.CLICKHOUSE:
            return cls(
                clickhouse_config=snapshot.clickhouse_config,
                table_name=snapshot.table_name,
                additional_tables=snapshot.additional_tables if snapshot.has_join else [],
                join_condition=snapshot.join_condition if snapshot.has_join else None,
                selected_columns=columns,
            )
        return cls(flat_file_config=snapshot.flat_file_config, selected_columns=columns)

    @classmethod
    def for_execution(cls, snapshot: ConfigSnapshot) -> "TransferRequest":
        """Everything the execute endpoint needs, read from ``snapshot``."""
        if snapshot.direction is None:
            raise ValueError("No direction chosen")
        return cls(
            source_type=snapshot.direction.source,
            target_type=snapshot.direction.target,
            clickhouse_config=snapshot.clickhouse_config,
            flat_file_config=snapshot.flat_file_config,
            table_name=snapshot.table_name,
            additional_tables=snapshot.additional_tables if snapshot.has_join else [],
            join_condition=snapshot.join_condition if snapshot.has_join else None,
            selected_columns=snapshot.selected_columns,
            target_table_name=snapshot.target_table_name,
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize with the service's field names, omitting unset values."""
        payload: dict[str, Any] = {
            "sourceType": self.source_type.value if self.source_type else None,
            "targetType": self.target_type.value if self.target_type else None,
            "clickHouseConfig": (
                self.clickhouse_config.to_payload() if self.clickhouse_config else None
            ),
            "flatFileConfig": (
                self.flat_file_config.to_payload() if self.flat_file_config else None
            ),
            "tableName": self.table_name,
            "additionalTables": self.additional_tables or None,
            "joinCondition": self.join_condition,
            "selectedColumns": [col.to_payload() for col in self.selected_columns],
            "targetTableName": self.target_table_name,
        }
        return {key: value for key, value in payload.items() if value is not None}


class DownloadSink(Protocol):
    """Persists an exported payload locally."""

    def save(self, filename: str, content: bytes) -> Path: ...


class DirectorySink:
    """Writes exported payloads into a directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def save(self, filename: str, content: bytes) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        # Never write outside the download directory
        safe_name = Path(filename).name
        if safe_name in ("", ".", ".."):
            safe_name = f"{DEFAULT_EXPORT_STEM}.csv"
        path = self.directory / safe_name
        path.write_bytes(content)
        logger.info(f"Saved export to {path}")
        return path


class ExportPayload(BaseModel):
    """Export response: file contents, with the record count from a header."""

    content: bytes
    record_count: Optional[int] = None

    def __repr__(self) -> str:
        return f"ExportPayload(size={len(self.content)}, record_count={self.record_count})"

    def finalize(self, snapshot: ConfigSnapshot, sink: DownloadSink) -> ExecutionResult:
        stem = snapshot.table_name or DEFAULT_EXPORT_STEM
        saved_path = sink.save(f"{stem}.csv", self.content)
        return ExecutionResult(
            direction=Direction.EXPORT,
            total_records=self.record_count,
            payload=self.content,
            saved_path=saved_path,
        )


class ImportReceipt(BaseModel):
    """Import response: the number of rows written to ClickHouse."""

    record_count: int

    def finalize(self, snapshot: ConfigSnapshot, sink: DownloadSink) -> ExecutionResult:
        return ExecutionResult(direction=Direction.IMPORT, total_records=self.record_count)


TransferResponse = Union[ExportPayload, ImportReceipt]


class IntegrationService(Protocol):
    """The remote calls the wizard depends on."""

    async def health_check(self) -> str: ...

    async def test_connection(self, config: ConnectionConfig) -> str: ...

    async def list_tables(self, config: ConnectionConfig) -> list[str]: ...

    async def fetch_clickhouse_schema(
        self, config: ConnectionConfig, table_name: str
    ) -> list[Column]: ...

    async def fetch_file_schema(
        self, config: FileConfig, upload: Optional[UploadedFile] = None
    ) -> list[Column]: ...

    async def preview_clickhouse(self, request: TransferRequest) -> list[dict[str, Any]]: ...

    async def preview_file(
        self, request: TransferRequest, upload: Optional[UploadedFile] = None
    ) -> list[dict[str, Any]]: ...

    async def execute(
        self,
        direction: Direction,
        request: TransferRequest,
        upload: Optional[UploadedFile] = None,
    ) -> TransferResponse: ...
