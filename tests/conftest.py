"""Shared fixtures: an in-memory integration service and wizard factories."""

import asyncio
from typing import Any, Optional

import pytest
from pydantic import SecretStr

from src.wizard import (
    Column,
    ConnectionConfig,
    Direction,
    ExportPayload,
    FileConfig,
    ImportReceipt,
    IngestionWizard,
    TransferRequest,
    UploadedFile,
    WizardSettings,
)

CLICKHOUSE = ConnectionConfig(
    host="ch.local",
    port=8443,
    database="analytics",
    user="reader",
    jwt_token=SecretStr("header.payload.signature"),
    secure=True,
)

EVENT_COLUMNS = [
    Column(name="id", type="UInt64", position=0),
    Column(name="ts", type="DateTime", position=1),
    Column(name="user_id", type="UInt32", position=2),
    Column(name="payload", type="String", position=3),
    Column(name="country", type="LowCardinality(String)", position=4),
]


class FakeService:
    """
    Scriptable stand-in for the integration service.

    ``errors[name]`` is raised by the named call and ``gates[name]`` (an
    ``asyncio.Event`` created inside the running loop) holds it until set.
    """

    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        self.errors: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}

        self.connection_message = "Connection successful"
        self.tables = ["events", "users"]
        self.schema = list(EVENT_COLUMNS)
        self.preview_rows: list[dict[str, Any]] = [
            {"id": 1, "ts": "2024-01-01 00:00:00", "user_id": 7, "country": "NL"},
            {"id": 2, "ts": "2024-01-01 00:00:05", "user_id": 9, "country": "DE"},
        ]
        self.export_response = ExportPayload(content=b"id,ts\n1,2024\n", record_count=1200)
        self.import_response = ImportReceipt(record_count=340)

    def calls_to(self, name: str) -> list[tuple]:
        return [args for call, args in self.calls if call == name]

    async def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        error = self.errors.get(name)
        if error is not None:
            raise error

    async def health_check(self) -> str:
        await self._call("health_check")
        return "OK"

    async def test_connection(self, config: ConnectionConfig) -> str:
        await self._call("test_connection", config)
        return self.connection_message

    async def list_tables(self, config: ConnectionConfig) -> list[str]:
        await self._call("list_tables", config)
        return list(self.tables)

    async def fetch_clickhouse_schema(self, config: ConnectionConfig, table_name: str) -> list[Column]:
        await self._call("fetch_clickhouse_schema", config, table_name)
        return [col.model_copy() for col in self.schema]

    async def fetch_file_schema(
        self, config: FileConfig, upload: Optional[UploadedFile] = None
    ) -> list[Column]:
        await self._call("fetch_file_schema", config, upload)
        return [col.model_copy() for col in self.schema]

    async def preview_clickhouse(self, request: TransferRequest) -> list[dict[str, Any]]:
        await self._call("preview_clickhouse", request)
        return list(self.preview_rows)

    async def preview_file(
        self, request: TransferRequest, upload: Optional[UploadedFile] = None
    ) -> list[dict[str, Any]]:
        await self._call("preview_file", request, upload)
        return list(self.preview_rows)

    async def execute(
        self,
        direction: Direction,
        request: TransferRequest,
        upload: Optional[UploadedFile] = None,
    ):
        await self._call("execute", direction, request, upload)
        if direction == Direction.EXPORT:
            return self.export_response
        return self.import_response


async def configure_export(wizard: IngestionWizard, table: Optional[str] = "events") -> None:
    """Choose export, configure both ends and discover the columns."""
    wizard.choose_direction(Direction.EXPORT)
    wizard.configure_clickhouse(CLICKHOUSE)
    wizard.configure_file(FileConfig())
    if table:
        wizard.select_table(table)
    await wizard.load_columns()


async def configure_import(wizard: IngestionWizard, target: str = "events_copy") -> None:
    """Choose import from an uploaded file and discover the columns."""
    wizard.choose_direction(Direction.IMPORT)
    wizard.configure_clickhouse(CLICKHOUSE)
    wizard.configure_file(
        FileConfig(delimiter=";"),
        UploadedFile(filename="events.csv", content=b"id;ts\n1;2024\n"),
    )
    wizard.set_target_table(target)
    await wizard.load_columns()


@pytest.fixture
def service() -> FakeService:
    return FakeService()


@pytest.fixture
def settings(tmp_path) -> WizardSettings:
    return WizardSettings(
        api_base_url="http://integration.test/api/integration",
        download_dir=str(tmp_path / "downloads"),
        progress_interval_seconds=0.001,
        progress_step=5,
        progress_ceiling=90,
    )


@pytest.fixture
def wizard(service, settings) -> IngestionWizard:
    return IngestionWizard(service, settings)


@pytest.fixture
def export_session():
    return configure_export


@pytest.fixture
def import_session():
    return configure_import
