"""HTTP client for the ClickHouse / flat file integration service using aiohttp."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import urlparse, urlunparse

import aiohttp

from src.wizard.errors import (
    ConnectionFailedError,
    ExecutionError,
    PreviewError,
    RemoteCallError,
    SchemaFetchError,
)
from src.wizard.models import (
    Column,
    ConnectionConfig,
    Direction,
    FileConfig,
    UploadedFile,
)
from src.wizard.settings import WizardSettings
from src.wizard.transfer import (
    ExportPayload,
    ImportReceipt,
    TransferRequest,
    TransferResponse,
)

logger = logging.getLogger(__name__)

RECORD_COUNT_HEADER = "X-Record-Count"


@dataclass
class RawResponse:
    """A fully read HTTP response."""

    status: int
    headers: dict[str, str]
    body: bytes
    content_type: str

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


def extract_server_message(body: bytes) -> Optional[str]:
    """
    Pull a human-readable message out of an error body.

    Accepts ``{"message": ...}`` / ``{"error": ...}`` JSON, a JSON string, or
    plain text. Anything else (empty body, other shapes) yields None so the
    caller can fall back to its own wording.
    """
    text = body.decode("utf-8", errors="replace").strip()
    if not text:
        return None

    try:
        parsed = json.loads(text)
    except ValueError:
        return text

    if isinstance(parsed, dict):
        for key in ("message", "error", "detail"):
            value = parsed.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    if isinstance(parsed, str) and parsed.strip():
        return parsed.strip()

    return None


def parse_columns(raw_columns: Any) -> list[Column]:
    """Build columns in discovery order from ``{name, type}`` objects or bare names."""
    columns = []
    for position, raw in enumerate(raw_columns or []):
        if isinstance(raw, str):
            columns.append(Column(name=raw, position=position))
        elif isinstance(raw, dict) and raw.get("name"):
            columns.append(
                Column(name=str(raw["name"]), type=raw.get("type") or None, position=position)
            )
        else:
            logger.warning(f"Skipping malformed column entry at position {position}: {raw!r}")
    return columns


def parse_record_count(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        logger.warning(f"Ignoring non-numeric {RECORD_COUNT_HEADER} header: {value!r}")
        return None


class IntegrationClient:
    """
    Async client for the integration service.

    Each call raises the error kind of its step (``ConnectionFailedError``,
    ``SchemaFetchError``, ``PreviewError``, ``ExecutionError``) carrying the
    server's message when one could be read from the body.
    """

    def __init__(self, settings: Optional[WizardSettings] = None):
        self.settings = settings or WizardSettings()
        self._base_url = self.settings.api_base_url.rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _service_root(self) -> str:
        parsed = urlparse(self._base_url)
        return urlunparse((parsed.scheme, parsed.netloc, "", "", "", ""))

    async def _request(
        self,
        method: str,
        url: str,
        error_cls: type[RemoteCallError],
        **kwargs: Any,
    ) -> RawResponse:
        """Send a request and read the whole response, raising ``error_cls`` on failure."""
        logger.debug(f"{method} {url}")
        timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, **kwargs) as response:
                    body = await response.read()
                    raw = RawResponse(
                        status=response.status,
                        headers=dict(response.headers),
                        body=body,
                        content_type=response.content_type,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"{method} {url} failed: {e!r}")
            raise error_cls(f"Request to {url} failed: {e!r}") from e

        if raw.status >= 400:
            server_message = extract_server_message(raw.body)
            logger.warning(f"{method} {url} returned HTTP {raw.status}: {server_message}")
            raise error_cls(
                f"HTTP {raw.status} from {url}",
                status=raw.status,
                server_message=server_message,
            )

        return raw

    async def _json(
        self,
        method: str,
        url: str,
        error_cls: type[RemoteCallError],
        **kwargs: Any,
    ) -> Any:
        raw = await self._request(method, url, error_cls, **kwargs)
        try:
            return raw.json()
        except ValueError as e:
            raise error_cls(f"Malformed JSON response from {url}") from e

    @staticmethod
    def _form(part_name: str, payload: dict[str, Any], upload: Optional[UploadedFile]) -> aiohttp.FormData:
        form = aiohttp.FormData()
        form.add_field(part_name, json.dumps(payload), content_type="application/json")
        if upload is not None:
            form.add_field(
                "file",
                upload.content,
                filename=upload.filename,
                content_type=upload.content_type,
            )
        return form

    async def health_check(self) -> str:
        """Check that the service is up."""
        raw = await self._request(
            "GET", f"{self._service_root()}/health", ConnectionFailedError
        )
        return raw.body.decode("utf-8", errors="replace").strip()

    async def test_connection(self, config: ConnectionConfig) -> str:
        data = await self._json(
            "POST",
            self._url("clickhouse/test-connection"),
            ConnectionFailedError,
            json=config.to_payload(),
        )
        if isinstance(data, dict) and isinstance(data.get("message"), str):
            return data["message"]
        return "Connection successful"

    async def list_tables(self, config: ConnectionConfig) -> list[str]:
        data = await self._json(
            "POST",
            self._url("clickhouse/tables"),
            ConnectionFailedError,
            json=config.to_payload(),
        )
        tables = data.get("tables") if isinstance(data, dict) else None
        return [str(table) for table in tables or []]

    async def fetch_clickhouse_schema(
        self, config: ConnectionConfig, table_name: str
    ) -> list[Column]:
        data = await self._json(
            "POST",
            self._url("clickhouse/schema"),
            SchemaFetchError,
            params={"tableName": table_name},
            json=config.to_payload(),
        )
        return parse_columns(data.get("columns") if isinstance(data, dict) else None)

    async def fetch_file_schema(
        self, config: FileConfig, upload: Optional[UploadedFile] = None
    ) -> list[Column]:
        data = await self._json(
            "POST",
            self._url("flatfile/schema"),
            SchemaFetchError,
            data=self._form("flatFileConfig", config.to_payload(), upload),
        )
        return parse_columns(data.get("columns") if isinstance(data, dict) else None)

    async def preview_clickhouse(self, request: TransferRequest) -> list[dict[str, Any]]:
        data = await self._json(
            "POST",
            self._url("clickhouse/preview"),
            PreviewError,
            json=request.to_payload(),
        )
        return self._rows(data)

    async def preview_file(
        self, request: TransferRequest, upload: Optional[UploadedFile] = None
    ) -> list[dict[str, Any]]:
        data = await self._json(
            "POST",
            self._url("flatfile/preview"),
            PreviewError,
            data=self._form("ingestionRequest", request.to_payload(), upload),
        )
        return self._rows(data)

    @staticmethod
    def _rows(data: Any) -> list[dict[str, Any]]:
        if not isinstance(data, dict):
            raise PreviewError("Preview response is not a JSON object")
        rows = data.get("data") or []
        if not isinstance(rows, list):
            raise PreviewError("Preview response 'data' is not a list")
        if not all(isinstance(row, dict) for row in rows):
            raise PreviewError("Preview response rows must be JSON objects")
        return rows

    async def execute(
        self,
        direction: Direction,
        request: TransferRequest,
        upload: Optional[UploadedFile] = None,
    ) -> TransferResponse:
        """Run the transfer; the response shape depends on ``direction``."""
        raw = await self._request(
            "POST",
            self._url("execute"),
            ExecutionError,
            data=self._form("ingestionRequest", request.to_payload(), upload),
        )
        readers: dict[Direction, Callable[[RawResponse], TransferResponse]] = {
            Direction.EXPORT: self._read_export,
            Direction.IMPORT: self._read_import,
        }
        return readers[Direction(direction)](raw)

    @staticmethod
    def _read_export(raw: RawResponse) -> ExportPayload:
        header = next(
            (value for key, value in raw.headers.items() if key.lower() == RECORD_COUNT_HEADER.lower()),
            None,
        )
        record_count = parse_record_count(header)
        if record_count is None:
            logger.warning(f"Export response has no usable {RECORD_COUNT_HEADER} header")
        return ExportPayload(content=raw.body, record_count=record_count)

    @staticmethod
    def _read_import(raw: RawResponse) -> ImportReceipt:
        try:
            data = raw.json()
        except ValueError as e:
            raise ExecutionError("Import response is not valid JSON") from e

        # The service answers with a bare integer; {"count": n} is accepted too
        count = data.get("count") if isinstance(data, dict) else data
        if isinstance(count, bool) or not isinstance(count, int):
            raise ExecutionError(f"Import response has no record count: {data!r}")
        return ImportReceipt(record_count=count)
