"""Pydantic models for the ingestion wizard."""

import mimetypes
import os
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, SecretStr

# Rows shown to the user regardless of how many the server returns
PREVIEW_DISPLAY_LIMIT = 100


class EndpointType(str, Enum):
    """Systems that can sit at either end of a transfer."""

    CLICKHOUSE = "clickhouse"
    FLAT_FILE = "flatfile"


class Direction(str, Enum):
    """Transfer direction."""

    EXPORT = "export"  # ClickHouse -> flat file
    IMPORT = "import"  # flat file -> ClickHouse

    @property
    def source(self) -> EndpointType:
        if self is Direction.EXPORT:
            return EndpointType.CLICKHOUSE
        return EndpointType.FLAT_FILE

    @property
    def target(self) -> EndpointType:
        if self is Direction.EXPORT:
            return EndpointType.FLAT_FILE
        return EndpointType.CLICKHOUSE


class ConnectionConfig(BaseModel):
    """ClickHouse connection configuration."""

    host: str = ""
    port: int = 8123
    database: str = "default"
    user: str = "default"
    jwt_token: Optional[SecretStr] = None  # Use SecretStr to prevent accidental logging
    secure: bool = False

    def __repr__(self) -> str:
        """Safe repr that doesn't expose the token."""
        return (
            f"ConnectionConfig(host={self.host!r}, port={self.port}, "
            f"database={self.database!r}, user={self.user!r}, "
            f"secure={self.secure}, jwt_token=***)"
        )

    @classmethod
    def from_env(cls, prefix: str = "") -> "ConnectionConfig":
        """Create config from environment variables."""
        p = prefix.upper() + "_" if prefix else ""
        token = os.getenv(f"{p}CLICKHOUSE_JWT")
        return cls(
            host=os.getenv(f"{p}CLICKHOUSE_HOST", "localhost"),
            port=int(os.getenv(f"{p}CLICKHOUSE_PORT", "8123")),
            database=os.getenv(f"{p}CLICKHOUSE_DB", "default"),
            user=os.getenv(f"{p}CLICKHOUSE_USER", "default"),
            jwt_token=SecretStr(token) if token else None,
            secure=os.getenv(f"{p}CLICKHOUSE_SECURE", "false").lower() == "true",
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the request body understood by the service."""
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "jwtToken": self.jwt_token.get_secret_value() if self.jwt_token else "",
            "secure": self.secure,
        }


class FileConfig(BaseModel):
    """Flat file settings.

    ``file_name`` is a path or URL the service can read. When the user uploads
    a file instead, the blob lives under its own store key and ``file_name``
    stays empty.
    """

    file_name: Optional[str] = None
    delimiter: str = ","
    has_header: bool = True
    encoding: str = "UTF-8"

    def to_payload(self) -> dict[str, Any]:
        return {
            "fileName": self.file_name or "",
            "delimiter": self.delimiter,
            "hasHeader": self.has_header,
            "encoding": self.encoding,
        }


class UploadedFile(BaseModel):
    """A local file sent to the service as a binary part."""

    filename: str
    content: bytes
    content_type: str = "text/csv"

    def __repr__(self) -> str:
        return f"UploadedFile(filename={self.filename!r}, size={len(self.content)})"

    @classmethod
    def from_path(cls, path: Path) -> "UploadedFile":
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            filename=path.name,
            content=path.read_bytes(),
            content_type=content_type or "text/csv",
        )


class Column(BaseModel):
    """A discovered column and its inclusion flag."""

    name: str
    type: Optional[str] = None
    position: int
    selected: bool = True

    def to_payload(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type or "", "selected": self.selected}


class StatusLevel(str, Enum):
    """Severity of a user-facing status message."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class StatusMessage(BaseModel):
    """A message shown to the user after a step completes or fails."""

    level: StatusLevel
    text: str

    @classmethod
    def success(cls, text: str) -> "StatusMessage":
        return cls(level=StatusLevel.SUCCESS, text=text)

    @classmethod
    def warning(cls, text: str) -> "StatusMessage":
        return cls(level=StatusLevel.WARNING, text=text)

    @classmethod
    def error(cls, text: str) -> "StatusMessage":
        return cls(level=StatusLevel.ERROR, text=text)

    @property
    def is_error(self) -> bool:
        return self.level == StatusLevel.ERROR


class PreviewState(str, Enum):
    """Outcome of the most recent preview attempt."""

    NOT_REQUESTED = "not_requested"
    LOADING = "loading"
    ROWS = "rows"
    EMPTY = "empty"
    FAILED = "failed"

    @property
    def completed(self) -> bool:
        """True when the attempt finished without raising."""
        return self in (PreviewState.ROWS, PreviewState.EMPTY)


class PreviewResult(BaseModel):
    """Rows returned by a preview, capped for display."""

    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    total_count: int = 0

    @classmethod
    def from_rows(
        cls,
        data: list[dict[str, Any]],
        columns: list[str],
        limit: int = PREVIEW_DISPLAY_LIMIT,
    ) -> "PreviewResult":
        return cls(columns=columns, rows=list(data[:limit]), total_count=len(data))

    @property
    def displayed_count(self) -> int:
        return len(self.rows)

    @property
    def caption(self) -> str:
        return f"Showing {self.displayed_count} of {self.total_count} rows"


class ExecutionResult(BaseModel):
    """Final result of a transfer."""

    direction: Direction
    total_records: Optional[int] = None
    payload: Optional[bytes] = None
    saved_path: Optional[Path] = None

    def __repr__(self) -> str:
        size = len(self.payload) if self.payload is not None else None
        return (
            f"ExecutionResult(direction={self.direction.value!r}, "
            f"total_records={self.total_records}, payload_size={size}, "
            f"saved_path={self.saved_path!r})"
        )
