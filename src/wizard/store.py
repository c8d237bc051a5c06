"""Configuration store shared by every wizard step."""

import copy
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Iterator, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import (
    Column,
    ConnectionConfig,
    Direction,
    FileConfig,
    UploadedFile,
)

logger = logging.getLogger(__name__)


class StoreKey(str, Enum):
    """Keys held by the configuration store."""

    DIRECTION = "direction"
    CLICKHOUSE_CONFIG = "clickHouseConfig"
    FLAT_FILE_CONFIG = "flatFileConfig"
    FILE = "file"
    TABLE_NAME = "tableName"
    TARGET_TABLE_NAME = "targetTableName"
    ADDITIONAL_TABLES = "additionalTables"
    JOIN_CONDITION = "joinCondition"
    SELECTED_COLUMNS = "selectedColumns"


# Everything a direction change wipes
SESSION_KEYS = tuple(key for key in StoreKey if key is not StoreKey.DIRECTION)

StoreListener = Callable[[frozenset], None]


class ConfigSnapshot(BaseModel):
    """Immutable, typed view of the store at one moment."""

    model_config = ConfigDict(frozen=True)

    direction: Optional[Direction] = None
    clickhouse_config: Optional[ConnectionConfig] = None
    flat_file_config: Optional[FileConfig] = None
    upload: Optional[UploadedFile] = None
    table_name: Optional[str] = None
    target_table_name: Optional[str] = None
    additional_tables: list[str] = Field(default_factory=list)
    join_condition: Optional[str] = None
    selected_columns: list[Column] = Field(default_factory=list)

    @property
    def included_columns(self) -> list[Column]:
        return [col for col in self.selected_columns if col.selected]

    @property
    def has_join(self) -> bool:
        return bool(self.additional_tables) and bool(self.join_condition)


class ConfigurationStore:
    """
    Mutable keyed bag written by every step and read as a snapshot by every call.

    Last write wins and nothing is validated on write; ``snapshot()`` is where
    values are checked against their expected types. Listeners run
    synchronously after each mutation so derived state never lags the store.
    """

    def __init__(self):
        self._values: dict[StoreKey, Any] = {}
        self._listeners: list[StoreListener] = []
        self._batch_depth = 0
        self._pending: set[StoreKey] = set()

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a listener called with the set of changed keys."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set(self, key: Union[StoreKey, str], value: Any) -> None:
        key = StoreKey(key)
        self._values[key] = value
        self._changed(key)

    def get(self, key: Union[StoreKey, str], default: Any = None) -> Any:
        return self._values.get(StoreKey(key), default)

    def delete(self, key: Union[StoreKey, str]) -> None:
        key = StoreKey(key)
        if key in self._values:
            del self._values[key]
            self._changed(key)

    def __contains__(self, key: object) -> bool:
        try:
            return StoreKey(key) in self._values
        except ValueError:
            return False

    def snapshot(self) -> ConfigSnapshot:
        """
        Return a deep-copied, typed snapshot of the current values.

        A stored value that does not fit its field is treated as absent and
        logged, so one bad write never blocks every later snapshot.
        """
        values = copy.deepcopy(self._values)
        fields = {
            "direction": values.get(StoreKey.DIRECTION),
            "clickhouse_config": values.get(StoreKey.CLICKHOUSE_CONFIG),
            "flat_file_config": values.get(StoreKey.FLAT_FILE_CONFIG),
            "upload": values.get(StoreKey.FILE),
            "table_name": values.get(StoreKey.TABLE_NAME) or None,
            "target_table_name": values.get(StoreKey.TARGET_TABLE_NAME) or None,
            "additional_tables": values.get(StoreKey.ADDITIONAL_TABLES) or [],
            "join_condition": values.get(StoreKey.JOIN_CONDITION) or None,
            "selected_columns": values.get(StoreKey.SELECTED_COLUMNS) or [],
        }
        try:
            return ConfigSnapshot(**fields)
        except ValidationError as e:
            invalid = {error["loc"][0] for error in e.errors() if error["loc"]}
            for name in sorted(invalid):
                logger.warning(f"Ignoring invalid store value for {name}: {fields[name]!r}")
            return ConfigSnapshot(**{name: value for name, value in fields.items() if name not in invalid})

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Group several mutations into a single listener notification."""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._pending:
                changed = frozenset(self._pending)
                self._pending.clear()
                self._notify(changed)

    # Narrow update methods

    def set_direction(self, direction: Direction) -> None:
        self.set(StoreKey.DIRECTION, Direction(direction))

    def configure_clickhouse(self, config: ConnectionConfig) -> None:
        self.set(StoreKey.CLICKHOUSE_CONFIG, config)

    def use_file_reference(self, config: FileConfig) -> None:
        """Point at a path/URL the service reads itself; drops any upload."""
        with self.batch():
            self.set(StoreKey.FLAT_FILE_CONFIG, config)
            self.delete(StoreKey.FILE)

    def use_uploaded_file(self, config: FileConfig, upload: UploadedFile) -> None:
        """Send ``upload`` with every file request; drops any path/URL."""
        with self.batch():
            self.set(
                StoreKey.FLAT_FILE_CONFIG,
                config.model_copy(update={"file_name": None}),
            )
            self.set(StoreKey.FILE, upload)

    def set_table_name(self, table_name: Optional[str]) -> None:
        self.set(StoreKey.TABLE_NAME, table_name)

    def set_target_table_name(self, table_name: Optional[str]) -> None:
        self.set(StoreKey.TARGET_TABLE_NAME, table_name)

    def set_join(self, additional_tables: list[str], join_condition: Optional[str]) -> None:
        with self.batch():
            self.set(StoreKey.ADDITIONAL_TABLES, list(additional_tables))
            self.set(StoreKey.JOIN_CONDITION, join_condition)

    def clear_session(self) -> None:
        """Remove every source/target key in one notification."""
        with self.batch():
            for key in SESSION_KEYS:
                self.delete(key)
        logger.debug("Configuration store session keys cleared")

    def _changed(self, key: StoreKey) -> None:
        if self._batch_depth:
            self._pending.add(key)
        else:
            self._notify(frozenset({key}))

    def _notify(self, changed: frozenset) -> None:
        for listener in list(self._listeners):
            listener(changed)
