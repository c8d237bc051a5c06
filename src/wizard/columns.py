"""Column selection: discovered columns and their inclusion flags."""

import logging
from typing import Callable, Optional

from .models import Column
from .store import ConfigurationStore, StoreKey

logger = logging.getLogger(__name__)


class ColumnSelectionManager:
    """
    Owns the discovered column list.

    Every mutation is flushed to the store under ``StoreKey.SELECTED_COLUMNS``
    as the full list with flags, so readers of the store never need to ask
    this object for the current selection.
    """

    def __init__(
        self,
        store: ConfigurationStore,
        on_change: Optional[Callable[[list[Column]], None]] = None,
    ):
        self.store = store
        self.on_change = on_change
        self._columns: list[Column] = []

    @property
    def columns(self) -> list[Column]:
        return [col.model_copy() for col in self._columns]

    @property
    def selected(self) -> list[Column]:
        return [col.model_copy() for col in self._columns if col.selected]

    @property
    def has_columns(self) -> bool:
        return bool(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def initialize(self, columns: list[Column]) -> None:
        """Replace the list with freshly discovered columns, all included."""
        self._columns = [
            Column(name=col.name, type=col.type, position=position, selected=True)
            for position, col in enumerate(columns)
        ]
        logger.info(f"Discovered {len(self._columns)} columns")
        self._flush()

    def select_all(self) -> None:
        for col in self._columns:
            col.selected = True
        self._flush()

    def deselect_all(self) -> None:
        for col in self._columns:
            col.selected = False
        self._flush()

    def toggle(self, index: int) -> bool:
        """Flip the flag of the column at ``index``; returns the new value."""
        if not 0 <= index < len(self._columns):
            raise IndexError(f"Column index {index} out of range (0..{len(self._columns) - 1})")
        column = self._columns[index]
        column.selected = not column.selected
        self._flush()
        return column.selected

    def clear(self) -> None:
        """Discard every column and the store entry."""
        self._columns = []
        self.store.delete(StoreKey.SELECTED_COLUMNS)
        if self.on_change:
            self.on_change([])

    def _flush(self) -> None:
        self.store.set(StoreKey.SELECTED_COLUMNS, self.columns)
        if self.on_change:
            self.on_change(self.columns)
