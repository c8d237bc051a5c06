"""Step gating: which wizard steps are currently available."""

from pydantic import BaseModel, ConfigDict

from .models import PreviewState
from .store import ConfigSnapshot


class StepAvailability(BaseModel):
    """Visibility of each wizard step."""

    model_config = ConfigDict(frozen=True)

    source_configuration: bool = False
    target_configuration: bool = False
    column_selection: bool = False
    preview: bool = False
    execution: bool = False


def evaluate_gates(
    snapshot: ConfigSnapshot,
    discovered_column_count: int,
    preview_state: PreviewState,
) -> StepAvailability:
    """
    Derive step availability from the store and the discovery/preview results.

    Execution needs at least one column that is still included, not merely a
    non-empty column list.
    """
    direction_chosen = snapshot.direction is not None
    column_selection = discovered_column_count > 0

    execution = (
        snapshot.clickhouse_config is not None
        and snapshot.flat_file_config is not None
        and bool(snapshot.included_columns)
        and preview_state.completed
    )

    return StepAvailability(
        source_configuration=direction_chosen,
        target_configuration=direction_chosen,
        column_selection=column_selection,
        # Shown as soon as columns exist, whatever is currently selected
        preview=column_selection,
        execution=execution,
    )
