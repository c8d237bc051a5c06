"""Tests for the ingestion executor state machine."""

import asyncio
import contextlib
from pathlib import Path

import pytest

from src.wizard import (
    ConfigSnapshot,
    Direction,
    DirectorySink,
    EventType,
    ExecutionError,
    ExecutionState,
    ExportPayload,
    IngestionWizard,
    ProgressTicker,
    StepUnavailableError,
    WizardPhase,
)


async def preview_and_run(wizard, session):
    await session(wizard)
    await wizard.fetch_preview()
    return await wizard.start_ingestion()


class FailingSink:
    def save(self, filename: str, content: bytes) -> Path:
        raise OSError("disk full")


class TestExport:
    """Tests for ClickHouse to file transfers."""

    def test_saves_file_named_after_table(self, wizard, settings, export_session):
        """Should report the header count and save <table>.csv."""
        result = asyncio.run(preview_and_run(wizard, export_session))

        assert result.total_records == 1200
        assert result.saved_path == Path(settings.download_dir) / "events.csv"
        assert result.saved_path.read_bytes() == b"id,ts\n1,2024\n"
        assert wizard.executor.state == ExecutionState.SUCCEEDED
        assert wizard.executor.progress == 100
        assert wizard.executor.status.text == "Ingestion completed. Total records processed: 1200"

    def test_default_filename_without_table(self, tmp_path):
        """Should fall back to data.csv when no table name is set."""
        payload = ExportPayload(content=b"x\n", record_count=1)
        result = payload.finalize(ConfigSnapshot(direction=Direction.EXPORT), DirectorySink(tmp_path))
        assert result.saved_path == tmp_path / "data.csv"

    def test_sink_stays_in_directory(self, tmp_path):
        """Should strip path components from the export filename."""
        sink = DirectorySink(tmp_path / "downloads")
        path = sink.save("../../outside.csv", b"x")
        assert path == tmp_path / "downloads" / "outside.csv"
        assert not (tmp_path / "outside.csv").exists()

    def test_missing_record_count(self, wizard, service, export_session):
        """Should still succeed and report the count as unknown."""
        service.export_response = ExportPayload(content=b"id\n", record_count=None)
        result = asyncio.run(preview_and_run(wizard, export_session))

        assert result.total_records is None
        assert wizard.executor.status.text.endswith("unknown")

    def test_request_carries_full_column_list(self, wizard, service, export_session):
        """Should send every column with its inclusion flag."""

        async def scenario():
            await export_session(wizard)
            wizard.columns.toggle(3)
            await wizard.fetch_preview()
            await wizard.start_ingestion()

        asyncio.run(scenario())

        direction, request, upload = service.calls_to("execute")[0]
        payload = request.to_payload()
        assert direction == Direction.EXPORT
        assert payload["sourceType"] == "clickhouse"
        assert payload["targetType"] == "flatfile"
        assert [(c["name"], c["selected"]) for c in payload["selectedColumns"]] == [
            ("id", True),
            ("ts", True),
            ("user_id", True),
            ("payload", False),
            ("country", True),
        ]
        assert upload is None

    def test_save_failure_marks_failed(self, service, settings, export_session):
        wizard = IngestionWizard(service, settings, sink=FailingSink())
        result = asyncio.run(preview_and_run(wizard, export_session))

        assert result is None
        assert wizard.executor.state == ExecutionState.FAILED
        assert "disk full" in wizard.executor.status.text


class TestImport:
    """Tests for file to ClickHouse transfers."""

    def test_reports_count_without_saving(self, wizard, settings, import_session):
        """Should report the row count and write nothing locally."""
        result = asyncio.run(preview_and_run(wizard, import_session))

        assert result.total_records == 340
        assert result.saved_path is None
        assert result.payload is None
        assert not Path(settings.download_dir).exists()
        assert wizard.context.current_phase == WizardPhase.COMPLETE

    def test_request_targets_clickhouse(self, wizard, service, import_session):
        asyncio.run(preview_and_run(wizard, import_session))

        direction, request, upload = service.calls_to("execute")[0]
        payload = request.to_payload()
        assert direction == Direction.IMPORT
        assert payload["sourceType"] == "flatfile"
        assert payload["targetTableName"] == "events_copy"
        assert upload.filename == "events.csv"


class TestFailure:
    """Tests for failed transfers."""

    def test_transport_failure_uses_fallback(self, wizard, service, export_session):
        """Should hide progress and show the fallback message."""
        service.errors["execute"] = ExecutionError("Request failed: connection refused")
        result = asyncio.run(preview_and_run(wizard, export_session))

        assert result is None
        assert wizard.executor.state == ExecutionState.FAILED
        assert wizard.executor.progress is None
        assert wizard.executor.status.text == "Ingestion failed."
        assert wizard.context.current_phase == WizardPhase.FAILED
        assert wizard.context.errors == ["Ingestion failed."]

    def test_server_message_shown(self, wizard, service, export_session):
        service.errors["execute"] = ExecutionError(
            "HTTP 500", status=500, server_message="Table events_copy does not exist"
        )
        asyncio.run(preview_and_run(wizard, export_session))
        assert wizard.executor.status.text == "Table events_copy does not exist"

    def test_unexpected_error_propagates(self, wizard, service, export_session):
        """Should record the failure and re-raise programming errors."""
        service.errors["execute"] = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            asyncio.run(preview_and_run(wizard, export_session))
        assert wizard.executor.state == ExecutionState.FAILED
        assert wizard.executor.progress is None

    def test_retry_reads_current_configuration(self, wizard, service, import_session):
        """Should re-run the whole cycle with the edited settings."""

        async def scenario():
            service.errors["execute"] = ExecutionError("HTTP 500", status=500)
            await import_session(wizard)
            await wizard.fetch_preview()
            assert await wizard.start_ingestion() is None

            del service.errors["execute"]
            wizard.set_target_table("events_fixed")
            return await wizard.start_ingestion()

        result = asyncio.run(scenario())

        assert result.total_records == 340
        requests = [args[1] for args in service.calls_to("execute")]
        assert [r.target_table_name for r in requests] == ["events_copy", "events_fixed"]
        assert wizard.context.attempt_count == 2
        assert wizard.context.current_phase == WizardPhase.COMPLETE


class TestProgress:
    """Tests for simulated progress."""

    def test_never_complete_before_response(self, wizard, service, export_session):
        """Should stay below 100 until the response resolves."""
        response = {"resolved": False}
        observed = []
        wizard.events.subscribe(
            EventType.EXECUTION_PROGRESS,
            lambda event: observed.append((event.data["progress"], response["resolved"])),
        )

        async def scenario():
            await export_session(wizard)
            await wizard.fetch_preview()
            service.gates["execute"] = gate = asyncio.Event()

            run = asyncio.create_task(wizard.start_ingestion())
            await asyncio.sleep(0.1)
            assert wizard.executor.state == ExecutionState.RUNNING
            assert wizard.executor.progress < 100
            response["resolved"] = True
            gate.set()
            return await run

        assert asyncio.run(scenario()) is not None

        before = [value for value, done in observed if not done]
        assert len(before) > 2
        assert all(value is not None and value <= 90 for value in before)
        assert before == sorted(before)
        assert observed[-1] == (100, True)

    def test_ticker_ceiling_below_100(self):
        with pytest.raises(ValueError):
            ProgressTicker(interval=0.1, step=5, ceiling=100, on_tick=lambda value: None)

    def test_ticker_stops_at_ceiling(self):
        values = []
        ticker = ProgressTicker(interval=0.001, step=30, ceiling=80, on_tick=values.append)

        async def scenario():
            task = asyncio.create_task(ticker.run())
            await asyncio.sleep(0.05)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert values == [30, 60, 80]


class TestPreconditions:
    """Tests for calls made while execution is unavailable."""

    def test_requires_completed_preview(self, wizard, service, export_session):
        async def scenario():
            await export_session(wizard)
            await wizard.start_ingestion()

        with pytest.raises(StepUnavailableError):
            asyncio.run(scenario())
        assert service.calls_to("execute") == []

    def test_rejects_concurrent_start(self, wizard, service, export_session):
        """Should refuse a second start while the first is running."""

        async def scenario():
            await export_session(wizard)
            await wizard.fetch_preview()
            service.gates["execute"] = gate = asyncio.Event()
            first = asyncio.create_task(wizard.start_ingestion())
            await asyncio.sleep(0)
            with pytest.raises(StepUnavailableError):
                await wizard.start_ingestion()
            gate.set()
            return await first

        assert asyncio.run(scenario()).total_records == 1200
        assert len(service.calls_to("execute")) == 1
