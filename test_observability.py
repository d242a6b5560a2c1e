"""
Observability Validation Test

This test validates the logging stack:
1. Correlation context merging and isolation
2. Structured JSON output with correlation IDs and extra fields
3. Human-readable output with the run/content type/record prefix
4. Engine runs tag their logs with a run id

Pass criteria: every log line of a run can be traced back to its run id.
"""

import asyncio
import json
import logging

from core.observability.logging import (
    CorrelationContext,
    HumanReadableFormatter,
    StructuredFormatter,
    get_correlation_context,
    get_logger,
    with_correlation,
)


def make_record(msg="Test message", exc_info=None):
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class CapturingHandler(logging.Handler):
    """Collects records together with the correlation context at emit time."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append((record, get_correlation_context()))


class TestCorrelatedLogging:
    """Test structured logging with correlation IDs."""

    def test_merge_ignores_none(self):
        ctx = CorrelationContext(run_id="sync-1", content_type="resource")
        merged = ctx.merge(record_id=101, content_type=None)

        assert merged.to_dict() == {"run_id": "sync-1", "content_type": "resource", "record_id": 101}
        assert ctx.record_id is None

    def test_context_var_isolation(self):
        """with_correlation nests and restores the previous context."""
        assert get_correlation_context().run_id is None

        with with_correlation(run_id="push-1"):
            with with_correlation(record_id=5):
                inner = get_correlation_context()
                assert (inner.run_id, inner.record_id) == ("push-1", 5)
            assert get_correlation_context().record_id is None

        assert get_correlation_context().run_id is None

    def test_context_isolated_between_tasks(self):
        async def tagged(record_id):
            with with_correlation(record_id=record_id):
                await asyncio.sleep(0)
                return get_correlation_context().record_id

        async def main():
            return await asyncio.gather(tagged(1), tagged(2))

        assert asyncio.run(main()) == [1, 2]

    def test_structured_formatter_json_output(self):
        """StructuredFormatter outputs valid JSON."""
        formatter = StructuredFormatter()

        with with_correlation(run_id="sync-abc", content_type="resource"):
            record = make_record()
            record.extra_fields = {"pages": 3}
            data = json.loads(formatter.format(record))

        assert data["message"] == "Test message"
        assert data["level"] == "INFO"
        assert data["run_id"] == "sync-abc"
        assert data["content_type"] == "resource"
        assert data["pages"] == 3
        assert "record_id" not in data

    def test_human_readable_prefix(self):
        formatter = HumanReadableFormatter()

        with with_correlation(run_id="push-1", content_type="resource", record_id=7):
            line = formatter.format(make_record("Pushed"))
        assert "[push-1/resource/#7]: Pushed" in line

        assert "[-]: Idle" in formatter.format(make_record("Idle"))


class TestCorrelatedLogger:

    def test_extra_fields_and_exc_info(self):
        handler = CapturingHandler()
        logger = get_logger("test.observability.extra")
        logging.getLogger("test.observability.extra").addHandler(handler)
        try:
            try:
                raise ValueError("boom")
            except ValueError:
                logger.error("Failed", exc_info=True, extra_fields={"phase": "fetch"})
        finally:
            logging.getLogger("test.observability.extra").removeHandler(handler)

        record, _ = handler.records[0]
        assert record.getMessage() == "Failed"
        assert record.extra_fields == {"phase": "fetch"}
        assert record.exc_info[0] is ValueError

    def test_same_instance_per_name(self):
        assert get_logger("test.observability.same") is get_logger("test.observability.same")


class TestRunCorrelation:

    def test_sync_run_logs_carry_run_id(self, store, connector, config, remote):
        from sync_engine import SyncEngine

        connector.add("resource", remote(1))
        handler = CapturingHandler()
        engine_logger = logging.getLogger("sync_engine.engine")
        engine_logger.addHandler(handler)
        try:
            asyncio.run(SyncEngine(store, connector, config).full_sync())
        finally:
            engine_logger.removeHandler(handler)

        run_ids = {ctx.run_id for _, ctx in handler.records}
        assert len(run_ids) == 1
        run_id = run_ids.pop()
        assert run_id.startswith("sync-")
        assert all(ctx.run_kind == "full_sync" for _, ctx in handler.records)

    def test_sync_phase_tagged_on_log_lines(self, store, connector, config, remote):
        from sync_engine import SyncEngine

        connector.add("resource", remote(1))
        handler = CapturingHandler()
        engine_logger = logging.getLogger("sync_engine.engine")
        engine_logger.addHandler(handler)
        try:
            asyncio.run(SyncEngine(store, connector, config).full_sync())
        finally:
            engine_logger.removeHandler(handler)

        phases = {record.getMessage(): ctx.phase for record, ctx in handler.records}
        assert phases["Fetched 1 resource records"] == "fetch"
        assert phases["Starting full sync"] is None
        assert any(msg.startswith("Synced ") and phase == "taxonomies" for msg, phase in phases.items())
        assert any(msg.startswith("Field audit completed") and phase == "field_audit" for msg, phase in phases.items())
