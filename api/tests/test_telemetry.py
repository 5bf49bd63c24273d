import logging

from fastapi import FastAPI

from app.core.config import Settings
from app.core.telemetry import configure_api_logging, parse_otlp_headers, setup_api_telemetry, shutdown_api_telemetry


def test_parse_otlp_headers_skips_malformed_entries() -> None:
    assert parse_otlp_headers("Authorization=Bearer abc, x-team = lifecycle ,broken,=empty") == {
        "Authorization": "Bearer abc",
        "x-team": "lifecycle",
    }
    assert parse_otlp_headers(None) == {}


def test_log_records_carry_empty_trace_ids_outside_spans() -> None:
    configure_api_logging()
    record = logging.getLogRecordFactory()("app.test", logging.INFO, __file__, 1, "message", (), None)

    assert record.trace_id == "0" * 32
    assert record.span_id == "0" * 16


def test_disabled_telemetry_is_a_no_op() -> None:
    app = FastAPI()
    runtime = setup_api_telemetry(app, Settings(otel_enabled=False))

    assert runtime.enabled is False
    assert runtime.provider is None
    shutdown_api_telemetry(app, runtime)
