# ═══════════════════════════════════════════════════════════════
# HVRemote - Logging and Settings Tests
# ═══════════════════════════════════════════════════════════════

import json
import logging

import pytest

from hvremote.core.config import Settings, get_settings
from hvremote.core.logging import (
    ConsoleFormatter,
    JSONFormatter,
    configure_logging,
    get_context,
    logging_context,
    performance_logger,
)


def make_record(message="Uploading image", extra_fields=None):
    record = logging.LogRecord(
        name="hvremote.remote.ssh",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    if extra_fields is not None:
        record.extra_fields = extra_fields
    return record


class TestSettings:

    def test_defaults(self):
        settings = Settings()
        assert settings.command_timeout == 300
        assert settings.pool_max_size == 5
        assert settings.upload_chunk_size == 1500

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("HVREMOTE_POOL_MAX_SIZE", "9")
        monkeypatch.setenv("HVREMOTE_LOG_FORMAT", "json")

        settings = get_settings()

        assert settings.pool_max_size == 9
        assert settings.log_format == "json"
        assert get_settings() is settings


class TestLoggingContext:

    def test_nested_context_restored(self):
        assert get_context()["host"] is None

        with logging_context(host="hv01", transport="winrm"):
            with logging_context(host="hv02"):
                assert get_context()["host"] == "hv02"
                assert get_context()["transport"] == "winrm"
            assert get_context()["host"] == "hv01"

        assert get_context() == {"operation_id": None, "host": None, "transport": None}


class TestFormatters:

    def test_json_formatter(self):
        with logging_context(host="hv01"):
            output = JSONFormatter().format(make_record(extra_fields={"template": "vm_state"}))

        entry = json.loads(output)
        assert entry["message"] == "Uploading image"
        assert entry["level"] == "INFO"
        assert entry["host"] == "hv01"
        assert entry["template"] == "vm_state"
        assert "transport" not in entry

    def test_console_formatter(self):
        with logging_context(transport="ssh"):
            output = ConsoleFormatter().format(make_record(extra_fields={"status": "success"}))

        assert "hvremote.remote.ssh: Uploading image" in output
        assert "transport=ssh" in output
        assert "status=success" in output

    def test_configure_logging(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level

        try:
            configure_logging(log_level="DEBUG", log_format="json", force=True)

            assert root.level == logging.DEBUG
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
            assert logging.getLogger("asyncssh").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


class TestPerformanceLogger:

    def test_measure_success(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="hvremote.performance"):
            with performance_logger.measure("run_script_with_result", extra={"template": "t"}):
                pass

        record = caplog.records[-1]
        assert record.extra_fields["status"] == "success"
        assert record.extra_fields["template"] == "t"

    def test_measure_error(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="hvremote.performance"):
            with pytest.raises(RuntimeError):
                with performance_logger.measure("run_fire_and_forget"):
                    raise RuntimeError("boom")

        assert caplog.records[-1].extra_fields["status"] == "error"

    def test_slow_operation_warns(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="hvremote.performance"):
            with performance_logger.measure("upload", threshold_seconds=-1):
                pass

        assert caplog.records[-1].levelno == logging.WARNING
