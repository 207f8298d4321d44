"""Unit tests for utils/logging.py."""

import logging
import sys
import pytest
from logging.handlers import RotatingFileHandler

from harness.utils.logging import ScenarioFormatter, scenario_logger, setup_logger


@pytest.mark.unit
class TestSetupLogger:
    """Test setup_logger function."""

    @pytest.fixture(autouse=True)
    def cleanup_loggers(self):
        """Close handlers of loggers created by a test."""
        created = []
        yield created
        for name in created:
            lg = logging.getLogger(name)
            for h in list(lg.handlers):
                h.close()
                lg.removeHandler(h)

    def _unique_name(self, suffix: str) -> str:
        return f"test_harness_logger_{suffix}"

    def test_creates_log_directory(self, tmp_path, cleanup_loggers):
        log_dir = tmp_path / "new_logs" / "subdir"
        name = self._unique_name("dir")
        cleanup_loggers.append(name)

        setup_logger(name, str(log_dir / "harness.log"))

        assert log_dir.exists()

    def test_level_info_by_default(self, tmp_path, cleanup_loggers):
        name = self._unique_name("level_default")
        cleanup_loggers.append(name)

        logger = setup_logger(name, str(tmp_path / "harness.log"))

        assert logger.name == name
        assert logger.level == logging.INFO

    def test_level_custom(self, tmp_path, cleanup_loggers):
        name = self._unique_name("level_debug")
        cleanup_loggers.append(name)

        logger = setup_logger(name, str(tmp_path / "harness.log"), level=logging.DEBUG)

        assert logger.level == logging.DEBUG

    def test_file_and_console_handlers(self, tmp_path, cleanup_loggers):
        name = self._unique_name("handlers")
        cleanup_loggers.append(name)

        logger = setup_logger(
            name, str(tmp_path / "harness.log"), max_bytes=1024, backup_count=5
        )

        file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        stream_handlers = [
            h for h in logger.handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        ]
        assert len(file_handlers) == 1
        assert len(stream_handlers) == 1
        assert file_handlers[0].maxBytes == 1024
        assert file_handlers[0].backupCount == 5

    def test_no_duplicate_handlers_on_second_call(self, tmp_path, cleanup_loggers):
        name = self._unique_name("no_dup")
        cleanup_loggers.append(name)

        logger1 = setup_logger(name, str(tmp_path / "harness.log"))
        handler_count = len(logger1.handlers)
        logger2 = setup_logger(name, str(tmp_path / "harness.log"))

        assert logger1 is logger2
        assert len(logger2.handlers) == handler_count

    def test_component_loggers_write_to_file(self, tmp_path, cleanup_loggers):
        """Child loggers such as harness.poller propagate to the configured file."""
        name = self._unique_name("parent")
        cleanup_loggers.append(name)
        log_file = tmp_path / "harness.log"

        logger = setup_logger(name, str(log_file))
        logging.getLogger(f"{name}.poller").info("Waiting for lockfile (attempt 1/50)")
        for h in logger.handlers:
            h.flush()

        content = log_file.read_text()
        assert "Waiting for lockfile (attempt 1/50)" in content
        assert f"{name}.poller" in content

    def test_scenario_comment_on_console_and_file(self, tmp_path, cleanup_loggers, capsys):
        """Scenario comments print as '#' lines; the file keeps level and logger name."""
        name = self._unique_name("scenario")
        cleanup_loggers.append(name)
        log_file = tmp_path / "harness.log"

        logger = setup_logger(name, str(log_file))
        scenario_logger("Override lock test", f"{name}.scenario").info("Cloning repo...")
        logger.info("Suite started")
        for h in logger.handlers:
            h.flush()

        console = capsys.readouterr().err.splitlines()
        assert "# [Override lock test] Cloning repo..." in console
        assert any(line.endswith(f"[INFO] {name}: Suite started") for line in console)
        content = log_file.read_text()
        assert f"[INFO] {name}.scenario: [Override lock test] Cloning repo..." in content


@pytest.mark.unit
class TestScenarioFormatter:
    """Test ScenarioFormatter on hand-built records."""

    def _record(self, msg, args=None, exc_info=None, **extra):
        record = logging.LogRecord(
            "harness.scenario", logging.ERROR, __file__, 1, msg, args, exc_info
        )
        record.__dict__.update(extra)
        return record

    def test_untagged_record_uses_format(self):
        formatter = ScenarioFormatter(fmt="%(levelname)s %(message)s", comments=True)

        assert formatter.format(self._record("Suite finished")) == "ERROR Suite finished"

    def test_tagged_record_in_file_format(self):
        formatter = ScenarioFormatter(fmt="%(levelname)s %(message)s")
        record = self._record("not ok - %s", ("lockfile created",), scenario="Override lock test")

        assert formatter.format(record) == "ERROR [Override lock test] not ok - lockfile created"
        # the original record is left untouched for other handlers
        assert record.getMessage() == "not ok - lockfile created"

    def test_comment_includes_traceback(self):
        try:
            raise RuntimeError("balena push failed")
        except RuntimeError:
            exc_info = sys.exc_info()
        formatter = ScenarioFormatter(comments=True)

        lines = formatter.format(
            self._record("teardown failed", exc_info=exc_info, scenario="Supervisor reload test")
        ).splitlines()

        assert lines[0] == "# [Supervisor reload test] teardown failed"
        assert all(line.startswith("#") for line in lines)
        assert lines[-1] == "# RuntimeError: balena push failed"
